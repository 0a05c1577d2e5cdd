"""Recurring-alarm host abstraction.

In-process timers die with a suspended process; periodic background work
is therefore driven by named alarms owned by the host. ``AsyncioAlarmHost``
implements the contract on the running event loop for local simulation.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from typing import Protocol, Union, runtime_checkable

from wallet_bridge.observability import get_logger

logger = get_logger(__name__)

AlarmListener = Callable[[str], Union[None, Awaitable[None]]]


@runtime_checkable
class AlarmHost(Protocol):
    """Host primitive that fires named recurring alarms."""

    def create(self, name: str, period: float) -> None:
        """Create (or replace) alarm ``name`` firing every ``period`` seconds."""
        ...

    def clear(self, name: str) -> bool:
        """Cancel alarm ``name``. Returns True if it existed."""
        ...

    def add_listener(self, listener: AlarmListener) -> None:
        """Deliver every alarm firing to ``listener``."""
        ...


async def notify_listeners(listeners: list[AlarmListener], name: str) -> None:
    """Call each listener with ``name``; a failing listener does not stop the others."""
    for listener in list(listeners):
        try:
            result = listener(name)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("wallet_bridge.alarm.listener_error", alarm=name)


class AsyncioAlarmHost:
    """AlarmHost running each alarm as a task on the current event loop."""

    def __init__(self) -> None:
        self._alarms: dict[str, asyncio.Task[None]] = {}
        self._periods: dict[str, float] = {}
        self._listeners: list[AlarmListener] = []

    @property
    def alarms(self) -> dict[str, float]:
        return dict(self._periods)

    def create(self, name: str, period: float) -> None:
        if period <= 0:
            raise ValueError("period must be positive")
        self.clear(name)
        self._periods[name] = period
        self._alarms[name] = asyncio.get_running_loop().create_task(
            self._fire_every(name, period), name=f"alarm-{name}"
        )

    def clear(self, name: str) -> bool:
        self._periods.pop(name, None)
        task = self._alarms.pop(name, None)
        if task is None:
            return False
        task.cancel()
        return True

    def add_listener(self, listener: AlarmListener) -> None:
        self._listeners.append(listener)

    async def close(self) -> None:
        tasks = list(self._alarms.values())
        self._alarms.clear()
        self._periods.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _fire_every(self, name: str, period: float) -> None:
        while True:
            await asyncio.sleep(period)
            await notify_listeners(self._listeners, name)
