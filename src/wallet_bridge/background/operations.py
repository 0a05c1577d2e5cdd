"""Tracking of long-running background operations.

Operations are keyed by a unique id and live until they complete, fail
or outlive ``max_age``. The pending count is derived from the map size,
so it can never drift or go negative.
"""

from __future__ import annotations

import itertools
import time
import weakref
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from wallet_bridge.errors import BridgeTimeoutError, DuplicateOperationError
from wallet_bridge.messaging.rate_limit import Clock
from wallet_bridge.observability import get_logger, get_metrics

if TYPE_CHECKING:
    from wallet_bridge.background.ports import ActivePort

logger = get_logger(__name__)

DEFAULT_OPERATION_MAX_AGE = 5 * 60.0


@dataclass(eq=False)
class ActiveOperation:
    """A tracked operation. The port link is weak and never keeps a port alive."""

    id: str
    type: str
    start_time: float
    _port_ref: weakref.ref[ActivePort] | None = field(default=None, repr=False)

    @property
    def port(self) -> ActivePort | None:
        return self._port_ref() if self._port_ref is not None else None

    def age(self, now: float) -> float:
        return now - self.start_time


class OperationTracker:
    """Registry of in-progress operations for the background context. Not thread-safe.

    Example:
        >>> tracker = OperationTracker(clock=lambda: 0.0)
        >>> _ = tracker.start("connect_1", "WB_CONNECT")
        >>> tracker.pending_count
        1
        >>> tracker.complete("connect_1")
        True
        >>> tracker.pending_count
        0
    """

    def __init__(
        self, max_age: float = DEFAULT_OPERATION_MAX_AGE, clock: Clock | None = None
    ) -> None:
        self.max_age = max_age
        self._clock = clock or time.monotonic
        self._operations: dict[str, ActiveOperation] = {}
        self._counter = itertools.count(1)

    @property
    def pending_count(self) -> int:
        return len(self._operations)

    def __contains__(self, operation_id: object) -> bool:
        return operation_id in self._operations

    def get(self, operation_id: str) -> ActiveOperation | None:
        return self._operations.get(operation_id)

    def operations(self) -> list[ActiveOperation]:
        return list(self._operations.values())

    def next_id(self, operation_type: str) -> str:
        """Generate an id unique within this tracker's lifetime."""
        return f"{operation_type}_{next(self._counter)}"

    def start(
        self,
        operation_id: str,
        operation_type: str,
        port: ActivePort | None = None,
        now: float | None = None,
    ) -> ActiveOperation:
        """Begin tracking an operation.

        Raises:
            DuplicateOperationError: If ``operation_id`` is already tracked
        """
        if operation_id in self._operations:
            raise DuplicateOperationError(operation_id)
        operation = ActiveOperation(
            id=operation_id,
            type=operation_type,
            start_time=self._clock() if now is None else now,
            _port_ref=weakref.ref(port) if port is not None else None,
        )
        self._operations[operation_id] = operation
        get_metrics().increment_counter(
            "wallet_bridge_operations_started_total", {"type": operation_type}
        )
        logger.debug(
            "wallet_bridge.operation.started",
            operation_id=operation_id,
            operation_type=operation_type,
            port_id=port.id if port is not None else None,
        )
        return operation

    def complete(self, operation_id: str) -> bool:
        """Stop tracking a finished operation. Unknown ids are ignored."""
        operation = self._operations.pop(operation_id, None)
        if operation is None:
            return False
        logger.debug(
            "wallet_bridge.operation.completed",
            operation_id=operation_id,
            duration=self._clock() - operation.start_time,
        )
        return True

    def fail(self, operation_id: str, error: BaseException | str | None = None) -> bool:
        """Stop tracking a failed operation. Unknown ids are ignored."""
        operation = self._operations.pop(operation_id, None)
        if operation is None:
            return False
        get_metrics().increment_counter(
            "wallet_bridge_operations_failed_total", {"type": operation.type}
        )
        logger.warning(
            "wallet_bridge.operation.failed",
            operation_id=operation_id,
            operation_type=operation.type,
            error=str(error) if error is not None else None,
        )
        return True

    def sweep_stale(self, now: float | None = None, max_age: float | None = None) -> list[str]:
        """Fail and return every operation whose age is at least ``max_age``."""
        current = self._clock() if now is None else now
        limit = self.max_age if max_age is None else max_age
        stale = [
            operation.id
            for operation in self._operations.values()
            if operation.age(current) >= limit
        ]
        for operation_id in stale:
            self.fail(operation_id, BridgeTimeoutError(operation_id, limit))
        return stale

    def fail_for_port(self, port: ActivePort, error: BaseException | str | None = None) -> list[str]:
        """Fail every operation started through ``port``."""
        linked = [
            operation.id for operation in self._operations.values() if operation.port is port
        ]
        for operation_id in linked:
            self.fail(operation_id, error or f"port {port.id} disconnected")
        return linked

    @asynccontextmanager
    async def track(
        self, operation_type: str, port: ActivePort | None = None
    ) -> AsyncIterator[ActiveOperation]:
        """Track the enclosed block as an operation, completing or failing it on exit."""
        operation = self.start(self.next_id(operation_type), operation_type, port=port)
        try:
            yield operation
        except BaseException as exc:
            self.fail(operation.id, exc)
            raise
        else:
            self.complete(operation.id)

    def clear(self) -> None:
        self._operations.clear()
