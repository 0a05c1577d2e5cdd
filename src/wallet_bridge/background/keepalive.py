"""Keep-alive heartbeat for the suspendable background process.

The host suspends the background process once it judges it idle, on a
timescale under 30 seconds. A recurring alarm with a shorter period fires
while ports are open or operations are pending; the firing itself resets
the host's idle timer. Each tick also runs the staleness sweeps.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from wallet_bridge.background.alarms import AlarmHost
from wallet_bridge.background.operations import OperationTracker
from wallet_bridge.background.ports import PortRegistry
from wallet_bridge.messaging.rate_limit import Clock
from wallet_bridge.observability import get_logger, get_metrics

logger = get_logger(__name__)

KEEPALIVE_ALARM = "sw-keepalive"
DEFAULT_KEEPALIVE_PERIOD = 24.0

Sweeper = Callable[[float], Iterable[str]]


@dataclass(frozen=True)
class Heartbeat:
    """What one alarm tick observed and cleaned up."""

    fired_at: float
    ports: int
    pending_operations: int
    swept_operations: tuple[str, ...] = ()
    swept_requests: tuple[str, ...] = ()

    @property
    def keep_alive(self) -> bool:
        return self.ports > 0 or self.pending_operations > 0


class KeepAliveScheduler:
    """Drives the heartbeat from a host alarm.

    ``arm`` must run on every process start: a previous registration may or
    may not have survived, so it clears before creating.
    """

    def __init__(
        self,
        alarm_host: AlarmHost,
        ports: PortRegistry,
        operations: OperationTracker,
        period: float = DEFAULT_KEEPALIVE_PERIOD,
        alarm_name: str = KEEPALIVE_ALARM,
        sweepers: Iterable[Sweeper] = (),
        clock: Clock | None = None,
    ) -> None:
        self.alarm_host = alarm_host
        self.ports = ports
        self.operations = operations
        self.period = period
        self.alarm_name = alarm_name
        self._sweepers = list(sweepers)
        self._clock = clock or time.monotonic
        self._listening = False
        self.last_heartbeat: Heartbeat | None = None

    def add_sweeper(self, sweeper: Sweeper) -> None:
        self._sweepers.append(sweeper)

    def listen(self) -> None:
        """Subscribe ``on_alarm`` to the host once."""
        if not self._listening:
            self.alarm_host.add_listener(self.on_alarm)
            self._listening = True

    def arm(self) -> None:
        self.alarm_host.clear(self.alarm_name)
        self.alarm_host.create(self.alarm_name, self.period)
        logger.info("wallet_bridge.keepalive.armed", alarm=self.alarm_name, period=self.period)

    def disarm(self) -> bool:
        return self.alarm_host.clear(self.alarm_name)

    def on_alarm(self, name: str) -> Heartbeat | None:
        """Handle an alarm firing; alarms with other names are ignored."""
        if name != self.alarm_name:
            return None
        now = self._clock()
        swept_operations = self.operations.sweep_stale(now)
        swept_requests: list[str] = []
        for sweeper in self._sweepers:
            swept_requests.extend(sweeper(now))

        heartbeat = Heartbeat(
            fired_at=now,
            ports=self.ports.size,
            pending_operations=self.operations.pending_count,
            swept_operations=tuple(swept_operations),
            swept_requests=tuple(sorted(swept_requests)),
        )
        self.last_heartbeat = heartbeat
        get_metrics().increment_counter(
            "wallet_bridge_heartbeats_total", {"active": str(heartbeat.keep_alive).lower()}
        )
        if heartbeat.keep_alive:
            logger.debug(
                "wallet_bridge.keepalive.heartbeat",
                ports=heartbeat.ports,
                pending_operations=heartbeat.pending_operations,
            )
        if swept_operations or swept_requests:
            logger.info(
                "wallet_bridge.keepalive.swept",
                operations=list(swept_operations),
                requests=sorted(swept_requests),
            )
        return heartbeat
