"""In-flight request deduplication.

Concurrent requests that share a key collapse onto the first one's
pending result. Entries leave the map when their handle settles; entries
whose settlement never arrives (the sender context was destroyed) are
reported absent once older than the request timeout and removed by
``cleanup_stale_requests``.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any

from wallet_bridge.messaging.rate_limit import Clock
from wallet_bridge.observability import get_logger

logger = get_logger(__name__)

DEFAULT_REQUEST_TIMEOUT = 60.0


@dataclass(frozen=True)
class InFlightRequest:
    key: str
    start_time: float
    handle: asyncio.Future[Any]


class RequestDeduplicator:
    """Tracks in-flight request keys for one context. Not thread-safe.

    Example:
        >>> dedup = RequestDeduplicator(request_timeout=1.0)
        >>> dedup.is_in_flight("WB_CONNECT", now=0.0)
        False
    """

    def __init__(
        self, request_timeout: float = DEFAULT_REQUEST_TIMEOUT, clock: Clock | None = None
    ) -> None:
        if request_timeout <= 0:
            raise ValueError("request_timeout must be positive")
        self.request_timeout = request_timeout
        self._clock = clock or time.monotonic
        self._in_flight: dict[str, InFlightRequest] = {}

    def __len__(self) -> int:
        return len(self._in_flight)

    def __contains__(self, key: object) -> bool:
        return key in self._in_flight

    def _now(self, now: float | None) -> float:
        return self._clock() if now is None else now

    def get(self, key: str, now: float | None = None) -> InFlightRequest | None:
        """Return the live entry for ``key``; stale entries count as absent."""
        entry = self._in_flight.get(key)
        if entry is None:
            return None
        if self._now(now) - entry.start_time >= self.request_timeout:
            return None
        return entry

    def is_in_flight(self, key: str, now: float | None = None) -> bool:
        """True iff an entry for ``key`` exists and is younger than the timeout."""
        return self.get(key, now) is not None

    def mark_in_flight(
        self, key: str, handle: asyncio.Future[Any], now: float | None = None
    ) -> InFlightRequest:
        """Record ``handle`` as the pending result for ``key``.

        The entry is removed as soon as the handle settles, success or
        failure, unless a newer entry has replaced it in the meantime.
        """
        entry = InFlightRequest(key=key, start_time=self._now(now), handle=handle)
        self._in_flight[key] = entry

        def _release(_: asyncio.Future[Any]) -> None:
            current = self._in_flight.get(key)
            if current is not None and current.handle is handle:
                del self._in_flight[key]

        handle.add_done_callback(_release)
        return entry

    def cleanup_stale_requests(self, now: float | None = None) -> set[str]:
        """Delete and return every key whose entry is at least ``request_timeout`` old."""
        current = self._now(now)
        stale = {
            key
            for key, entry in self._in_flight.items()
            if current - entry.start_time >= self.request_timeout
        }
        for key in stale:
            del self._in_flight[key]
        if stale:
            logger.warning(
                "wallet_bridge.dedup.stale_removed", keys=sorted(stale), count=len(stale)
            )
        return stale

    def clear(self) -> None:
        self._in_flight.clear()
