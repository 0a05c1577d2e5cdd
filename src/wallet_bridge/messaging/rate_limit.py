"""Token-bucket rate limiting for inbound cross-context messages.

The bucket math is pure: ``consume`` takes a state and returns a new one,
so the caller decides where the state lives. ``TokenBucket`` is the
stateful wrapper a router owns. Denied requests are rejected immediately;
nothing is queued.

Example:
    >>> config = RateLimiterConfig(max_tokens=2, refill_rate=1.0)
    >>> state = create_state(config, now=0.0)
    >>> decision = consume(state, config, now=0.0)
    >>> decision.allowed, decision.state.tokens
    (True, 1.0)
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

Clock = Callable[[], float]


@dataclass(frozen=True)
class RateLimiterConfig:
    """Bucket capacity and refill rate in tokens per second."""

    max_tokens: int = 20
    refill_rate: float = 5.0

    def __post_init__(self) -> None:
        if self.max_tokens <= 0:
            raise ValueError("max_tokens must be positive")
        if self.refill_rate <= 0:
            raise ValueError("refill_rate must be positive")


@dataclass(frozen=True)
class RateLimiterState:
    """Available tokens and the timestamp of the last refill.

    Invariant: 0 <= tokens <= max_tokens of the owning config.
    """

    tokens: float
    last_refill: float


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    state: RateLimiterState


def create_state(config: RateLimiterConfig, now: float) -> RateLimiterState:
    """Return a full bucket."""
    return RateLimiterState(tokens=float(config.max_tokens), last_refill=now)


def consume(state: RateLimiterState, config: RateLimiterConfig, now: float) -> RateLimitDecision:
    """Try to take one token at time ``now``.

    Refill is proportional to the time since the last refill, capped at
    ``max_tokens``. A clock that moves backwards refills nothing.
    """
    elapsed = max(0.0, now - state.last_refill)
    candidate = min(float(config.max_tokens), state.tokens + elapsed * config.refill_rate)
    if candidate >= 1.0:
        return RateLimitDecision(True, RateLimiterState(tokens=candidate - 1.0, last_refill=now))
    return RateLimitDecision(False, RateLimiterState(tokens=candidate, last_refill=now))


class TokenBucket:
    """Token bucket shared by every message routed through one context. Not thread-safe."""

    __slots__ = ("config", "_clock", "_state")

    def __init__(self, config: RateLimiterConfig | None = None, clock: Clock | None = None) -> None:
        self.config = config or RateLimiterConfig()
        self._clock = clock or time.monotonic
        self._state = create_state(self.config, self._clock())

    @property
    def state(self) -> RateLimiterState:
        return self._state

    @property
    def tokens(self) -> float:
        return self._state.tokens

    def try_consume(self, now: float | None = None) -> bool:
        """Consume one token if available. Returns True if allowed."""
        decision = consume(self._state, self.config, self._clock() if now is None else now)
        self._state = decision.state
        return decision.allowed

    def reset(self) -> None:
        self._state = create_state(self.config, self._clock())
