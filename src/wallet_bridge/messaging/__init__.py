"""Cross-context messaging: origin checks, throttling, deduplication and routing."""

from wallet_bridge.messaging.channel import ContextRunner, Envelope, MessageChannel
from wallet_bridge.messaging.dedup import InFlightRequest, RequestDeduplicator
from wallet_bridge.messaging.origin import OriginValidator
from wallet_bridge.messaging.rate_limit import (
    RateLimitDecision,
    RateLimiterConfig,
    RateLimiterState,
    TokenBucket,
    consume,
    create_state,
)
from wallet_bridge.messaging.router import (
    MessageRouter,
    RegisteredHandler,
    RouteOutcome,
    scoped_dedup_key,
    type_only_dedup_key,
)

__all__ = [
    "ContextRunner",
    "Envelope",
    "InFlightRequest",
    "MessageChannel",
    "MessageRouter",
    "OriginValidator",
    "RateLimitDecision",
    "RateLimiterConfig",
    "RateLimiterState",
    "RegisteredHandler",
    "RequestDeduplicator",
    "RouteOutcome",
    "TokenBucket",
    "consume",
    "create_state",
    "scoped_dedup_key",
    "type_only_dedup_key",
]
