"""Message routing for one execution context.

The router is the single entry point for inbound cross-context messages.
Each message passes, in order: envelope parsing, the reserved type
prefix, the sender-origin allow-list, handler lookup and the shared token
bucket. A message failing any gate is dropped without a reply and
``route`` returns False. A message passing every gate is dispatched; the
handler's result, or its failure converted to error fields, is posted
back as a ``*_RESULT`` message and ``route`` returns True. Nothing raised
by a handler escapes the router.

Example:
    >>> router = MessageRouter(BridgeConfig())
    >>> router.register("WB_PING", lambda message: {"pong": True})
    >>> # handled = await router.route({"type": "WB_PING"}, "http://localhost:3000")
"""

from __future__ import annotations

import asyncio
import inspect
import time
from collections import deque
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Union

from pydantic import ValidationError

from wallet_bridge.config import BridgeConfig
from wallet_bridge.errors import BridgeError, MessageValidationError, error_response_fields
from wallet_bridge.messaging.dedup import RequestDeduplicator
from wallet_bridge.messaging.origin import OriginValidator
from wallet_bridge.messaging.rate_limit import Clock, RateLimiterConfig, TokenBucket
from wallet_bridge.models.messages import BridgeMessage, ResultMessage
from wallet_bridge.observability import get_logger, get_metrics

logger = get_logger(__name__)

HandlerResult = Union[Mapping[str, Any], ResultMessage, None]
Handler = Callable[[BridgeMessage], Union[HandlerResult, Awaitable[HandlerResult]]]
Reply = Callable[[ResultMessage], Union[None, Awaitable[None]]]
DedupKey = Callable[[BridgeMessage], str]

DEFAULT_LOG_SIZE = 100


def scoped_dedup_key(message: BridgeMessage) -> str:
    """Dedup key: the message type, scoped to ``consumerId`` when present.

    Example:
        >>> scoped_dedup_key(BridgeMessage(type="WB_CONNECT"))
        'WB_CONNECT'
        >>> scoped_dedup_key(BridgeMessage.model_validate({"type": "WB_CONNECT", "consumerId": "tab-1"}))
        'WB_CONNECT:tab-1'
    """
    consumer = message.get("consumerId")
    if consumer:
        return f"{message.type}:{consumer}"
    return message.type


def type_only_dedup_key(message: BridgeMessage) -> str:
    return message.type


@dataclass(frozen=True)
class RegisteredHandler:
    message_type: str
    fn: Handler
    exempt_from_rate_limit: bool = False
    required_fields: tuple[str, ...] = ()


@dataclass(frozen=True)
class RouteOutcome:
    """What happened to one routed message.

    ``result`` is None when the message was rejected before dispatch.
    """

    handled: bool
    result: ResultMessage | None = None
    reason: str | None = None
    deduplicated: bool = False


@dataclass(frozen=True)
class RouteLogEntry:
    timestamp: float
    message_type: str | None
    request_id: str | None
    origin: str | None
    decision: str


class MessageRouter:
    """Validates, throttles, deduplicates and dispatches inbound messages.

    Attributes:
        name: Context name used in logs (e.g. "relay", "background")
        config: Effective bridge configuration
    """

    def __init__(
        self,
        config: BridgeConfig | None = None,
        *,
        name: str = "router",
        origin_validator: Callable[[str | None], bool] | None = None,
        rate_limiter: TokenBucket | None = None,
        deduplicator: RequestDeduplicator | None = None,
        replier: Reply | None = None,
        dedup_key: DedupKey = scoped_dedup_key,
        clock: Clock | None = None,
        log_size: int = DEFAULT_LOG_SIZE,
    ) -> None:
        self.config = config or BridgeConfig()
        self.name = name
        self._clock = clock or time.monotonic
        self._origin_allowed = origin_validator or OriginValidator(self.config.allowed_origins)
        self._rate_limiter = rate_limiter or TokenBucket(
            RateLimiterConfig(
                max_tokens=self.config.rate_limit_max_tokens,
                refill_rate=self.config.rate_limit_refill_rate,
            ),
            clock=self._clock,
        )
        self._deduplicator = deduplicator or RequestDeduplicator(
            self.config.request_timeout, clock=self._clock
        )
        self._replier = replier
        self._dedup_key = dedup_key
        self._handlers: dict[str, RegisteredHandler] = {}
        self._log: deque[RouteLogEntry] = deque(maxlen=log_size)

    @property
    def rate_limiter(self) -> TokenBucket:
        return self._rate_limiter

    @property
    def deduplicator(self) -> RequestDeduplicator:
        return self._deduplicator

    def set_replier(self, replier: Reply | None) -> None:
        self._replier = replier

    def register(
        self,
        message_type: str,
        handler: Handler,
        *,
        exempt_from_rate_limit: bool = False,
        required_fields: Iterable[str] = (),
    ) -> None:
        """Register ``handler`` for ``message_type``, replacing any existing one."""
        if message_type in self._handlers:
            logger.debug(
                "wallet_bridge.router.handler_replaced", router=self.name, message_type=message_type
            )
        self._handlers[message_type] = RegisteredHandler(
            message_type=message_type,
            fn=handler,
            exempt_from_rate_limit=exempt_from_rate_limit,
            required_fields=tuple(required_fields),
        )

    def unregister(self, message_type: str) -> bool:
        """Remove the handler for ``message_type``. Returns True iff one existed."""
        return self._handlers.pop(message_type, None) is not None

    def has_handler(self, message_type: str) -> bool:
        return message_type in self._handlers

    def list_handlers(self) -> list[str]:
        return sorted(self._handlers)

    async def route(
        self,
        message: BridgeMessage | Mapping[str, Any],
        origin: str | None,
        reply: Reply | None = None,
    ) -> bool:
        """Gate and dispatch ``message``. Returns True iff it was dispatched."""
        outcome = await self.handle(message, origin, reply=reply)
        return outcome.handled

    async def route_with_deduplication(
        self,
        message: BridgeMessage | Mapping[str, Any],
        origin: str | None,
        reply: Reply | None = None,
    ) -> bool:
        """Like ``route`` but concurrent messages with the same dedup key run the handler once.

        A duplicate waits for the in-flight request and receives its result
        under its own ``requestId``.
        """
        outcome = await self.handle(message, origin, reply=reply, deduplicate=True)
        return outcome.handled

    async def handle(
        self,
        message: BridgeMessage | Mapping[str, Any],
        origin: str | None,
        reply: Reply | None = None,
        deduplicate: bool = False,
    ) -> RouteOutcome:
        """Gate, dispatch and reply; return the full outcome. Never raises."""
        parsed = self._parse(message)
        if parsed is None:
            return self._reject(None, origin, "malformed")

        registered, reason = self._gate(parsed, origin)
        if registered is None:
            return self._reject(parsed, origin, reason or "rejected")

        if deduplicate:
            outcome = await self._dispatch_deduplicated(registered, parsed)
        else:
            outcome = await self._dispatch(registered, parsed)

        self._record(parsed, origin, "deduplicated" if outcome.deduplicated else "dispatched")
        if outcome.result is not None:
            await self._post(outcome.result, reply)
        return outcome

    def cleanup_stale_requests(self, now: float | None = None) -> set[str]:
        """Drop dedup entries older than the request timeout."""
        return self._deduplicator.cleanup_stale_requests(now)

    def recent_log(self, n: int = 20) -> list[RouteLogEntry]:
        """Return up to ``n`` most recent routing decisions, oldest first."""
        if n <= 0:
            return []
        return list(self._log)[-n:]

    def reset(self) -> None:
        """Forget transient state: refill the bucket, drop dedup entries and the log."""
        self._rate_limiter.reset()
        self._deduplicator.clear()
        self._log.clear()

    def _parse(self, message: BridgeMessage | Mapping[str, Any]) -> BridgeMessage | None:
        if isinstance(message, BridgeMessage):
            return message
        if not isinstance(message, Mapping):
            return None
        try:
            return BridgeMessage.model_validate(dict(message))
        except ValidationError:
            return None

    def _gate(
        self, message: BridgeMessage, origin: str | None
    ) -> tuple[RegisteredHandler | None, str | None]:
        if not message.type.startswith(self.config.protocol_prefix):
            return None, "prefix"
        if not self._origin_allowed(origin):
            return None, "origin"
        registered = self._handlers.get(message.type)
        if registered is None:
            return None, "unknown_type"
        if not registered.exempt_from_rate_limit and not self._rate_limiter.try_consume():
            get_metrics().increment_counter(
                "wallet_bridge_rate_limited_total", {"router": self.name, "type": message.type}
            )
            logger.warning(
                "wallet_bridge.router.rate_limited",
                router=self.name,
                message_type=message.type,
                request_id=message.request_id,
            )
            return None, "rate_limited"
        return registered, None

    def _reject(
        self, message: BridgeMessage | None, origin: str | None, reason: str
    ) -> RouteOutcome:
        get_metrics().increment_counter(
            "wallet_bridge_messages_rejected_total", {"router": self.name, "reason": reason}
        )
        logger.debug(
            "wallet_bridge.router.rejected",
            router=self.name,
            reason=reason,
            message_type=message.type if message else None,
            origin=origin,
        )
        self._record(message, origin, f"rejected:{reason}")
        return RouteOutcome(handled=False, reason=reason)

    async def _dispatch_deduplicated(
        self, registered: RegisteredHandler, message: BridgeMessage
    ) -> RouteOutcome:
        key = self._dedup_key(message)
        existing = self._deduplicator.get(key)
        # a settled handle is released on the next loop iteration
        if existing is not None and not existing.handle.done():
            get_metrics().increment_counter(
                "wallet_bridge_deduplicated_total", {"router": self.name, "type": message.type}
            )
            logger.info(
                "wallet_bridge.router.deduplicated",
                router=self.name,
                key=key,
                request_id=message.request_id,
            )
            try:
                shared: RouteOutcome = await asyncio.shield(existing.handle)
            except asyncio.CancelledError:
                if not existing.handle.cancelled():
                    raise
                return RouteOutcome(handled=False, reason="cancelled", deduplicated=True)
            result = shared.result.with_request_id(message.request_id) if shared.result else None
            return RouteOutcome(
                handled=shared.handled, result=result, reason=shared.reason, deduplicated=True
            )

        handle: asyncio.Future[RouteOutcome] = asyncio.get_running_loop().create_future()
        self._deduplicator.mark_in_flight(key, handle)
        try:
            outcome = await self._dispatch(registered, message)
            handle.set_result(outcome)
            return outcome
        finally:
            if not handle.done():
                handle.cancel()

    async def _dispatch(self, registered: RegisteredHandler, message: BridgeMessage) -> RouteOutcome:
        metrics = get_metrics()
        labels = {"router": self.name, "type": message.type}
        metrics.increment_counter("wallet_bridge_messages_routed_total", labels)

        missing = [field for field in registered.required_fields if message.get(field) is None]
        if missing:
            error = MessageValidationError(
                f"missing required field(s): {', '.join(missing)}", {"missing": missing}
            )
            logger.warning(
                "wallet_bridge.router.missing_fields",
                router=self.name,
                message_type=message.type,
                missing=missing,
            )
            return RouteOutcome(
                handled=True, result=ResultMessage.for_request(message, error.to_response_fields())
            )

        started = time.perf_counter()
        try:
            value = registered.fn(message)
            if inspect.isawaitable(value):
                value = await value
            result = self._to_result(message, value)
        except BridgeError as exc:
            metrics.increment_counter("wallet_bridge_handler_errors_total", labels)
            logger.warning(
                "wallet_bridge.router.handler_failed",
                router=self.name,
                message_type=message.type,
                request_id=message.request_id,
                error=exc.to_dict(),
            )
            result = ResultMessage.for_request(message, exc.to_response_fields())
        except Exception as exc:
            metrics.increment_counter("wallet_bridge_handler_errors_total", labels)
            logger.exception(
                "wallet_bridge.router.handler_error",
                router=self.name,
                message_type=message.type,
                request_id=message.request_id,
            )
            result = ResultMessage.for_request(message, error_response_fields(exc))
        finally:
            metrics.observe_histogram(
                "wallet_bridge_handler_duration_seconds", time.perf_counter() - started, labels
            )
        return RouteOutcome(handled=True, result=result)

    @staticmethod
    def _to_result(message: BridgeMessage, value: HandlerResult) -> ResultMessage:
        if isinstance(value, ResultMessage):
            return value.with_request_id(message.request_id)
        if value is None:
            return ResultMessage.for_request(message)
        if isinstance(value, Mapping):
            return ResultMessage.for_request(message, dict(value))
        raise TypeError(f"Handler for {message.type} returned {type(value).__name__}")

    async def _post(self, result: ResultMessage, reply: Reply | None) -> None:
        target = reply or self._replier
        if target is None:
            return
        try:
            posted = target(result)
            if inspect.isawaitable(posted):
                await posted
        except Exception:
            logger.exception(
                "wallet_bridge.router.reply_failed", router=self.name, result_type=result.type
            )

    def _record(self, message: BridgeMessage | None, origin: str | None, decision: str) -> None:
        self._log.append(
            RouteLogEntry(
                timestamp=self._clock(),
                message_type=message.type if message else None,
                request_id=message.request_id if message else None,
                origin=origin,
                decision=decision,
            )
        )
