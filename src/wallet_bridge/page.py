"""Page context client.

``PageClient`` is what a web page uses to talk to the bridge. Requests
carry a generated ``requestId``; replies are correlated by that id and
bounded by a timeout. Notifications from the relay (bridge presence,
session changes) pass through the page's own router before reaching
listeners.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Union

from wallet_bridge.config import BridgeConfig
from wallet_bridge.errors import BridgeTimeoutError
from wallet_bridge.messaging.channel import MessageChannel
from wallet_bridge.messaging.router import MessageRouter
from wallet_bridge.models.enums import RESULT_SUFFIX, AccountMode, MessageType, prefixed
from wallet_bridge.models.ids import generate_id
from wallet_bridge.models.messages import BridgeMessage, ResultMessage
from wallet_bridge.observability import get_logger

logger = get_logger(__name__)

SessionChangedListener = Callable[[Union[dict[str, Any], None]], Union[None, Awaitable[None]]]


class PageClient:
    """Request/response client for a web page.

    Attributes:
        origin: This page's origin
        consumer_id: Identifier scoping this page's connect requests
        extension_present: Whether the relay announced itself
        session: Last session seen in a reply or notification
    """

    def __init__(
        self,
        to_relay: MessageChannel,
        origin: str,
        config: BridgeConfig | None = None,
        *,
        consumer_id: str | None = None,
        request_timeout: float | None = None,
    ) -> None:
        self.config = config or BridgeConfig()
        self.to_relay = to_relay
        self.origin = origin
        self.consumer_id = consumer_id or generate_id("tab_")
        self.request_timeout = request_timeout or self.config.request_timeout
        self.extension_present = False
        self.session: dict[str, Any] | None = None
        self._pending: dict[str, asyncio.Future[ResultMessage]] = {}
        self._listeners: list[SessionChangedListener] = []
        self.router = MessageRouter(self.config, name="page")
        self.router.register(self._type(MessageType.SESSION_CHANGED), self._on_session_changed)
        self.router.register(self._type(MessageType.EXTENSION_PRESENT), self._on_extension_present)

    def _type(self, message_type: MessageType) -> str:
        return prefixed(message_type, self.config.protocol_prefix)

    def on_session_changed(self, listener: SessionChangedListener) -> Callable[[], None]:
        """Subscribe to session changes. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    async def request(
        self,
        message_type: MessageType | str,
        payload: Mapping[str, Any] | None = None,
        timeout: float | None = None,
    ) -> ResultMessage:
        """Send a request and wait for its reply.

        Raises:
            BridgeTimeoutError: If no reply arrives in time
        """
        wire_type = (
            self._type(message_type) if isinstance(message_type, MessageType) else message_type
        )
        request_id = generate_id("req_")
        limit = timeout or self.request_timeout
        future: asyncio.Future[ResultMessage] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            self.to_relay.post(
                {**(payload or {}), "type": wire_type, "requestId": request_id},
                origin=self.origin,
            )
            return await asyncio.wait_for(future, limit)
        except asyncio.TimeoutError as exc:
            raise BridgeTimeoutError(wire_type, limit, {"request_id": request_id}) from exc
        finally:
            self._pending.pop(request_id, None)

    async def ping(self) -> ResultMessage:
        return await self.request(MessageType.PING)

    async def check_extension(self) -> ResultMessage:
        return await self.request(MessageType.CHECK_EXTENSION)

    async def connect(self, account_mode: AccountMode | None = None) -> ResultMessage:
        payload: dict[str, Any] = {"consumerId": self.consumer_id}
        if account_mode is not None:
            payload["accountMode"] = account_mode.value
        result = await self.request(MessageType.CONNECT, payload)
        if result.success:
            self.session = result.data.get("session")
        return result

    async def get_session(self) -> dict[str, Any] | None:
        result = await self.request(MessageType.GET_SESSION)
        self.session = result.data.get("session") if result.success else None
        return self.session

    async def validate_session(self) -> bool:
        result = await self.request(MessageType.VALIDATE_SESSION)
        return bool(result.success and result.data.get("valid"))

    async def disconnect(self) -> ResultMessage:
        result = await self.request(MessageType.DISCONNECT, {"consumerId": self.consumer_id})
        if result.success:
            self.session = None
        return result

    async def handle_inbound(self, data: Mapping[str, Any], origin: str | None) -> bool:
        """Entry point for messages posted to the page by the relay."""
        message_type = data.get("type")
        if isinstance(message_type, str) and message_type.endswith(RESULT_SUFFIX):
            return self._resolve(dict(data))
        return await self.router.route(data, origin)

    def fail_pending(self) -> None:
        for future in self._pending.values():
            if not future.done():
                future.cancel()

    def _resolve(self, data: dict[str, Any]) -> bool:
        request_id = data.get("requestId")
        future = self._pending.get(request_id) if isinstance(request_id, str) else None
        if future is None or future.done():
            logger.debug("wallet_bridge.page.orphan_result", request_id=request_id)
            return False
        future.set_result(ResultMessage.model_validate(data))
        return True

    async def _on_session_changed(self, message: BridgeMessage) -> None:
        self.session = message.get("session")
        for listener in list(self._listeners):
            try:
                result = listener(self.session)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("wallet_bridge.page.listener_failed")

    def _on_extension_present(self, message: BridgeMessage) -> None:
        self.extension_present = True
