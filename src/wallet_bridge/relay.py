"""Relay context.

The relay sits between a web page and the background coordinator. It
runs its own router over page traffic; accepted requests are forwarded
to the background over a persistent ``wallet-connection`` port and the
background's reply is sent back to the page under the page's request id.
Session-changed broadcasts from the background are passed down to the
page unchanged.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any

from wallet_bridge.background.coordinator import BackgroundCoordinator, LocalPort
from wallet_bridge.background.ports import WALLET_CONNECTION_PORT
from wallet_bridge.config import BridgeConfig
from wallet_bridge.errors import BridgeTimeoutError
from wallet_bridge.messaging.channel import MessageChannel
from wallet_bridge.messaging.router import MessageRouter
from wallet_bridge.models.enums import RESULT_SUFFIX, MessageType, prefixed, result_type
from wallet_bridge.models.ids import generate_id
from wallet_bridge.models.messages import BridgeMessage, ResultMessage
from wallet_bridge.observability import get_logger

logger = get_logger(__name__)

FORWARDED_TYPES = (
    MessageType.PING,
    MessageType.CHECK_EXTENSION,
    MessageType.CONNECT,
    MessageType.GET_SESSION,
    MessageType.VALIDATE_SESSION,
    MessageType.DISCONNECT,
)


class RelayBridge:
    """Forwards page requests to the background and relays replies back.

    Attributes:
        origin: Origin of the page this relay is attached to
        router: Router gating page traffic
    """

    def __init__(
        self,
        coordinator: BackgroundCoordinator,
        to_page: MessageChannel,
        origin: str,
        config: BridgeConfig | None = None,
    ) -> None:
        self.config = config or coordinator.config
        self.coordinator = coordinator
        self.to_page = to_page
        self.origin = origin
        self.router = MessageRouter(self.config, name="relay", replier=self._reply_to_page)
        self._link: LocalPort | None = None
        self._pending: dict[str, asyncio.Future[dict[str, Any]]] = {}
        for message_type in FORWARDED_TYPES:
            self.router.register(self._type(message_type), self._forward)

    def _type(self, message_type: MessageType) -> str:
        return prefixed(message_type, self.config.protocol_prefix)

    def start(self) -> None:
        """Connect to the background and announce the bridge to the page."""
        self._ensure_link()
        self.to_page.post({"type": self._type(MessageType.EXTENSION_PRESENT)}, origin=self.origin)
        logger.info("wallet_bridge.relay.started", origin=self.origin)

    def stop(self) -> None:
        if self._link is not None and self._link.connected:
            self._link.disconnect()
        self._link = None
        for future in self._pending.values():
            if not future.done():
                future.cancel()
        self._pending.clear()

    async def handle(self, data: Mapping[str, Any], origin: str | None) -> bool:
        """Entry point for messages posted by the page."""
        return await self.router.route(data, origin)

    def _ensure_link(self) -> LocalPort:
        # the background may have been recreated since the last request
        if self._link is None or not self._link.connected:
            self._link = LocalPort(
                self.coordinator,
                WALLET_CONNECTION_PORT,
                self._on_background_message,
                origin=self.origin,
            )
        return self._link

    async def _forward(self, message: BridgeMessage) -> ResultMessage:
        link = self._ensure_link()
        correlation_id = generate_id("fwd_")
        future: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
        self._pending[correlation_id] = future
        try:
            link.post({**message.to_wire(), "requestId": correlation_id})
            data = await asyncio.wait_for(future, self.config.request_timeout)
        except asyncio.TimeoutError as exc:
            raise BridgeTimeoutError(message.type, self.config.request_timeout) from exc
        finally:
            self._pending.pop(correlation_id, None)
        data.setdefault("type", result_type(message.type))
        return ResultMessage.model_validate(data).with_request_id(message.request_id)

    def _on_background_message(self, data: dict[str, Any]) -> None:
        message_type = data.get("type")
        request_id = data.get("requestId")
        if isinstance(message_type, str) and message_type.endswith(RESULT_SUFFIX):
            future = self._pending.get(request_id) if isinstance(request_id, str) else None
            if future is not None and not future.done():
                future.set_result(data)
            else:
                logger.debug("wallet_bridge.relay.orphan_result", request_id=request_id)
            return
        if message_type == self._type(MessageType.SESSION_CHANGED):
            self.to_page.post(data, origin=self.origin)
            return
        if "success" in data and isinstance(request_id, str) and request_id in self._pending:
            # a port-level failure reply without a type
            future = self._pending[request_id]
            if not future.done():
                future.set_result(data)
            return
        logger.warning("wallet_bridge.relay.unexpected_message", message_type=message_type)

    def _reply_to_page(self, result: ResultMessage) -> None:
        self.to_page.post(result, origin=self.origin)
