"""Background coordinator.

The coordinator owns every piece of transient background state: the
router with its token bucket and dedup map, the operation tracker, the
port registry, the keep-alive scheduler and one authentication
controller per consumer. The host may destroy the process at any time,
so ``start`` rebuilds all of it from empty and re-arms the keep-alive
alarm; only the session in storage survives.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import time
from collections.abc import Callable, Mapping
from contextvars import ContextVar
from typing import Any

from wallet_bridge import __version__
from wallet_bridge.auth.api import AuthApi
from wallet_bridge.auth.controller import AuthFlowController, ProviderSource
from wallet_bridge.auth.provider import ProviderSelector
from wallet_bridge.background.alarms import AlarmHost
from wallet_bridge.background.keepalive import Heartbeat, KeepAliveScheduler
from wallet_bridge.background.operations import OperationTracker
from wallet_bridge.background.ports import WALLET_CONNECTION_PORT, ActivePort, PortRegistry
from wallet_bridge.config import BridgeConfig
from wallet_bridge.errors import MessageValidationError, SessionError
from wallet_bridge.messaging.rate_limit import Clock
from wallet_bridge.messaging.router import MessageRouter, Reply, RouteOutcome
from wallet_bridge.models.enums import AccountMode, AuthState, MessageType, prefixed
from wallet_bridge.models.messages import BridgeMessage
from wallet_bridge.observability import bound_context, get_logger
from wallet_bridge.storage.base import KeyValueStorage
from wallet_bridge.storage.session_store import SessionStore

logger = get_logger(__name__)

DEFAULT_CONSUMER = "default"

_current_port: ContextVar[ActivePort | None] = ContextVar(
    "wallet_bridge_current_port", default=None
)


class BackgroundCoordinator:
    """Owns and wires the background context's registries.

    Attributes:
        router: Router for inbound messages
        operations: Tracker of in-progress operations
        ports: Registry of open persistent connections
        keepalive: Heartbeat scheduler
        controllers: Authentication controllers by consumer id
    """

    def __init__(
        self,
        config: BridgeConfig | None = None,
        *,
        storage: KeyValueStorage,
        api: AuthApi,
        providers: ProviderSource,
        alarm_host: AlarmHost,
        selector: ProviderSelector | None = None,
        clock: Clock | None = None,
        wall_clock: Clock | None = None,
    ) -> None:
        self.config = config or BridgeConfig()
        self.api = api
        self.alarm_host = alarm_host
        self.sessions = SessionStore(storage, wall_clock=wall_clock)
        self._providers = providers
        self._selector = selector or ProviderSelector()
        self._clock = clock or time.monotonic
        self._wall_clock = wall_clock or time.time
        self._listening = False
        self.started = False
        self.starts = 0
        self._build()

    def type_of(self, message_type: MessageType) -> str:
        """Wire name of ``message_type`` under the configured prefix."""
        return prefixed(message_type, self.config.protocol_prefix)

    async def start(self) -> None:
        """Cold-start re-initializer: rebuild state, re-arm the alarm, drop an expired session.

        Safe to call repeatedly.
        """
        self._build()
        if not self._listening:
            self.alarm_host.add_listener(self.on_alarm)
            self._listening = True
        self.keepalive.arm()
        session = await self.sessions.load()
        self.started = True
        self.starts += 1
        logger.info(
            "wallet_bridge.background.started",
            starts=self.starts,
            has_session=session is not None,
            handlers=self.router.list_handlers(),
        )

    def suspend(self) -> None:
        """Forget all transient state, as the host does when it suspends the process.

        Flows in progress are cancelled so none outlives the suspension.
        """
        cancelled = [c.consumer_id for c in self.controllers.values() if c.cancel()]
        self.router.reset()
        self.operations.clear()
        self.ports.clear()
        self.controllers.clear()
        self.started = False
        logger.info("wallet_bridge.background.suspended", cancelled_flows=cancelled)

    async def handle_message(
        self,
        message: BridgeMessage | Mapping[str, Any],
        origin: str | None,
        reply: Reply | None = None,
    ) -> RouteOutcome:
        """Route a one-shot message; connect requests are deduplicated."""
        message_type = (
            message.type if isinstance(message, BridgeMessage) else dict(message).get("type")
        )
        deduplicate = message_type == self.type_of(MessageType.CONNECT)
        return await self.router.handle(message, origin, reply=reply, deduplicate=deduplicate)

    def open_port(self, name: str, connection: Any, origin: str | None = None) -> ActivePort:
        return self.ports.open(name, connection, origin=origin)

    def close_port(self, port: ActivePort) -> list[str]:
        return self.ports.close(port)

    async def port_message(self, port: ActivePort, message: Mapping[str, Any]) -> None:
        if self.ports.get(port.id) is not port:
            logger.warning("wallet_bridge.background.stale_port", port_id=port.id)
            return
        await self.ports.dispatch(port, message)

    def on_alarm(self, name: str) -> Heartbeat | None:
        return self.keepalive.on_alarm(name)

    def controller_for(self, consumer_id: str) -> AuthFlowController:
        controller = self.controllers.get(consumer_id)
        if controller is None:
            controller = AuthFlowController(
                self._providers,
                self.api,
                self.sessions,
                self.config,
                consumer_id=consumer_id,
                selector=self._selector,
                notify=self.broadcast_session,
                clock=self._clock,
                wall_clock=self._wall_clock,
            )
            self.controllers[consumer_id] = controller
        return controller

    def broadcast_session(self, session: dict[str, Any] | None) -> int:
        """Tell every open port that the session changed."""
        delivered = self.ports.broadcast(
            {"type": self.type_of(MessageType.SESSION_CHANGED), "session": session}
        )
        logger.info(
            "wallet_bridge.background.session_broadcast",
            authenticated=session is not None,
            delivered=delivered,
        )
        return delivered

    def _build(self) -> None:
        self.operations = OperationTracker(self.config.operation_max_age, clock=self._clock)
        self.ports = PortRegistry(self.operations, wall_clock=self._wall_clock)
        self.router = MessageRouter(self.config, name="background", clock=self._clock)
        self.controllers: dict[str, AuthFlowController] = {}
        self.keepalive = KeepAliveScheduler(
            self.alarm_host,
            self.ports,
            self.operations,
            period=self.config.keepalive_period,
            sweepers=[self.router.cleanup_stale_requests],
            clock=self._clock,
        )

        register = self.router.register
        register(self.type_of(MessageType.PING), self._ping, exempt_from_rate_limit=True)
        register(self.type_of(MessageType.CHECK_EXTENSION), self._check_extension)
        register(self.type_of(MessageType.CONNECT), self._connect)
        register(self.type_of(MessageType.GET_SESSION), self._get_session)
        register(self.type_of(MessageType.VALIDATE_SESSION), self._validate_session)
        register(self.type_of(MessageType.DISCONNECT), self._disconnect)
        self.ports.register_handler(WALLET_CONNECTION_PORT, self._on_wallet_connection)

    async def _on_wallet_connection(self, port: ActivePort, data: dict[str, Any]) -> None:
        token = _current_port.set(port)
        try:
            with bound_context(context="background", port_id=port.id):
                await self.handle_message(
                    data, port.origin, reply=lambda result: port.post(result.to_wire())
                )
        finally:
            _current_port.reset(token)

    def _ping(self, message: BridgeMessage) -> dict[str, Any]:
        return {"pong": True, "timestamp": self._wall_clock()}

    def _check_extension(self, message: BridgeMessage) -> dict[str, Any]:
        return {"installed": True, "version": __version__}

    async def _connect(self, message: BridgeMessage) -> dict[str, Any]:
        consumer_id = message.get("consumerId") or DEFAULT_CONSUMER
        raw_mode = message.get("accountMode")
        try:
            account_mode = AccountMode(raw_mode) if raw_mode else None
        except ValueError as exc:
            raise MessageValidationError(f"unknown account mode {raw_mode!r}") from exc

        controller = self.controller_for(consumer_id)
        with bound_context(consumer_id=consumer_id, request_id=message.request_id):
            async with self.operations.track(message.type, port=_current_port.get()):
                status = await controller.connect(account_mode)

        if status.state is AuthState.AUTHENTICATED:
            return {"state": status.state.value, "session": await self.sessions.public_view()}
        raise controller.last_error or SessionError("Sign-in did not complete")

    async def _get_session(self, message: BridgeMessage) -> dict[str, Any]:
        return {"session": await self.sessions.public_view()}

    async def _validate_session(self, message: BridgeMessage) -> dict[str, Any]:
        session = await self.sessions.load()
        if session is None:
            return {"valid": False, "session": None}
        try:
            validation = await self.api.validate_session(session.token)
        except SessionError:
            validation = None
        if validation is None or not validation.valid:
            await self.sessions.clear()
            # a flow still running will store a fresh session of its own
            for controller in self.controllers.values():
                if not controller.in_progress:
                    controller.reset()
            self.broadcast_session(None)
            return {"valid": False, "session": None}
        return {"valid": True, "session": session.public_view(), "user": validation.user}

    async def _disconnect(self, message: BridgeMessage) -> dict[str, Any]:
        consumer_id = message.get("consumerId") or DEFAULT_CONSUMER
        await self.controller_for(consumer_id).disconnect()
        for other_id, controller in self.controllers.items():
            if other_id != consumer_id and not controller.in_progress:
                controller.reset()
        return {"disconnected": True}


class LocalPort:
    """Client end of a persistent connection into a coordinator.

    Both directions serialize through JSON and deliver asynchronously,
    like a port between separate processes.
    """

    def __init__(
        self,
        coordinator: BackgroundCoordinator,
        name: str,
        on_message: Callable[[dict[str, Any]], Any],
        origin: str | None = None,
    ) -> None:
        self._coordinator = coordinator
        self._on_message = on_message
        self._tasks: set[asyncio.Task[Any]] = set()
        self.port = coordinator.open_port(name, self, origin=origin)

    @property
    def connected(self) -> bool:
        return self._coordinator.ports.get(self.port.id) is self.port

    def post_message(self, message: Mapping[str, Any]) -> None:
        """Background to client."""
        data = json.loads(json.dumps(dict(message)))
        asyncio.get_running_loop().call_soon(self._deliver, data)

    def post(self, message: Mapping[str, Any]) -> None:
        """Client to background.

        Raises:
            RuntimeError: If the port was closed or the coordinator restarted
        """
        if not self.connected:
            raise RuntimeError(f"Port {self.port.id} is disconnected")
        data = json.loads(json.dumps(dict(message)))
        self._track(self._coordinator.port_message(self.port, data))

    def disconnect(self) -> list[str]:
        return self._coordinator.close_port(self.port)

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _deliver(self, data: dict[str, Any]) -> None:
        result = self._on_message(data)
        if inspect.isawaitable(result):
            self._track(result)

    def _track(self, awaitable: Any) -> None:
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)
        task.add_done_callback(self._finished)

    def _finished(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "wallet_bridge.port.delivery_failed",
                port_id=self.port.id,
                error=str(task.exception()),
            )
