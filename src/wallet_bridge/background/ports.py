"""Registry of named persistent connections into the background context."""

from __future__ import annotations

import inspect
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol, Union, runtime_checkable

from wallet_bridge.background.operations import OperationTracker
from wallet_bridge.errors import error_response_fields
from wallet_bridge.messaging.rate_limit import Clock
from wallet_bridge.observability import get_logger, get_metrics

logger = get_logger(__name__)

WALLET_CONNECTION_PORT = "wallet-connection"
LONG_OPERATION_PORT = "long-operation"


@runtime_checkable
class PortConnection(Protocol):
    """Transport handle of a persistent connection."""

    def post_message(self, message: Mapping[str, Any]) -> None:
        """Deliver ``message`` to the other end."""
        ...


@dataclass(eq=False)
class ActivePort:
    """An open persistent connection. Ports compare by identity."""

    id: str
    name: str
    connection: PortConnection
    origin: str | None = None
    opened_at: float = field(default_factory=time.monotonic)

    def post(self, message: Mapping[str, Any]) -> None:
        self.connection.post_message(message)


PortHandler = Callable[[ActivePort, dict[str, Any]], Union[None, Awaitable[None]]]


class PortRegistry:
    """Tracks open ports, routes their traffic and reaps state on disconnect.

    Closing a port force-fails every operation that was started through it.
    ``wall_clock`` returns UNIX seconds and only feeds id generation.
    """

    def __init__(
        self,
        operations: OperationTracker,
        wall_clock: Clock | None = None,
    ) -> None:
        self.operations = operations
        self._wall_clock = wall_clock or time.time
        self._ports: dict[str, ActivePort] = {}
        self._handlers: dict[str, PortHandler] = {}

    @property
    def size(self) -> int:
        return len(self._ports)

    def __len__(self) -> int:
        return len(self._ports)

    def get(self, port_id: str) -> ActivePort | None:
        return self._ports.get(port_id)

    def ports(self, name: str | None = None) -> list[ActivePort]:
        return [port for port in self._ports.values() if name is None or port.name == name]

    def register_handler(self, name: str, handler: PortHandler) -> None:
        """Handle messages arriving on ports called ``name``; replaces any existing handler."""
        self._handlers[name] = handler

    def open(
        self, name: str, connection: PortConnection, origin: str | None = None
    ) -> ActivePort:
        """Register a new connection; its id is ``<name>_<epoch ms>``, suffixed on collision."""
        base_id = f"{name}_{int(self._wall_clock() * 1000)}"
        port_id = base_id
        suffix = 1
        while port_id in self._ports:
            port_id = f"{base_id}_{suffix}"
            suffix += 1
        port = ActivePort(id=port_id, name=name, connection=connection, origin=origin)
        self._ports[port_id] = port
        get_metrics().increment_counter("wallet_bridge_ports_opened_total", {"name": name})
        logger.info("wallet_bridge.port.opened", port_id=port_id, port_name=name)
        return port

    async def dispatch(self, port: ActivePort, message: Mapping[str, Any]) -> None:
        """Hand ``message`` to the handler for ``port.name``. Never raises."""
        handler = self._handlers.get(port.name)
        if handler is None:
            logger.warning(
                "wallet_bridge.port.no_handler", port_id=port.id, port_name=port.name
            )
            return
        try:
            result = handler(port, dict(message))
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            logger.exception(
                "wallet_bridge.port.handler_error", port_id=port.id, port_name=port.name
            )
            reply: dict[str, Any] = {**error_response_fields(exc)}
            if isinstance(message.get("requestId"), str):
                reply["requestId"] = message["requestId"]
            self._safe_post(port, reply)

    def close(self, port: ActivePort) -> list[str]:
        """Remove ``port`` and fail the operations it started. Returns the failed ids."""
        if self._ports.get(port.id) is not port:
            return []
        del self._ports[port.id]
        failed = self.operations.fail_for_port(port)
        get_metrics().increment_counter("wallet_bridge_ports_closed_total", {"name": port.name})
        logger.info(
            "wallet_bridge.port.closed",
            port_id=port.id,
            port_name=port.name,
            failed_operations=failed,
        )
        return failed

    def broadcast(self, message: Mapping[str, Any], name: str | None = None) -> int:
        """Post ``message`` to every open port (optionally only those called ``name``)."""
        delivered = 0
        for port in self.ports(name):
            if self._safe_post(port, message):
                delivered += 1
        return delivered

    def clear(self) -> None:
        self._ports.clear()

    def _safe_post(self, port: ActivePort, message: Mapping[str, Any]) -> bool:
        try:
            port.post(message)
        except Exception:
            logger.exception("wallet_bridge.port.post_failed", port_id=port.id)
            return False
        return True
