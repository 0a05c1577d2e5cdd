"""Tests for the port registry."""

from typing import Any

import pytest

from wallet_bridge.background.operations import OperationTracker
from wallet_bridge.background.ports import (
    LONG_OPERATION_PORT,
    WALLET_CONNECTION_PORT,
    ActivePort,
    PortRegistry,
)
from wallet_bridge.errors import UserRejectedError
from wallet_bridge.observability import get_metrics
from wallet_bridge.testing.mocks import FakeClock, RecordingConnection


@pytest.fixture
def operations() -> OperationTracker:
    return OperationTracker(clock=FakeClock())


@pytest.fixture
def registry(operations: OperationTracker) -> PortRegistry:
    return PortRegistry(operations, wall_clock=FakeClock(1_700_000_000.0))


class TestPortRegistry:
    """Opening, closing and broadcasting."""

    def test_open_assigns_unique_ids(self, registry: PortRegistry) -> None:
        first = registry.open(WALLET_CONNECTION_PORT, RecordingConnection())
        second = registry.open(WALLET_CONNECTION_PORT, RecordingConnection())

        assert first.id == "wallet-connection_1700000000000"
        assert second.id == "wallet-connection_1700000000000_1"
        assert registry.size == 2
        assert registry.get(first.id) is first
        assert (
            get_metrics().get_counter(
                "wallet_bridge_ports_opened_total", {"name": WALLET_CONNECTION_PORT}
            )
            == 2
        )

    def test_ports_filter_by_name(self, registry: PortRegistry) -> None:
        registry.open(WALLET_CONNECTION_PORT, RecordingConnection())
        registry.open(LONG_OPERATION_PORT, RecordingConnection())
        assert len(registry.ports()) == 2
        assert [p.name for p in registry.ports(LONG_OPERATION_PORT)] == [LONG_OPERATION_PORT]

    def test_close_fails_linked_operations(
        self, registry: PortRegistry, operations: OperationTracker
    ) -> None:
        port = registry.open(WALLET_CONNECTION_PORT, RecordingConnection())
        operations.start("op1", "WB_CONNECT", port=port)
        operations.start("op2", "WB_CONNECT")

        failed = registry.close(port)

        assert failed == ["op1"]
        assert registry.size == 0
        assert operations.pending_count == 1

    def test_close_twice_is_noop(self, registry: PortRegistry) -> None:
        port = registry.open(WALLET_CONNECTION_PORT, RecordingConnection())
        registry.close(port)
        assert registry.close(port) == []

    def test_broadcast(self, registry: PortRegistry) -> None:
        a = RecordingConnection()
        b = RecordingConnection()
        broken = RecordingConnection(fail_with=RuntimeError("gone"))
        registry.open(WALLET_CONNECTION_PORT, a)
        registry.open(LONG_OPERATION_PORT, b)
        registry.open(WALLET_CONNECTION_PORT, broken)

        delivered = registry.broadcast({"type": "WB_SESSION_CHANGED", "session": None})

        assert delivered == 2
        assert a.messages == [{"type": "WB_SESSION_CHANGED", "session": None}]
        assert b.messages == a.messages

    def test_broadcast_by_name(self, registry: PortRegistry) -> None:
        a = RecordingConnection()
        b = RecordingConnection()
        registry.open(WALLET_CONNECTION_PORT, a)
        registry.open(LONG_OPERATION_PORT, b)
        assert registry.broadcast({"type": "X"}, name=WALLET_CONNECTION_PORT) == 1
        assert b.messages == []

    def test_clear(self, registry: PortRegistry) -> None:
        registry.open(WALLET_CONNECTION_PORT, RecordingConnection())
        registry.clear()
        assert len(registry) == 0


class TestPortDispatch:
    """Routing port traffic to per-name handlers."""

    async def test_dispatch_to_handler(self, registry: PortRegistry) -> None:
        seen: list[tuple[str, dict[str, Any]]] = []

        async def handler(port: ActivePort, data: dict[str, Any]) -> None:
            seen.append((port.id, data))

        registry.register_handler(WALLET_CONNECTION_PORT, handler)
        port = registry.open(WALLET_CONNECTION_PORT, RecordingConnection())
        await registry.dispatch(port, {"type": "WB_PING"})

        assert seen == [(port.id, {"type": "WB_PING"})]

    async def test_dispatch_without_handler_is_dropped(self, registry: PortRegistry) -> None:
        connection = RecordingConnection()
        port = registry.open(LONG_OPERATION_PORT, connection)
        await registry.dispatch(port, {"type": "WB_PING"})
        assert connection.messages == []

    async def test_handler_error_is_posted_back(self, registry: PortRegistry) -> None:
        def handler(port: ActivePort, data: dict[str, Any]) -> None:
            raise UserRejectedError()

        registry.register_handler(WALLET_CONNECTION_PORT, handler)
        connection = RecordingConnection()
        port = registry.open(WALLET_CONNECTION_PORT, connection)

        await registry.dispatch(port, {"type": "WB_CONNECT", "requestId": "r1"})

        assert connection.messages == [
            {
                "success": False,
                "error": "User rejected the request",
                "code": 4001,
                "requestId": "r1",
            }
        ]
