"""Background context: operations, ports, keep-alive and the coordinator that owns them."""

from wallet_bridge.background.alarms import AlarmHost, AsyncioAlarmHost
from wallet_bridge.background.coordinator import BackgroundCoordinator, LocalPort
from wallet_bridge.background.keepalive import KEEPALIVE_ALARM, Heartbeat, KeepAliveScheduler
from wallet_bridge.background.operations import ActiveOperation, OperationTracker
from wallet_bridge.background.ports import (
    LONG_OPERATION_PORT,
    WALLET_CONNECTION_PORT,
    ActivePort,
    PortConnection,
    PortRegistry,
)

__all__ = [
    "KEEPALIVE_ALARM",
    "LONG_OPERATION_PORT",
    "WALLET_CONNECTION_PORT",
    "ActiveOperation",
    "ActivePort",
    "AlarmHost",
    "AsyncioAlarmHost",
    "BackgroundCoordinator",
    "Heartbeat",
    "KeepAliveScheduler",
    "LocalPort",
    "OperationTracker",
    "PortConnection",
    "PortRegistry",
]
