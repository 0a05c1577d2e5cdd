"""Pytest fixtures and context managers for bridge tests.

Fixtures (use with pytest):
    fake_clock: Monotonic clock advanced by hand.
    wall_clock: UNIX-seconds clock advanced by hand.
    bridge_config: Config with localhost origins and short timeouts.
    memory_storage: Empty in-memory key/value storage.
    mock_wallet: Scriptable wallet provider.
    mock_auth_api: In-memory authentication API.
    alarm_host: Alarm host fired manually.
    coordinator: Started background coordinator over the mocks above.

Context managers:
    running_bridge(): Async context manager yielding a started LocalBridge.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import pytest

from wallet_bridge.background.coordinator import BackgroundCoordinator
from wallet_bridge.config import BridgeConfig
from wallet_bridge.runtime import LocalBridge
from wallet_bridge.storage.base import InMemoryStorage
from wallet_bridge.testing.mocks import FakeClock, ManualAlarmHost, MockAuthApi, MockWalletProvider

TEST_ORIGIN = "http://localhost:3000"
TEST_WALL_START = 1_700_000_000.0


def make_test_config(**overrides: Any) -> BridgeConfig:
    """Config tuned for tests: fast request timeout, everything else default."""
    values: dict[str, Any] = {"request_timeout": 5.0}
    values.update(overrides)
    return BridgeConfig(**values)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock(1000.0)


@pytest.fixture
def wall_clock() -> FakeClock:
    return FakeClock(TEST_WALL_START)


@pytest.fixture
def bridge_config() -> BridgeConfig:
    return make_test_config()


@pytest.fixture
def memory_storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def mock_wallet() -> MockWalletProvider:
    return MockWalletProvider()


@pytest.fixture
def mock_auth_api() -> MockAuthApi:
    return MockAuthApi()


@pytest.fixture
def alarm_host() -> ManualAlarmHost:
    return ManualAlarmHost()


@pytest.fixture
async def coordinator(
    bridge_config: BridgeConfig,
    memory_storage: InMemoryStorage,
    mock_auth_api: MockAuthApi,
    mock_wallet: MockWalletProvider,
    alarm_host: ManualAlarmHost,
    wall_clock: FakeClock,
) -> BackgroundCoordinator:
    """A started coordinator; the monotonic clock is real so timeouts still work."""
    background = BackgroundCoordinator(
        bridge_config,
        storage=memory_storage,
        api=mock_auth_api,
        providers=mock_wallet,
        alarm_host=alarm_host,
        wall_clock=wall_clock,
    )
    await background.start()
    return background


@asynccontextmanager
async def running_bridge(
    *,
    config: BridgeConfig | None = None,
    storage: InMemoryStorage | None = None,
    api: MockAuthApi | None = None,
    wallet: MockWalletProvider | None = None,
    alarm_host: ManualAlarmHost | None = None,
    origin: str = TEST_ORIGIN,
    **kwargs: Any,
) -> AsyncIterator[LocalBridge]:
    """Async context manager yielding a started in-process bridge.

    Example:
        >>> async with running_bridge() as bridge:
        ...     result = await bridge.page.connect()
    """
    bridge = LocalBridge(
        config or make_test_config(),
        storage=storage if storage is not None else InMemoryStorage(),
        api=api if api is not None else MockAuthApi(),
        providers=wallet if wallet is not None else MockWalletProvider(),
        alarm_host=alarm_host if alarm_host is not None else ManualAlarmHost(),
        origin=origin,
        **kwargs,
    )
    async with bridge:
        yield bridge


__all__ = [
    "TEST_ORIGIN",
    "TEST_WALL_START",
    "alarm_host",
    "bridge_config",
    "coordinator",
    "fake_clock",
    "make_test_config",
    "memory_storage",
    "mock_auth_api",
    "mock_wallet",
    "running_bridge",
    "wall_clock",
]
