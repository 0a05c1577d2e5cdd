"""Testing utilities for code built on the wallet bridge.

Modules:
    fixtures: Pytest fixtures (fake_clock, memory_storage, mock_wallet,
              mock_auth_api, alarm_host, coordinator) and the
              running_bridge() context manager.
    mocks: Fakes for the clock, wallet provider, authentication API,
           alarm host and port transport.

Example:
    >>> from wallet_bridge.testing import MockWalletProvider, MockAuthApi
    >>> from wallet_bridge.testing.fixtures import running_bridge
"""

from wallet_bridge.testing.mocks import (
    FakeClock,
    ManualAlarmHost,
    MockAuthApi,
    MockWalletProvider,
    RecordingConnection,
)

__all__ = [
    "FakeClock",
    "ManualAlarmHost",
    "MockAuthApi",
    "MockWalletProvider",
    "RecordingConnection",
]
