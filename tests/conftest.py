"""Shared pytest configuration for wallet bridge tests."""

from __future__ import annotations

from collections.abc import Iterator

import pytest
from hypothesis import HealthCheck, settings

from wallet_bridge.observability import reset_metrics

# Load wallet_bridge.testing fixtures (fake_clock, memory_storage, mock_wallet, ...)
pytest_plugins = ["wallet_bridge.testing.fixtures"]

# The metrics reset below is autouse and safe to share across examples
settings.register_profile(
    "wallet_bridge", suppress_health_check=[HealthCheck.function_scoped_fixture]
)
settings.load_profile("wallet_bridge")


@pytest.fixture(autouse=True)
def _isolated_metrics() -> Iterator[None]:
    """Give every test a fresh metrics collector."""
    reset_metrics()
    yield
    reset_metrics()
