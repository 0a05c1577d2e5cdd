"""End-to-end tests: page -> relay -> background and back."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import pytest

from wallet_bridge import __version__
from wallet_bridge.background.keepalive import KEEPALIVE_ALARM
from wallet_bridge.errors import BridgeTimeoutError
from wallet_bridge.models.enums import AccountMode, AuthState
from wallet_bridge.storage.base import InMemoryStorage
from wallet_bridge.testing.fixtures import make_test_config, running_bridge
from wallet_bridge.testing.mocks import (
    DEFAULT_TEST_ADDRESS,
    FakeClock,
    ManualAlarmHost,
    MockAuthApi,
    MockWalletProvider,
)


async def eventually(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Wait until ``predicate`` holds."""

    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(_poll(), timeout)


class SessionLog:
    """Collects session-changed notifications seen by the page."""

    def __init__(self) -> None:
        self.events: list[dict[str, Any] | None] = []

    def __call__(self, session: dict[str, Any] | None) -> None:
        self.events.append(session)


class TestHandshake:
    """Bridge presence and liveness."""

    async def test_extension_announced(self) -> None:
        async with running_bridge() as bridge:
            await eventually(lambda: bridge.page.extension_present)

    async def test_ping_and_check_extension(self) -> None:
        async with running_bridge() as bridge:
            pong = await bridge.page.ping()
            installed = await bridge.page.check_extension()

        assert pong.success
        assert pong.data["pong"] is True
        assert installed.data == {"installed": True, "version": __version__}

    async def test_disallowed_page_gets_no_reply(self) -> None:
        config = make_test_config(request_timeout=0.05)
        async with running_bridge(config=config, origin="https://evil.example") as bridge:
            with pytest.raises(BridgeTimeoutError):
                await bridge.page.ping()
            await bridge.settle()
            assert not bridge.page.extension_present
            assert bridge.relay.router.recent_log(1)[0].decision == "rejected:origin"


class TestSignIn:
    """The full Sign-In With Ethereum flow across contexts."""

    async def test_connect(self) -> None:
        storage = InMemoryStorage()
        api = MockAuthApi()
        async with running_bridge(storage=storage, api=api, consumer_id="tab-1") as bridge:
            log = SessionLog()
            bridge.page.on_session_changed(log)

            result = await bridge.page.connect(AccountMode.DEMO)
            await eventually(lambda: bool(log.events))

            controller = bridge.coordinator.controller_for("tab-1")

        assert result.success
        assert result.data["state"] == "authenticated"
        assert result.request_id is not None
        assert result.request_id.startswith("req_")
        assert bridge.page.session == result.data["session"]
        assert bridge.page.session["address"] == DEFAULT_TEST_ADDRESS
        assert bridge.page.session["accountMode"] == "demo"
        assert log.events == [result.data["session"]]
        assert controller.state is AuthState.AUTHENTICATED
        assert storage.keys() == ["session"]
        assert api.calls["verify"] == 1

    async def test_user_rejection(self) -> None:
        wallet = MockWalletProvider()
        wallet.reject()
        storage = InMemoryStorage()
        async with running_bridge(wallet=wallet, storage=storage) as bridge:
            result = await bridge.page.connect()

        assert not result.success
        assert result.code == 4001
        assert result.error
        assert bridge.page.session is None
        assert storage.keys() == []

    async def test_double_click_prompts_wallet_once(self) -> None:
        wallet = MockWalletProvider()
        gate = wallet.hold("personal_sign")
        async with running_bridge(wallet=wallet) as bridge:
            first = asyncio.create_task(bridge.page.connect())
            second = asyncio.create_task(bridge.page.connect())
            await eventually(lambda: bool(wallet.calls("personal_sign")))
            gate.set()
            results = await asyncio.gather(first, second)

        assert all(r.success for r in results)
        assert results[0].request_id != results[1].request_id
        assert len(wallet.calls("eth_requestAccounts")) == 1

    async def test_two_pages_do_not_share_a_flow(self) -> None:
        wallet = MockWalletProvider()
        async with running_bridge(wallet=wallet, consumer_id="tab-a") as bridge:
            await bridge.page.connect()
            bridge.page.consumer_id = "tab-b"
            await bridge.page.connect()

        assert len(wallet.calls("eth_requestAccounts")) == 2
        assert set(bridge.coordinator.controllers) == {"tab-a", "tab-b"}


class TestSessionLifecycle:
    """Validation, disconnect and background restarts."""

    async def test_validate_and_disconnect(self) -> None:
        api = MockAuthApi()
        async with running_bridge(api=api) as bridge:
            log = SessionLog()
            await bridge.page.connect()
            await bridge.settle()
            bridge.page.on_session_changed(log)

            assert await bridge.page.validate_session()
            result = await bridge.page.disconnect()
            await eventually(lambda: log.events == [None])

            assert result.data["disconnected"] is True
            assert await bridge.page.get_session() is None
            assert not await bridge.page.validate_session()
        assert api.tokens == set()

    async def test_revoked_session_is_cleared(self) -> None:
        api = MockAuthApi()
        async with running_bridge(api=api) as bridge:
            await bridge.page.connect()
            await bridge.settle()
            log = SessionLog()
            bridge.page.on_session_changed(log)
            for token in list(api.tokens):
                api.revoke(token)

            assert not await bridge.page.validate_session()
            await eventually(lambda: log.events == [None])
            assert bridge.page.session is None

    async def test_session_survives_background_restart(self) -> None:
        async with running_bridge() as bridge:
            await bridge.page.connect()
            await bridge.restart_background()

            session = await bridge.page.get_session()
            assert session is not None
            assert session["address"] == DEFAULT_TEST_ADDRESS
            assert await bridge.page.validate_session()
            assert bridge.coordinator.starts == 2

    async def test_expired_session_is_gone_after_restart(self) -> None:
        wall_clock = FakeClock(1_700_000_000.0)
        async with running_bridge(wall_clock=wall_clock) as bridge:
            await bridge.page.connect()
            wall_clock.advance(bridge.config.session_ttl)
            await bridge.restart_background()

            assert await bridge.page.get_session() is None

    async def test_connect_again_after_restart(self) -> None:
        wallet = MockWalletProvider()
        async with running_bridge(wallet=wallet) as bridge:
            await bridge.restart_background()
            result = await bridge.page.connect()

        assert result.success


class TestKeepAlive:
    """Heartbeats while the relay holds a port open."""

    async def test_heartbeat_sees_relay_port(self) -> None:
        alarms = ManualAlarmHost()
        async with running_bridge(alarm_host=alarms) as bridge:
            assert KEEPALIVE_ALARM in alarms.alarms
            await alarms.fire(KEEPALIVE_ALARM)
            heartbeat = bridge.coordinator.keepalive.last_heartbeat

        assert heartbeat is not None
        assert heartbeat.ports == 1
        assert heartbeat.keep_alive
