"""Tests for session persistence."""

from pathlib import Path

import pytest

from wallet_bridge.models.enums import AccountMode
from wallet_bridge.models.session import AuthSession
from wallet_bridge.storage import SESSION_KEY, InMemoryStorage, SessionStore, SQLiteStorage
from wallet_bridge.testing.mocks import DEFAULT_TEST_ADDRESS, FakeClock

NOW = 1_700_000_000.0


def _session(expires_at: float = NOW + 3600) -> AuthSession:
    return AuthSession(
        address=DEFAULT_TEST_ADDRESS,
        chain_id="0x1",
        account_mode=AccountMode.DEMO,
        token="sess_secret",
        expires_at=expires_at,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(NOW)


@pytest.fixture
def store(memory_storage: InMemoryStorage, clock: FakeClock) -> SessionStore:
    return SessionStore(memory_storage, wall_clock=clock)


class TestSessionStore:
    """Saving, loading and expiring the session."""

    async def test_empty(self, store: SessionStore) -> None:
        assert await store.load() is None
        assert await store.public_view() is None
        assert await store.clear() is False

    async def test_save_uses_wire_names(
        self, store: SessionStore, memory_storage: InMemoryStorage
    ) -> None:
        await store.save(_session())
        raw = await memory_storage.get(SESSION_KEY)
        assert raw == {
            "address": DEFAULT_TEST_ADDRESS,
            "chainId": "0x1",
            "accountMode": "demo",
            "token": "sess_secret",
            "expiresAt": NOW + 3600,
        }

    async def test_load_round_trip(self, store: SessionStore) -> None:
        session = _session()
        await store.save(session)
        assert await store.load() == session

    async def test_public_view_hides_token(self, store: SessionStore) -> None:
        await store.save(_session())
        view = await store.public_view()
        assert view == {
            "address": DEFAULT_TEST_ADDRESS,
            "chainId": "0x1",
            "accountMode": "demo",
            "expiresAt": NOW + 3600,
        }

    async def test_expired_session_is_removed(
        self, store: SessionStore, clock: FakeClock, memory_storage: InMemoryStorage
    ) -> None:
        await store.save(_session(expires_at=NOW + 10))
        clock.advance(10)
        assert await store.load() is None
        assert memory_storage.keys() == []

    async def test_corrupt_session_is_removed(
        self, store: SessionStore, memory_storage: InMemoryStorage
    ) -> None:
        await memory_storage.set(SESSION_KEY, {"address": 42})
        assert await store.load() is None
        assert memory_storage.keys() == []

    async def test_clear(self, store: SessionStore) -> None:
        await store.save(_session())
        assert await store.clear() is True
        assert await store.load() is None

    async def test_sqlite_backed(self, tmp_path: Path, clock: FakeClock) -> None:
        path = tmp_path / "bridge.db"
        await SessionStore(SQLiteStorage(path), wall_clock=clock).save(_session())

        reloaded = await SessionStore(SQLiteStorage(path), wall_clock=clock).load()

        assert reloaded == _session()
