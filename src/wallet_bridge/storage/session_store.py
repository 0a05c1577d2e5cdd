"""Persistence of the single authenticated session."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from wallet_bridge.models.session import AuthSession
from wallet_bridge.observability import get_logger
from wallet_bridge.storage.base import KeyValueStorage

logger = get_logger(__name__)

SESSION_KEY = "session"

WallClock = Callable[[], float]


class SessionStore:
    """Stores one AuthSession under the ``session`` key.

    Expired or unreadable sessions are treated as absent and removed when
    encountered. ``wall_clock`` returns UNIX seconds.
    """

    def __init__(self, storage: KeyValueStorage, wall_clock: WallClock | None = None) -> None:
        self.storage = storage
        self._wall_clock = wall_clock or time.time

    async def load(self) -> AuthSession | None:
        raw = await self.storage.get(SESSION_KEY)
        if raw is None:
            return None
        try:
            session = AuthSession.model_validate(raw)
        except ValidationError:
            logger.warning("wallet_bridge.session.corrupt_removed")
            await self.storage.remove(SESSION_KEY)
            return None
        if session.is_expired(self._wall_clock()):
            logger.info("wallet_bridge.session.expired_removed", address=session.address)
            await self.storage.remove(SESSION_KEY)
            return None
        return session

    async def save(self, session: AuthSession) -> None:
        await self.storage.set(SESSION_KEY, session.model_dump(mode="json", by_alias=True))
        logger.info(
            "wallet_bridge.session.saved",
            address=session.address,
            chain_id=session.chain_id,
            account_mode=session.account_mode.value,
        )

    async def clear(self) -> bool:
        removed = await self.storage.remove(SESSION_KEY)
        if removed:
            logger.info("wallet_bridge.session.cleared")
        return removed

    async def public_view(self) -> dict[str, Any] | None:
        """The stored session without its token, or None."""
        session = await self.load()
        return session.public_view() if session else None
