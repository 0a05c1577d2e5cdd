"""Session and remote authentication API models."""

from __future__ import annotations

from typing import Any

from pydantic import Field

from wallet_bridge.models.base import BridgeBaseModel
from wallet_bridge.models.enums import AccountMode


class Challenge(BridgeBaseModel):
    """SIWE challenge issued by the remote API for one address."""

    message: str
    nonce: str


class VerifyResult(BridgeBaseModel):
    """Outcome of a successful signature verification."""

    token: str = Field(alias="sessionToken")
    user: dict[str, Any] = Field(default_factory=dict)


class SessionValidation(BridgeBaseModel):
    """Outcome of a session token validation."""

    valid: bool
    user: dict[str, Any] | None = None


class AuthSession(BridgeBaseModel):
    """An authenticated session.

    ``expires_at`` is a wall-clock UNIX timestamp in seconds so that the
    persisted value stays meaningful across process recreation.
    """

    address: str
    chain_id: str = Field(alias="chainId")
    account_mode: AccountMode = Field(default=AccountMode.LIVE, alias="accountMode")
    token: str
    expires_at: float = Field(alias="expiresAt")

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def public_view(self) -> dict[str, Any]:
        """Session fields safe to broadcast to pages (no token)."""
        return {
            "address": self.address,
            "chainId": self.chain_id,
            "accountMode": self.account_mode.value,
            "expiresAt": self.expires_at,
        }
