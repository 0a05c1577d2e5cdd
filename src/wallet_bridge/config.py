"""Runtime configuration for every wallet bridge context.

``BridgeConfig`` is immutable; build it once at process start and inject
it into the components that need it. ``BridgeConfig.from_env`` overlays
``WALLET_BRIDGE_*`` environment variables on the defaults.

Example:
    >>> config = BridgeConfig.from_env({"WALLET_BRIDGE_RATE_LIMIT_MAX_TOKENS": "5"})
    >>> config.rate_limit_max_tokens
    5
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Any

from pydantic import Field, HttpUrl, field_validator

from wallet_bridge.models.base import BridgeBaseModel
from wallet_bridge.models.enums import DEFAULT_PROTOCOL_PREFIX, AccountMode

ENV_PREFIX = "WALLET_BRIDGE_"

# Hosts treat a background process as idle after roughly this long
HOST_IDLE_THRESHOLD = 30.0

DEFAULT_ALLOWED_ORIGINS = (
    "http://localhost:3000",
    "http://localhost:3001",
    "https://cryptotradingjournal.xyz",
    "https://www.cryptotradingjournal.xyz",
    "https://*.cryptotradingjournal.xyz",
)


class BridgeConfig(BridgeBaseModel):
    """Configuration shared by routers, registries, the state machine and the API client.

    Durations are in seconds.
    """

    api_base_url: HttpUrl = Field(default="http://localhost:3000")
    allowed_origins: tuple[str, ...] = DEFAULT_ALLOWED_ORIGINS
    protocol_prefix: str = Field(default=DEFAULT_PROTOCOL_PREFIX, min_length=1)

    rate_limit_max_tokens: int = Field(default=20, gt=0)
    rate_limit_refill_rate: float = Field(default=5.0, gt=0)
    request_timeout: float = Field(default=60.0, gt=0)

    keepalive_period: float = Field(default=24.0, gt=0)
    operation_max_age: float = Field(default=300.0, gt=0)

    connect_timeout: float = Field(default=30.0, gt=0)
    challenge_timeout: float = Field(default=30.0, gt=0)
    signature_timeout: float = Field(default=60.0, gt=0)
    verify_timeout: float = Field(default=30.0, gt=0)
    session_ttl: float = Field(default=24 * 60 * 60.0, gt=0)

    api_timeout: float = Field(default=60.0, gt=0)
    api_max_retries: int = Field(default=3, ge=0)
    api_base_delay: float = Field(default=1.0, ge=0)
    api_max_delay: float = Field(default=10.0, ge=0)

    default_chain_id: str = "0x1"
    default_account_mode: AccountMode = AccountMode.LIVE

    @field_validator("keepalive_period")
    @classmethod
    def _below_idle_threshold(cls, value: float) -> float:
        if value >= HOST_IDLE_THRESHOLD:
            raise ValueError(
                f"keepalive_period must be below the {HOST_IDLE_THRESHOLD:g}s host idle threshold"
            )
        return value

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: Any) -> Any:
        if isinstance(value, str):
            return tuple(part.strip() for part in value.split(",") if part.strip())
        return value

    @property
    def api_base(self) -> str:
        """Base URL without a trailing slash."""
        return str(self.api_base_url).rstrip("/")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> BridgeConfig:
        """Build a config from defaults overlaid with ``WALLET_BRIDGE_*`` variables.

        Args:
            environ: Mapping to read instead of ``os.environ``

        Raises:
            pydantic.ValidationError: If a variable holds an invalid value
        """
        env = os.environ if environ is None else environ
        overrides: dict[str, Any] = {}
        for name in cls.model_fields:
            raw = env.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None and raw != "":
                overrides[name] = raw
        return cls.model_validate(overrides)
