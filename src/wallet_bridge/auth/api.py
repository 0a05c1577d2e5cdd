"""Remote authentication API collaborator.

``AuthApi`` is the four-operation contract the authentication flow relies
on. ``HttpAuthApi`` implements it over HTTP with httpx: transport errors,
timeouts and 5xx responses are retried with exponential backoff and
jitter; 4xx responses fail immediately.

Example:
    >>> async def sign_in(address: str) -> None:
    ...     async with HttpAuthApi(BridgeConfig()) as api:
    ...         challenge = await api.challenge(address)
"""

from __future__ import annotations

import asyncio
import random
import time
from collections.abc import Awaitable, Callable
from typing import Any, Protocol, runtime_checkable

import httpx
from pydantic import ValidationError

from wallet_bridge.config import BridgeConfig
from wallet_bridge.errors import NetworkError, SessionError
from wallet_bridge.models.enums import AccountMode
from wallet_bridge.models.session import Challenge, SessionValidation, VerifyResult
from wallet_bridge.observability import get_logger, get_metrics

logger = get_logger(__name__)

CHALLENGE_PATH = "/api/auth/siwe/challenge"
VERIFY_PATH = "/api/auth/siwe/verify"
SESSION_PATH = "/api/auth/session"
DISCONNECT_PATH = "/api/auth/disconnect"

JITTER_RATIO = 0.25


@runtime_checkable
class AuthApi(Protocol):
    """Remote authentication API contract."""

    async def challenge(
        self, address: str, chain_id: int = 1, account_mode: AccountMode = AccountMode.LIVE
    ) -> Challenge:
        """Request a SIWE challenge for ``address``."""
        ...

    async def verify(
        self, message: str, signature: str, account_mode: AccountMode = AccountMode.LIVE
    ) -> VerifyResult:
        """Verify a signed challenge and open a session."""
        ...

    async def validate_session(self, token: str) -> SessionValidation:
        """Check whether ``token`` still identifies a live session."""
        ...

    async def disconnect(self, token: str) -> bool:
        """Invalidate the session identified by ``token``."""
        ...


def calculate_backoff(
    attempt: int, base_delay: float, max_delay: float, jitter: bool = True
) -> float:
    """Delay before retry ``attempt`` (zero-based): ``base * 2**attempt`` capped, +/-25% jitter."""
    delay = min(base_delay * (2**attempt), max_delay)
    if jitter:
        delay *= 1 + random.uniform(-JITTER_RATIO, JITTER_RATIO)  # nosec B311
    return max(0.0, delay)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("error", "message"):
            if isinstance(body.get(key), str):
                return body[key]
    return f"HTTP {response.status_code}"


class HttpAuthApi:
    """AuthApi over HTTP.

    Use as an async context manager; the underlying ``httpx.AsyncClient`` is
    opened on enter and closed on exit.

    Attributes:
        base_url: Base URL of the remote API
        max_retries: Retries after the first attempt
    """

    def __init__(
        self,
        config: BridgeConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        jitter: bool = True,
    ) -> None:
        config = config or BridgeConfig()
        self.base_url = config.api_base
        self.timeout = config.api_timeout
        self.max_retries = config.api_max_retries
        self.base_delay = config.api_base_delay
        self.max_delay = config.api_max_delay
        self.jitter = jitter
        self._transport = transport
        self._sleep = sleep or asyncio.sleep
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> HttpAuthApi:
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout),
            transport=self._transport,
            headers={"Content-Type": "application/json"},
        )
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def challenge(
        self, address: str, chain_id: int = 1, account_mode: AccountMode = AccountMode.LIVE
    ) -> Challenge:
        data = await self._request(
            "POST",
            CHALLENGE_PATH,
            json={"address": address, "chainId": chain_id, "accountMode": account_mode.value},
        )
        return self._parse(Challenge, data, CHALLENGE_PATH)

    async def verify(
        self, message: str, signature: str, account_mode: AccountMode = AccountMode.LIVE
    ) -> VerifyResult:
        data = await self._request(
            "POST",
            VERIFY_PATH,
            json={"message": message, "signature": signature, "accountMode": account_mode.value},
        )
        return self._parse(VerifyResult, data, VERIFY_PATH)

    async def validate_session(self, token: str) -> SessionValidation:
        data = await self._request("GET", SESSION_PATH, token=token)
        return self._parse(SessionValidation, data, SESSION_PATH)

    async def disconnect(self, token: str) -> bool:
        data = await self._request("POST", DISCONNECT_PATH, token=token)
        return bool(data.get("success", False))

    @staticmethod
    def _parse(model: Any, data: dict[str, Any], path: str) -> Any:
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            raise NetworkError(f"Unexpected response from {path}", details={"path": path}) from exc

    async def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        token: str | None = None,
    ) -> dict[str, Any]:
        if self._client is None:
            raise RuntimeError("HttpAuthApi must be used as an async context manager")

        headers = {"Authorization": f"Bearer {token}"} if token else None
        metrics = get_metrics()
        labels = {"path": path}
        last_error: NetworkError | None = None

        for attempt in range(self.max_retries + 1):
            if attempt > 0:
                delay = calculate_backoff(attempt - 1, self.base_delay, self.max_delay, self.jitter)
                metrics.increment_counter("wallet_bridge_api_retries_total", labels)
                logger.info(
                    "wallet_bridge.api.retrying",
                    path=path,
                    attempt=attempt,
                    delay=round(delay, 3),
                    error=str(last_error),
                )
                await self._sleep(delay)

            metrics.increment_counter("wallet_bridge_api_requests_total", labels)
            started = time.perf_counter()
            try:
                response = await self._client.request(method, path, json=json, headers=headers)
            except httpx.TimeoutException as exc:
                last_error = NetworkError(f"Request to {path} timed out", details={"path": path})
                last_error.__cause__ = exc
                continue
            except httpx.TransportError as exc:
                last_error = NetworkError(f"Network error: {exc}", details={"path": path})
                last_error.__cause__ = exc
                continue
            finally:
                metrics.observe_histogram(
                    "wallet_bridge_api_duration_seconds", time.perf_counter() - started, labels
                )

            if response.is_success:
                try:
                    body = response.json()
                except ValueError as exc:
                    raise NetworkError(
                        f"Invalid JSON from {path}", response.status_code, {"path": path}
                    ) from exc
                return body if isinstance(body, dict) else {"data": body}

            message = _error_message(response)
            if response.status_code in (401, 403):
                metrics.increment_counter("wallet_bridge_api_errors_total", labels)
                raise SessionError(message, {"path": path, "status_code": response.status_code})
            if response.status_code < 500:
                metrics.increment_counter("wallet_bridge_api_errors_total", labels)
                raise NetworkError(message, response.status_code, {"path": path})
            last_error = NetworkError(message, response.status_code, {"path": path})

        metrics.increment_counter("wallet_bridge_api_errors_total", labels)
        logger.warning(
            "wallet_bridge.api.failed", path=path, attempts=self.max_retries + 1, error=str(last_error)
        )
        raise last_error or NetworkError(f"Request to {path} failed", details={"path": path})
