"""Authentication flow controller.

Drives one consumer's flow through connect, challenge, sign and verify.
Every step runs under its own timeout. Failures never escape the
controller: they move the flow to FAILED carrying the error kind, and the
caller reads the outcome from the returned status.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, TypeVar, Union

from wallet_bridge.auth.api import AuthApi
from wallet_bridge.auth.machine import FlowStatus, can_transition, transition
from wallet_bridge.auth.provider import ProviderSelector, WalletProvider
from wallet_bridge.auth.siwe import parse_siwe_message
from wallet_bridge.config import BridgeConfig
from wallet_bridge.errors import (
    BridgeError,
    BridgeTimeoutError,
    MessageValidationError,
    NetworkError,
    ProviderFailureError,
    SessionError,
    wallet_error_from,
)
from wallet_bridge.messaging.rate_limit import Clock
from wallet_bridge.models.enums import AccountMode, AuthState
from wallet_bridge.models.session import AuthSession, Challenge
from wallet_bridge.observability import get_logger
from wallet_bridge.storage.session_store import SessionStore

logger = get_logger(__name__)

T = TypeVar("T")

ProviderSource = Union[WalletProvider, Iterable[WalletProvider], Callable[[], Any], None]
SessionListener = Callable[[Union[dict[str, Any], None]], Union[None, Awaitable[None]]]

_WALLET_STEPS = frozenset({AuthState.CONNECTING, AuthState.AWAITING_SIGNATURE})


def _chain_id_number(chain_id: str) -> int:
    try:
        return int(chain_id, 16) if chain_id.lower().startswith("0x") else int(chain_id)
    except ValueError:
        return 1


class AuthFlowController:
    """SIWE state machine for one logical consumer (tab or session).

    Concurrent ``connect`` calls join the flow already in progress instead
    of starting a second one. A ``connect`` from AUTHENTICATED or FAILED
    starts over from IDLE.

    Attributes:
        consumer_id: Consumer this controller serves
        last_error: The error that failed the most recent flow, if any
    """

    def __init__(
        self,
        providers: ProviderSource,
        api: AuthApi,
        sessions: SessionStore,
        config: BridgeConfig | None = None,
        *,
        consumer_id: str = "default",
        selector: ProviderSelector | None = None,
        notify: SessionListener | None = None,
        clock: Clock | None = None,
        wall_clock: Clock | None = None,
    ) -> None:
        self.config = config or BridgeConfig()
        self.consumer_id = consumer_id
        self.api = api
        self.sessions = sessions
        self._providers = providers
        self._selector = selector or ProviderSelector()
        self._notify = notify
        self._clock = clock or time.monotonic
        self._wall_clock = wall_clock or time.time
        self._status = FlowStatus(entered_at=self._clock())
        self._flow: asyncio.Task[FlowStatus] | None = None
        self.last_error: BridgeError | None = None
        self.history: list[AuthState] = [AuthState.IDLE]

    @property
    def status(self) -> FlowStatus:
        return self._status

    @property
    def state(self) -> AuthState:
        return self._status.state

    @property
    def in_progress(self) -> bool:
        return self._flow is not None and not self._flow.done()

    def step_timeout(self, state: AuthState) -> float | None:
        return {
            AuthState.CONNECTING: self.config.connect_timeout,
            AuthState.AWAITING_CHALLENGE: self.config.challenge_timeout,
            AuthState.AWAITING_SIGNATURE: self.config.signature_timeout,
            AuthState.VERIFYING: self.config.verify_timeout,
        }.get(state)

    async def connect(self, account_mode: AccountMode | None = None) -> FlowStatus:
        """Run (or join) a flow and return its final status."""
        flow = self._flow
        if flow is None or flow.done():
            if self.state.is_terminal():
                self._enter(AuthState.IDLE)
            mode = account_mode or self.config.default_account_mode
            flow = self._flow = asyncio.get_running_loop().create_task(self._run(mode))
        else:
            logger.info("wallet_bridge.auth.connect_joined", consumer_id=self.consumer_id)
        try:
            return await asyncio.shield(flow)
        except asyncio.CancelledError:
            # the flow itself was aborted by disconnect()
            if flow.cancelled():
                return self._status
            raise

    def cancel(self) -> bool:
        """Cancel the flow in progress, if any. The flow ends in FAILED."""
        if not self.in_progress or self._flow is None:
            return False
        self._flow.cancel()
        return True

    async def abort(self) -> None:
        """Cancel the flow in progress and wait until it has stopped."""
        flow = self._flow
        if self.cancel() and flow is not None:
            await asyncio.gather(flow, return_exceptions=True)

    async def disconnect(self) -> None:
        """End the session: tell the API, clear storage, return to IDLE, notify."""
        await self.abort()
        session = await self.sessions.load()
        if session is not None:
            try:
                await self.api.disconnect(session.token)
            except BridgeError as exc:
                logger.warning(
                    "wallet_bridge.auth.remote_disconnect_failed",
                    consumer_id=self.consumer_id,
                    error=exc.to_dict(),
                )
        await self.sessions.clear()
        self.reset()
        await self._broadcast(None)

    def reset(self) -> bool:
        """Return to IDLE without touching storage.

        A flow in progress is left alone; returns False in that case.
        """
        if self.in_progress:
            logger.info("wallet_bridge.auth.reset_skipped", consumer_id=self.consumer_id)
            return False
        if self.state is not AuthState.IDLE:
            if self.state.is_terminal():
                self._enter(AuthState.IDLE)
            else:
                self._status = FlowStatus(entered_at=self._clock())
                self.history.append(AuthState.IDLE)
        self.last_error = None
        return True

    async def _run(self, account_mode: AccountMode) -> FlowStatus:
        self.last_error = None
        try:
            self._enter(AuthState.CONNECTING)
            provider = self._selector.select(self._resolve_providers())
            accounts = await self._step(
                AuthState.CONNECTING, provider.request("eth_requestAccounts")
            )
            if not accounts:
                raise ProviderFailureError("Wallet returned no accounts")
            address = str(accounts[0])

            self._enter(AuthState.AWAITING_CHALLENGE, address=address)
            chain_id = provider.chain_id or self.config.default_chain_id
            challenge = await self._step(
                AuthState.AWAITING_CHALLENGE,
                self.api.challenge(address, _chain_id_number(chain_id), account_mode),
            )
            self._check_challenge(challenge, address)

            self._enter(AuthState.AWAITING_SIGNATURE)
            signature = await self._step(
                AuthState.AWAITING_SIGNATURE,
                provider.request("personal_sign", [challenge.message, address]),
            )

            self._enter(AuthState.VERIFYING)
            verified = await self._step(
                AuthState.VERIFYING,
                self.api.verify(challenge.message, str(signature), account_mode),
            )
            session = AuthSession(
                address=address,
                chain_id=chain_id,
                account_mode=account_mode,
                token=verified.token,
                expires_at=self._wall_clock() + self.config.session_ttl,
            )
            try:
                await self.sessions.save(session)
            except Exception as exc:
                raise SessionError(f"Could not persist session: {exc}") from exc

            self._enter(AuthState.AUTHENTICATED)
        except asyncio.CancelledError:
            self._fail(SessionError("Sign-in was cancelled"))
            raise
        except BridgeError as exc:
            self._fail(exc)
            return self._status
        except Exception as exc:
            self._fail(self._classify(self.state, exc))
            return self._status

        await self._broadcast(session.public_view())
        return self._status

    def _resolve_providers(self) -> Any:
        source = self._providers
        if callable(source) and not isinstance(source, WalletProvider):
            return source()
        return source

    async def _step(self, state: AuthState, awaitable: Awaitable[T]) -> T:
        timeout = self.step_timeout(state)
        try:
            return await asyncio.wait_for(awaitable, timeout)
        except asyncio.TimeoutError as exc:
            raise BridgeTimeoutError(state.value, timeout or 0.0) from exc
        except BridgeError:
            raise
        except Exception as exc:
            raise self._classify(state, exc) from exc

    @staticmethod
    def _classify(state: AuthState, exc: BaseException) -> BridgeError:
        if isinstance(exc, BridgeError):
            return exc
        if state in _WALLET_STEPS:
            return wallet_error_from(exc)
        return NetworkError(str(exc) or type(exc).__name__)

    @staticmethod
    def _check_challenge(challenge: Challenge, address: str) -> None:
        parsed = parse_siwe_message(challenge.message)
        if parsed.address.lower() != address.lower():
            raise MessageValidationError(
                "challenge was issued for a different address",
                {"expected": address, "actual": parsed.address},
            )
        if parsed.nonce != challenge.nonce:
            raise MessageValidationError("challenge nonce does not match its message")

    def _enter(self, state: AuthState, address: str | None = None) -> None:
        previous = self.state
        self._status = transition(self._status, state, self._clock(), address=address)
        self.history.append(state)
        logger.info(
            "wallet_bridge.auth.transition",
            consumer_id=self.consumer_id,
            from_state=previous.value,
            to_state=state.value,
        )

    def _fail(self, error: BridgeError) -> None:
        previous = self.state
        self.last_error = error
        if can_transition(previous, AuthState.FAILED):
            self._status = transition(
                self._status,
                AuthState.FAILED,
                self._clock(),
                error_kind=error.kind,
                error=error.message,
            )
        else:
            # state was moved underneath the running flow; record the failure anyway
            self._status = FlowStatus(
                state=AuthState.FAILED,
                entered_at=self._clock(),
                address=self._status.address,
                error_kind=error.kind,
                error=error.message,
            )
        self.history.append(AuthState.FAILED)
        logger.warning(
            "wallet_bridge.auth.failed",
            consumer_id=self.consumer_id,
            from_state=previous.value,
            error=error.to_dict(),
        )

    async def _broadcast(self, session: dict[str, Any] | None) -> None:
        if self._notify is None:
            return
        try:
            result = self._notify(session)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("wallet_bridge.auth.notify_failed", consumer_id=self.consumer_id)
