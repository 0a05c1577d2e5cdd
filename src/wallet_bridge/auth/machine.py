"""Sign-In With Ethereum flow state machine.

This module defines the legal transitions of the authentication flow and
the immutable status value the controller moves through them.

Example:
    >>> from wallet_bridge.models.enums import AuthState
    >>> can_transition(AuthState.IDLE, AuthState.CONNECTING)
    True
    >>> can_transition(AuthState.IDLE, AuthState.AUTHENTICATED)
    False
"""

from __future__ import annotations

from pydantic import Field

from wallet_bridge.errors import ErrorKind, InvalidTransitionError
from wallet_bridge.models.base import BridgeBaseModel
from wallet_bridge.models.enums import AuthState
from wallet_bridge.observability import get_metrics

__all__ = ["AuthState", "FlowStatus", "VALID_TRANSITIONS", "can_transition", "transition"]

# Terminal states only lead back to IDLE, which starts a new flow
VALID_TRANSITIONS: dict[AuthState, set[AuthState]] = {
    AuthState.IDLE: {AuthState.CONNECTING},
    AuthState.CONNECTING: {AuthState.AWAITING_CHALLENGE, AuthState.FAILED},
    AuthState.AWAITING_CHALLENGE: {AuthState.AWAITING_SIGNATURE, AuthState.FAILED},
    AuthState.AWAITING_SIGNATURE: {AuthState.VERIFYING, AuthState.FAILED},
    AuthState.VERIFYING: {AuthState.AUTHENTICATED, AuthState.FAILED},
    AuthState.AUTHENTICATED: {AuthState.IDLE},
    AuthState.FAILED: {AuthState.IDLE},
}


class FlowStatus(BridgeBaseModel):
    """Snapshot of one authentication flow.

    Attributes:
        state: Current state
        entered_at: Monotonic time the state was entered
        address: Account being authenticated, once known
        error_kind: Failure category when ``state`` is FAILED
        error: Failure message when ``state`` is FAILED
    """

    state: AuthState = AuthState.IDLE
    entered_at: float = 0.0
    address: str | None = None
    error_kind: ErrorKind | None = None
    error: str | None = Field(default=None)


def can_transition(from_state: AuthState, to_state: AuthState) -> bool:
    """Check whether moving from ``from_state`` to ``to_state`` is legal."""
    return to_state in VALID_TRANSITIONS.get(from_state, set())


def transition(
    status: FlowStatus,
    new_state: AuthState,
    now: float,
    *,
    address: str | None = None,
    error_kind: ErrorKind | None = None,
    error: str | None = None,
) -> FlowStatus:
    """Return ``status`` moved to ``new_state``.

    Entering IDLE forgets the address and error; other states keep the
    address unless a new one is given.

    Raises:
        InvalidTransitionError: If the transition is not legal
    """
    if not can_transition(status.state, new_state):
        raise InvalidTransitionError(from_state=status.state.value, to_state=new_state.value)

    get_metrics().increment_counter(
        "wallet_bridge_state_transitions_total",
        {"from_state": status.state.value, "to_state": new_state.value},
    )
    if new_state is AuthState.IDLE:
        return FlowStatus(state=AuthState.IDLE, entered_at=now)
    return status.model_copy(
        update={
            "state": new_state,
            "entered_at": now,
            "address": address if address is not None else status.address,
            "error_kind": error_kind,
            "error": error,
        }
    )
