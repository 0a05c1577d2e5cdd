"""Tests for the authentication state machine."""

import pytest

from wallet_bridge.auth.machine import (
    VALID_TRANSITIONS,
    FlowStatus,
    can_transition,
    transition,
)
from wallet_bridge.errors import ErrorKind, InvalidTransitionError
from wallet_bridge.models.enums import AuthState
from wallet_bridge.observability import get_metrics

HAPPY_PATH = [
    AuthState.CONNECTING,
    AuthState.AWAITING_CHALLENGE,
    AuthState.AWAITING_SIGNATURE,
    AuthState.VERIFYING,
    AuthState.AUTHENTICATED,
]


class TestTransitionTable:
    """The transition table itself."""

    def test_every_state_has_an_entry(self) -> None:
        assert set(VALID_TRANSITIONS) == set(AuthState)

    def test_idle_only_leads_to_connecting(self) -> None:
        assert VALID_TRANSITIONS[AuthState.IDLE] == {AuthState.CONNECTING}

    @pytest.mark.parametrize("state", [AuthState.AUTHENTICATED, AuthState.FAILED])
    def test_terminal_states_only_reset(self, state: AuthState) -> None:
        assert state.is_terminal()
        assert VALID_TRANSITIONS[state] == {AuthState.IDLE}

    @pytest.mark.parametrize(
        "state",
        [
            AuthState.CONNECTING,
            AuthState.AWAITING_CHALLENGE,
            AuthState.AWAITING_SIGNATURE,
            AuthState.VERIFYING,
        ],
    )
    def test_in_flight_states_can_fail(self, state: AuthState) -> None:
        assert can_transition(state, AuthState.FAILED)
        assert not state.is_terminal()

    def test_no_skipping_steps(self) -> None:
        assert not can_transition(AuthState.IDLE, AuthState.AUTHENTICATED)
        assert not can_transition(AuthState.CONNECTING, AuthState.VERIFYING)
        assert not can_transition(AuthState.IDLE, AuthState.FAILED)


class TestTransition:
    """Applying transitions to a FlowStatus."""

    def test_happy_path(self) -> None:
        status = FlowStatus()
        for now, state in enumerate(HAPPY_PATH, start=1):
            address = "0xabc" if state is AuthState.AWAITING_CHALLENGE else None
            status = transition(status, state, float(now), address=address)
        assert status.state is AuthState.AUTHENTICATED
        assert status.address == "0xabc"
        assert status.entered_at == 5.0

    def test_status_is_immutable(self) -> None:
        status = FlowStatus()
        moved = transition(status, AuthState.CONNECTING, 1.0)
        assert status.state is AuthState.IDLE
        assert moved is not status

    def test_failure_records_error(self) -> None:
        status = transition(FlowStatus(), AuthState.CONNECTING, 1.0)
        failed = transition(
            status,
            AuthState.FAILED,
            2.0,
            error_kind=ErrorKind.USER_REJECTED,
            error="User rejected the request",
        )
        assert failed.error_kind is ErrorKind.USER_REJECTED
        assert failed.error == "User rejected the request"

    def test_reset_forgets_address_and_error(self) -> None:
        status = transition(FlowStatus(), AuthState.CONNECTING, 1.0, address="0xabc")
        status = transition(status, AuthState.FAILED, 2.0, error_kind=ErrorKind.TIMEOUT)
        reset = transition(status, AuthState.IDLE, 3.0)
        assert reset == FlowStatus(state=AuthState.IDLE, entered_at=3.0)

    def test_illegal_transition_raises(self) -> None:
        with pytest.raises(InvalidTransitionError) as exc_info:
            transition(FlowStatus(), AuthState.VERIFYING, 1.0)
        assert exc_info.value.from_state == "idle"
        assert exc_info.value.to_state == "verifying"

    def test_transitions_are_counted(self) -> None:
        transition(FlowStatus(), AuthState.CONNECTING, 1.0)
        assert (
            get_metrics().get_counter(
                "wallet_bridge_state_transitions_total",
                {"from_state": "idle", "to_state": "connecting"},
            )
            == 1
        )
