"""Property-based tests for the authentication state machine.

Invariants: terminal states only lead back to IDLE; every in-flight state
can reach both terminal states; applying random transitions never leaves
the table.
"""

from __future__ import annotations

from collections import deque

import pytest
from hypothesis import given
from hypothesis import strategies as st

from wallet_bridge.auth.machine import VALID_TRANSITIONS, FlowStatus, can_transition, transition
from wallet_bridge.errors import InvalidTransitionError
from wallet_bridge.models.enums import AuthState

TERMINAL_STATES = {AuthState.AUTHENTICATED, AuthState.FAILED}


def _reachable_states(from_state: AuthState) -> set[AuthState]:
    """Return all states reachable from from_state via valid transitions (BFS)."""
    seen: set[AuthState] = set()
    queue: deque[AuthState] = deque([from_state])
    while queue:
        state = queue.popleft()
        if state in seen:
            continue
        seen.add(state)
        queue.extend(VALID_TRANSITIONS.get(state, set()) - seen)
    return seen


class TestTerminalStates:
    """Invariant: AUTHENTICATED and FAILED only lead back to IDLE."""

    @given(
        terminal=st.sampled_from(sorted(TERMINAL_STATES)),
        target=st.sampled_from(list(AuthState)),
    )
    def test_terminal_only_resets(self, terminal: AuthState, target: AuthState) -> None:
        """From a terminal state the only legal move is to IDLE."""
        assert can_transition(terminal, target) == (target is AuthState.IDLE)


class TestReachability:
    """Property: every flow can finish either way."""

    @pytest.mark.parametrize(
        "state", [s for s in AuthState if not s.is_terminal() and s is not AuthState.IDLE]
    )
    def test_in_flight_state_reaches_both_outcomes(self, state: AuthState) -> None:
        assert TERMINAL_STATES <= _reachable_states(state)

    def test_everything_reachable_from_idle(self) -> None:
        assert _reachable_states(AuthState.IDLE) == set(AuthState)


class TestRandomWalks:
    """Property: transition() agrees with the table on any sequence of moves."""

    @given(targets=st.lists(st.sampled_from(list(AuthState)), max_size=40))
    def test_walk_follows_table(self, targets: list[AuthState]) -> None:
        status = FlowStatus()
        for now, target in enumerate(targets):
            legal = can_transition(status.state, target)
            if legal:
                moved = transition(status, target, float(now))
                assert moved.state is target
                assert moved.entered_at == float(now)
                if target is AuthState.IDLE:
                    assert moved.address is None
                    assert moved.error_kind is None
                status = moved
            else:
                with pytest.raises(InvalidTransitionError):
                    transition(status, target, float(now))
