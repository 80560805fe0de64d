from __future__ import annotations

import pytest

from agentpty.engine.lifecycle import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    can_transition,
    is_terminal,
)
from agentpty.engine.models import TerminalState


def test_every_state_has_a_transition_entry():
    assert set(VALID_TRANSITIONS) == set(TerminalState)


def test_terminal_states():
    assert TERMINAL_STATES == {TerminalState.ERROR, TerminalState.DEAD}
    assert is_terminal(TerminalState.DEAD)
    assert is_terminal(TerminalState.ERROR)
    assert not is_terminal(TerminalState.IDLE)


@pytest.mark.parametrize("source, target", [
    (TerminalState.STARTING, TerminalState.RUNNING),
    (TerminalState.RUNNING, TerminalState.AWAITING_INPUT),
    (TerminalState.AWAITING_INPUT, TerminalState.RUNNING),
    (TerminalState.AWAITING_INPUT, TerminalState.IDLE),
    (TerminalState.RUNNING, TerminalState.IDLE),
    (TerminalState.IDLE, TerminalState.RUNNING),
    (TerminalState.IDLE, TerminalState.ERROR),
    (TerminalState.ERROR, TerminalState.DEAD),
])
def test_allowed_transitions(source, target):
    assert can_transition(source, target)


def test_every_live_state_can_die():
    for state in TerminalState:
        if state is not TerminalState.DEAD:
            assert can_transition(state, TerminalState.DEAD)


def test_error_requires_restart():
    for target in (TerminalState.RUNNING, TerminalState.IDLE, TerminalState.STARTING):
        assert not can_transition(TerminalState.ERROR, target)


def test_dead_is_final():
    assert VALID_TRANSITIONS[TerminalState.DEAD] == set()
    assert not any(can_transition(TerminalState.DEAD, s) for s in TerminalState)
