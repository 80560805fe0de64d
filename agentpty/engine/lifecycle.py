"""Terminal session state machine.

Defines the valid transitions. The session manager consults
can_transition() and drops any classification that would make an
invalid move, so a late or contradictory signal never rewrites a
final state.

State Diagram:

    STARTING ──> RUNNING <──> AWAITING_INPUT
                    │  ^            │
                    v  │            v
                   IDLE <───────────┘

    Any live state ──> ERROR  (terminal, needs an explicit restart)
    Any state      ──> DEAD   (process exited)

IDLE and RUNNING are both alive; they differ only in whether the agent
is producing output or waiting on the user.
"""
from __future__ import annotations

from .models import TerminalState

TERMINAL_STATES: frozenset[TerminalState] = frozenset({
    TerminalState.ERROR,
    TerminalState.DEAD,
})

VALID_TRANSITIONS: dict[TerminalState, set[TerminalState]] = {
    TerminalState.STARTING: {
        TerminalState.RUNNING,
        TerminalState.AWAITING_INPUT,
        TerminalState.IDLE,
        TerminalState.ERROR,
        TerminalState.DEAD,
    },
    TerminalState.RUNNING: {
        TerminalState.AWAITING_INPUT,
        TerminalState.IDLE,
        TerminalState.ERROR,
        TerminalState.DEAD,
    },
    TerminalState.AWAITING_INPUT: {
        TerminalState.RUNNING,
        TerminalState.IDLE,
        TerminalState.ERROR,
        TerminalState.DEAD,
    },
    TerminalState.IDLE: {
        TerminalState.RUNNING,
        TerminalState.AWAITING_INPUT,
        TerminalState.ERROR,
        TerminalState.DEAD,
    },
    TerminalState.ERROR: {
        TerminalState.DEAD,
    },
    TerminalState.DEAD: set(),
}


def is_terminal(state: TerminalState) -> bool:
    """True when no further classification may happen in *state*."""
    return state in TERMINAL_STATES


def can_transition(current: TerminalState, target: TerminalState) -> bool:
    return target in VALID_TRANSITIONS.get(current, set())

