"""Engine state machine - FSM for one goal execution.

Provides formal state transitions with listeners for the execution
cycle engine: planning, cycling, adjusting, closing and the three
terminal states.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Callable

from taskcli.errors import InvalidTransitionError

logger = logging.getLogger(__name__)


class EngineState(StrEnum):
    """States of the execution cycle engine."""

    IDLE = "idle"
    PLANNING = "planning"
    CYCLING = "cycling"
    ADJUSTING = "adjusting"
    CLOSING = "closing"
    DONE = "done"
    CANCELLED = "cancelled"
    FAILED = "failed"


TERMINAL_STATES = frozenset({EngineState.DONE, EngineState.CANCELLED, EngineState.FAILED})

# Valid transitions: (from_state, to_state)
VALID_TRANSITIONS: set[tuple[EngineState, EngineState]] = {
    (EngineState.IDLE, EngineState.PLANNING),
    (EngineState.PLANNING, EngineState.CYCLING),
    (EngineState.PLANNING, EngineState.FAILED),
    (EngineState.PLANNING, EngineState.CANCELLED),
    (EngineState.CYCLING, EngineState.ADJUSTING),
    (EngineState.CYCLING, EngineState.CLOSING),
    (EngineState.CYCLING, EngineState.CANCELLED),
    (EngineState.CYCLING, EngineState.FAILED),
    (EngineState.ADJUSTING, EngineState.CYCLING),
    (EngineState.ADJUSTING, EngineState.CLOSING),
    (EngineState.ADJUSTING, EngineState.CANCELLED),
    (EngineState.CLOSING, EngineState.DONE),
    (EngineState.CLOSING, EngineState.FAILED),
    (EngineState.CLOSING, EngineState.CANCELLED),
}


TransitionListener = Callable[[EngineState, EngineState, dict[str, Any]], None]


@dataclass
class EngineStateMachine:
    """Tracks the engine state of a single goal execution."""

    _state: EngineState = field(default=EngineState.IDLE)
    _listeners: list[TransitionListener] = field(default_factory=list, repr=False)
    _history: list[tuple[EngineState, EngineState]] = field(default_factory=list, repr=False)

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def is_terminal(self) -> bool:
        return self._state in TERMINAL_STATES

    @property
    def history(self) -> list[tuple[EngineState, EngineState]]:
        return list(self._history)

    def can_transition(self, to_state: EngineState) -> bool:
        return (self._state, to_state) in VALID_TRANSITIONS

    def transition(
        self,
        to_state: EngineState,
        *,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Transition to a new state.

        Raises InvalidTransitionError if the transition is not allowed.
        """
        if not self.can_transition(to_state):
            raise InvalidTransitionError(self._state, to_state)

        from_state = self._state
        self._state = to_state
        self._history.append((from_state, to_state))

        meta = metadata or {}
        for listener in self._listeners:
            try:
                listener(from_state, to_state, meta)
            except Exception:
                logger.exception("state listener failed on %s -> %s", from_state, to_state)

    def on_transition(self, listener: TransitionListener) -> None:
        self._listeners.append(listener)

    def reset(self) -> None:
        """Back to idle for the next goal, clearing history."""
        self._state = EngineState.IDLE
        self._history.clear()
