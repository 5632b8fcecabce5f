from enum import Enum
from typing import Optional, Callable, List
from dataclasses import dataclass


class MatchState(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class TransitionError(Exception):
    def __init__(self, from_state: str, to_state: str, reason: str = None):
        self.from_state = from_state
        self.to_state = to_state
        self.reason = reason or f"Cannot transition from {from_state} to {to_state}"
        super().__init__(self.reason)


@dataclass
class Transition:
    from_state: MatchState
    to_state: MatchState
    action: str
    guard: Optional[Callable] = None


def winner_index_guard(context: dict) -> bool:
    return context.get("winner_team_index") in (0, 1)


class MatchStateMachine:
    """
    Status transitions for a live match.

    ARCHIVED is terminal: the match row is deleted once it is reached,
    so it never shows up as a stored status.
    """
    TRANSITIONS = [
        Transition(MatchState.ACTIVE, MatchState.ACTIVE, "update_score"),
        Transition(MatchState.ACTIVE, MatchState.COMPLETED, "end", winner_index_guard),
        Transition(MatchState.ACTIVE, MatchState.COMPLETED, "complete", winner_index_guard),
        Transition(MatchState.ACTIVE, MatchState.ARCHIVED, "archive"),
        Transition(MatchState.COMPLETED, MatchState.ARCHIVED, "archive"),
    ]

    ALLOWED_ACTIONS = {
        MatchState.ACTIVE: ["update_score", "end", "complete", "archive"],
        MatchState.COMPLETED: ["view", "archive"],
        MatchState.ARCHIVED: ["view"],
    }

    def __init__(self, initial_state: MatchState = MatchState.ACTIVE):
        self._state = initial_state
        self._history: List[tuple] = []

    @property
    def state(self) -> MatchState:
        return self._state

    @property
    def allowed_actions(self) -> List[str]:
        return self.ALLOWED_ACTIONS.get(self._state, [])

    def can_transition(self, action: str) -> bool:
        for t in self.TRANSITIONS:
            if t.from_state == self._state and t.action == action:
                return True
        return False

    def can_perform(self, action: str) -> bool:
        return action in self.allowed_actions

    def transition(self, action: str, guard_context: dict = None) -> MatchState:
        for t in self.TRANSITIONS:
            if t.from_state == self._state and t.action == action:
                if t.guard and guard_context:
                    if not t.guard(guard_context):
                        raise TransitionError(
                            self._state.value,
                            t.to_state.value,
                            f"Guard condition failed for action '{action}'"
                        )

                old_state = self._state
                self._state = t.to_state
                self._history.append((old_state, action, self._state))
                return self._state

        raise TransitionError(
            self._state.value,
            "unknown",
            f"No valid transition for action '{action}' from state '{self._state.value}'"
        )

    def get_history(self) -> List[tuple]:
        return self._history.copy()

    @classmethod
    def from_state_string(cls, state_str: str) -> "MatchStateMachine":
        try:
            state = MatchState(state_str)
        except ValueError:
            state = MatchState.ACTIVE
        return cls(initial_state=state)
