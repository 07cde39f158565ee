from enum import Enum
from typing import Optional, Callable, List
from dataclasses import dataclass


class TournamentStatus(str, Enum):
    UPCOMING = "UPCOMING"
    LIVE = "LIVE"
    COMPLETED = "COMPLETED"


class TransitionError(Exception):
    def __init__(self, from_state: str, to_state: str, reason: str = None):
        self.from_state = from_state
        self.to_state = to_state
        self.reason = reason or f"Cannot transition from {from_state} to {to_state}"
        super().__init__(self.reason)


@dataclass
class Transition:
    from_state: TournamentStatus
    to_state: TournamentStatus
    action: str
    guard: Optional[Callable] = None


def has_registrations_guard(context: dict) -> bool:
    return context.get("approved_registrations", 0) > 0


class TournamentStateMachine:
    TRANSITIONS = [
        Transition(TournamentStatus.UPCOMING, TournamentStatus.UPCOMING, "edit"),
        Transition(TournamentStatus.UPCOMING, TournamentStatus.LIVE, "start", has_registrations_guard),
        Transition(TournamentStatus.LIVE, TournamentStatus.COMPLETED, "complete"),
    ]

    ALLOWED_ACTIONS = {
        TournamentStatus.UPCOMING: [
            "edit", "register_team", "review_registration", "create_match", "set_room", "start"
        ],
        TournamentStatus.LIVE: ["create_match", "set_room", "record_result", "complete"],
        TournamentStatus.COMPLETED: ["view"],
    }

    def __init__(self, initial_state: TournamentStatus = TournamentStatus.UPCOMING):
        self._state = initial_state

    @property
    def state(self) -> TournamentStatus:
        return self._state

    @property
    def allowed_actions(self) -> List[str]:
        return self.ALLOWED_ACTIONS.get(self._state, [])

    def can_perform(self, action: str) -> bool:
        return action in self.allowed_actions

    def transition(self, action: str, guard_context: dict = None) -> TournamentStatus:
        for t in self.TRANSITIONS:
            if t.from_state == self._state and t.action == action:
                if t.guard and guard_context is not None:
                    if not t.guard(guard_context):
                        raise TransitionError(
                            self._state.value,
                            t.to_state.value,
                            f"Guard condition failed for action '{action}'"
                        )

                self._state = t.to_state
                return self._state

        raise TransitionError(
            self._state.value,
            "unknown",
            f"No valid transition for action '{action}' from state '{self._state.value}'"
        )

    @classmethod
    def from_state_string(cls, state_str: str) -> "TournamentStateMachine":
        try:
            state = TournamentStatus(state_str)
        except ValueError:
            state = TournamentStatus.UPCOMING
        return cls(initial_state=state)
