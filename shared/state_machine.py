from enum import Enum
from typing import Optional, List
from dataclasses import dataclass

from .errors import InvalidTransition


class RegistrationState(str, Enum):
    ABSENT = "absent"
    PENDING = "pending"
    CONFIRMED = "confirmed"


class SubmissionState(str, Enum):
    NONE = "none"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    VOID = "void"


@dataclass
class Transition:
    from_state: Enum
    to_state: Enum
    action: str
    idempotent: bool = False


class StateMachine:
    """Table-driven state machine; subclasses supply TRANSITIONS and INITIAL."""
    TRANSITIONS: List[Transition] = []
    INITIAL: Enum = None
    STATES = None

    def __init__(self, initial_state: Enum = None):
        self._state = initial_state if initial_state is not None else self.INITIAL

    @property
    def state(self):
        return self._state

    def is_noop(self, action: str) -> bool:
        """True when `action` is accepted from the current state without changing it."""
        t = self._find(action)
        return t is not None and t.idempotent and t.to_state == self._state

    def target_of(self, action: str):
        """Return the state `action` leads to, raising InvalidTransition if it is not allowed."""
        t = self._find(action)
        if t is None:
            raise InvalidTransition(
                self._state.value,
                "unknown",
                f"No valid transition for action '{action}' from state '{self._state.value}'"
            )
        return t.to_state

    @classmethod
    def sources_of(cls, action: str) -> List[str]:
        """States from which `action` really changes something."""
        return [t.from_state.value for t in cls.TRANSITIONS if t.action == action and not t.idempotent]

    def _find(self, action: str) -> Optional[Transition]:
        for t in self.TRANSITIONS:
            if t.from_state == self._state and t.action == action:
                return t
        return None

    @classmethod
    def from_state_string(cls, state_str: Optional[str]):
        try:
            state = cls.STATES(state_str)
        except ValueError:
            state = cls.INITIAL
        return cls(initial_state=state)


class RegistrationStateMachine(StateMachine):
    """
    absent -> pending -> confirmed, and a denial deletes the row (back to absent)
    so the same team can register again.
    """
    STATES = RegistrationState
    INITIAL = RegistrationState.ABSENT
    TRANSITIONS = [
        Transition(RegistrationState.ABSENT, RegistrationState.PENDING, "register"),
        Transition(RegistrationState.PENDING, RegistrationState.CONFIRMED, "confirm"),
        Transition(RegistrationState.CONFIRMED, RegistrationState.CONFIRMED, "confirm", idempotent=True),
        Transition(RegistrationState.PENDING, RegistrationState.ABSENT, "deny"),
        Transition(RegistrationState.CONFIRMED, RegistrationState.ABSENT, "deny"),
    ]

    @classmethod
    def for_row(cls, confirmed: Optional[bool]) -> "RegistrationStateMachine":
        if confirmed is None:
            return cls(RegistrationState.ABSENT)
        return cls(RegistrationState.CONFIRMED if confirmed else RegistrationState.PENDING)


class SubmissionStateMachine(StateMachine):
    """
    none -> pending -> approved -> void
                    -> rejected -> pending (resubmit)

    Resubmitting replaces the row and always lands in pending, whatever the
    previous status was, except that a voided result stays void.
    """
    STATES = SubmissionState
    INITIAL = SubmissionState.NONE
    TRANSITIONS = [
        Transition(SubmissionState.NONE, SubmissionState.PENDING, "submit"),
        Transition(SubmissionState.PENDING, SubmissionState.PENDING, "submit"),
        Transition(SubmissionState.REJECTED, SubmissionState.PENDING, "submit"),
        Transition(SubmissionState.APPROVED, SubmissionState.PENDING, "submit"),
        Transition(SubmissionState.PENDING, SubmissionState.APPROVED, "approve"),
        Transition(SubmissionState.APPROVED, SubmissionState.APPROVED, "approve", idempotent=True),
        Transition(SubmissionState.PENDING, SubmissionState.REJECTED, "reject"),
        Transition(SubmissionState.REJECTED, SubmissionState.REJECTED, "reject", idempotent=True),
        Transition(SubmissionState.APPROVED, SubmissionState.VOID, "void"),
        Transition(SubmissionState.VOID, SubmissionState.VOID, "void", idempotent=True),
    ]

