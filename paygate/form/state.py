"""Payment form state machine transitions."""

from enum import Enum


class FormState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    SUBMITTING = "submitting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


# Succeeded and Failed are terminal for a mount; reset() starts over.
ALLOWED_TRANSITIONS: dict[FormState, set[FormState]] = {
    FormState.UNINITIALIZED: {FormState.LOADING},
    FormState.LOADING: {FormState.READY, FormState.FAILED},
    FormState.READY: {FormState.SUBMITTING},
    FormState.SUBMITTING: {FormState.READY, FormState.SUCCEEDED},
    FormState.SUCCEEDED: set(),
    FormState.FAILED: set(),
}


class InvalidTransitionError(ValueError):
    def __init__(self, current: FormState, new: FormState) -> None:
        self.current = current
        self.new = new
        super().__init__(f"Invalid transition: {current.value} -> {new.value}")


def validate_transition(current: FormState, new: FormState) -> None:
    """Raise when a transition is not allowed by the state machine."""

    if new not in ALLOWED_TRANSITIONS.get(current, set()):
        raise InvalidTransitionError(current, new)
