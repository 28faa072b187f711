from __future__ import annotations

from typing import Final


class InvalidTransitionError(ValueError):
    pass


BUILT: Final = "BUILT"
COMPLIANCE_CHECKING: Final = "COMPLIANCE_CHECKING"
COMPLIANCE_APPROVED: Final = "COMPLIANCE_APPROVED"
COMPLIANCE_REJECTED: Final = "COMPLIANCE_REJECTED"
REPORTING_SUBMITTING: Final = "REPORTING_SUBMITTING"
REPORTING_SUBMITTED: Final = "REPORTING_SUBMITTED"
REPORTING_FAILED: Final = "REPORTING_FAILED"
CLEARANCE_SUBMITTING: Final = "CLEARANCE_SUBMITTING"
CLEARED: Final = "CLEARED"
CLEARANCE_REJECTED: Final = "CLEARANCE_REJECTED"

TERMINAL_STATES: Final[set[str]] = {
    CLEARED,
    COMPLIANCE_REJECTED,
    REPORTING_FAILED,
    CLEARANCE_REJECTED,
}

ALLOWED_TRANSITIONS: Final[dict[str, set[str]]] = {
    # BUILT -> CLEARED is the testing-mode bypass.
    BUILT: {COMPLIANCE_CHECKING, CLEARED},
    COMPLIANCE_CHECKING: {COMPLIANCE_APPROVED, COMPLIANCE_REJECTED},
    COMPLIANCE_APPROVED: {REPORTING_SUBMITTING},
    REPORTING_SUBMITTING: {REPORTING_SUBMITTED, REPORTING_FAILED},
    REPORTING_SUBMITTED: {CLEARANCE_SUBMITTING},
    CLEARANCE_SUBMITTING: {CLEARED, CLEARANCE_REJECTED},
    CLEARED: set(),
    COMPLIANCE_REJECTED: set(),
    REPORTING_FAILED: set(),
    CLEARANCE_REJECTED: set(),
}

# (in-flight state, success state, failure state) per remote stage, in order.
STAGE_STATES: Final[dict[str, tuple[str, str, str]]] = {
    "compliance": (COMPLIANCE_CHECKING, COMPLIANCE_APPROVED, COMPLIANCE_REJECTED),
    "reporting": (REPORTING_SUBMITTING, REPORTING_SUBMITTED, REPORTING_FAILED),
    "clearance": (CLEARANCE_SUBMITTING, CLEARED, CLEARANCE_REJECTED),
}


def _known(state: str) -> str:
    normalized = state.strip().upper()
    if normalized not in ALLOWED_TRANSITIONS:
        raise InvalidTransitionError(f"Unknown state: {state}")
    return normalized


def can_transition(from_state: str, to_state: str) -> bool:
    try:
        return _known(to_state) in ALLOWED_TRANSITIONS[_known(from_state)]
    except InvalidTransitionError:
        return False


def transition_state(from_state: str, to_state: str) -> str:
    source = _known(from_state)
    target = _known(to_state)
    if target not in ALLOWED_TRANSITIONS[source]:
        raise InvalidTransitionError(f"Invalid transition: {source} -> {target}")
    return target


def _stage_states(stage: str) -> tuple[str, str, str]:
    try:
        return STAGE_STATES[stage]
    except KeyError:
        raise InvalidTransitionError(f"Unknown stage: {stage}") from None


def enter_stage(state: str, stage: str) -> str:
    """Move into ``stage``'s in-flight state; only legal from the previous stage's success."""
    return transition_state(state, _stage_states(stage)[0])


def finish_stage(state: str, stage: str, *, passed: bool) -> str:
    in_flight, success, failure = _stage_states(stage)
    if _known(state) != in_flight:
        raise InvalidTransitionError(f"Stage {stage} is not in flight (state {state})")
    return transition_state(state, success if passed else failure)
