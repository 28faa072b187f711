from __future__ import annotations

import pytest

from zatca_relay.state_machine import (
    ALLOWED_TRANSITIONS,
    STAGE_STATES,
    TERMINAL_STATES,
    InvalidTransitionError,
    can_transition,
    enter_stage,
    finish_stage,
    transition_state,
)


def test_happy_path_transitions() -> None:
    assert transition_state("BUILT", "COMPLIANCE_CHECKING") == "COMPLIANCE_CHECKING"
    assert transition_state("COMPLIANCE_CHECKING", "COMPLIANCE_APPROVED") == "COMPLIANCE_APPROVED"
    assert transition_state("COMPLIANCE_APPROVED", "REPORTING_SUBMITTING") == "REPORTING_SUBMITTING"
    assert transition_state("REPORTING_SUBMITTING", "REPORTING_SUBMITTED") == "REPORTING_SUBMITTED"
    assert transition_state("REPORTING_SUBMITTED", "CLEARANCE_SUBMITTING") == "CLEARANCE_SUBMITTING"
    assert transition_state("CLEARANCE_SUBMITTING", "CLEARED") == "CLEARED"


def test_testing_mode_bypass_is_allowed() -> None:
    assert transition_state("built", " cleared ") == "CLEARED"


def test_stages_cannot_be_skipped() -> None:
    with pytest.raises(InvalidTransitionError, match="Invalid transition"):
        transition_state("COMPLIANCE_APPROVED", "CLEARANCE_SUBMITTING")
    assert not can_transition("BUILT", "REPORTING_SUBMITTING")


def test_unknown_state_raises() -> None:
    with pytest.raises(InvalidTransitionError, match="Unknown state"):
        transition_state("MISSING", "COMPLIANCE_CHECKING")
    with pytest.raises(InvalidTransitionError, match="Unknown state"):
        transition_state("BUILT", "MISSING")


def test_terminal_states_have_no_outbound_transitions() -> None:
    for state in TERMINAL_STATES:
        assert ALLOWED_TRANSITIONS[state] == set()
        assert not can_transition(state, "BUILT")
        with pytest.raises(InvalidTransitionError):
            transition_state(state, "COMPLIANCE_CHECKING")


def test_every_stage_failure_is_terminal() -> None:
    for in_flight, passed, rejected in STAGE_STATES.values():
        assert can_transition(in_flight, passed)
        assert can_transition(in_flight, rejected)
        assert rejected in TERMINAL_STATES


def test_stage_helpers_follow_stage_states() -> None:
    assert enter_stage("BUILT", "compliance") == "COMPLIANCE_CHECKING"
    assert finish_stage("COMPLIANCE_CHECKING", "compliance", passed=True) == "COMPLIANCE_APPROVED"
    assert finish_stage("COMPLIANCE_CHECKING", "compliance", passed=False) == "COMPLIANCE_REJECTED"
    assert enter_stage("COMPLIANCE_APPROVED", "reporting") == "REPORTING_SUBMITTING"
    assert finish_stage("CLEARANCE_SUBMITTING", "clearance", passed=True) == "CLEARED"


def test_stage_helpers_reject_out_of_order_use() -> None:
    with pytest.raises(InvalidTransitionError, match="Invalid transition"):
        enter_stage("BUILT", "reporting")
    with pytest.raises(InvalidTransitionError, match="not in flight"):
        finish_stage("BUILT", "compliance", passed=True)
    with pytest.raises(InvalidTransitionError, match="Unknown stage"):
        enter_stage("BUILT", "archival")
