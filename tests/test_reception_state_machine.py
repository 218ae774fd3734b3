"""
Tests for the reception state machine and gate predicates.

Verifies:
- can_validate / is_blocked over every combination of inputs
- Transition table and terminal states
- Transition executor audit trail
"""
import itertools

import pytest

from conftest import make_order
from reception.core.exceptions import WorkflowStateError, WorkflowTerminalError
from reception.models.reception import QualityStatus, VerificationAction, WorkflowPhase, WorkflowRole
from reception.schemas.reception import WorkflowState
from reception.services import reception_state_machine as sm
from reception.services.reception_state_machine import WorkflowStatus


STATUSES = [None, *QualityStatus]
ACTIONS = [None, *VerificationAction]
COMBINATIONS = list(itertools.product(STATUSES, [False, True], ACTIONS, [False, True]))


def expected_can_validate(status, ver_submitted, ver_action, rej_submitted):
    return status == QualityStatus.CONFORME or (
        status == QualityStatus.A_VERIFIER
        and ver_submitted
        and ver_action == VerificationAction.ACCEPT_WITH_CONDITIONS
    )


class TestCanValidate:
    """can_validate truth table."""

    @pytest.mark.parametrize("status,ver_submitted,ver_action,rej_submitted", COMBINATIONS)
    def test_matches_rule(self, status, ver_submitted, ver_action, rej_submitted):
        assert sm.can_validate(status, ver_submitted, ver_action, rej_submitted) == expected_can_validate(
            status, ver_submitted, ver_action, rej_submitted
        )

    @pytest.mark.parametrize("ver_submitted,ver_action,rej_submitted", itertools.product(
        [False, True], ACTIONS, [False, True]
    ))
    def test_never_for_non_conforme(self, ver_submitted, ver_action, rej_submitted):
        assert not sm.can_validate(QualityStatus.NON_CONFORME, ver_submitted, ver_action, rej_submitted)

    def test_accepts_raw_strings(self):
        assert sm.can_validate("conforme", False, None, False)
        assert sm.can_validate("a_verifier", True, "accept_with_conditions", False)


class TestIsBlocked:
    """is_blocked and its outstanding requirement."""

    @pytest.mark.parametrize("status,ver_submitted,ver_action,rej_submitted", COMBINATIONS)
    def test_core_rule_implies_blocked(self, status, ver_submitted, ver_action, rej_submitted):
        core = (
            (status == QualityStatus.A_VERIFIER and not ver_submitted)
            or (status == QualityStatus.NON_CONFORME and not rej_submitted)
        )
        if core:
            assert sm.is_blocked(status, ver_submitted, ver_action, rej_submitted)

    @pytest.mark.parametrize("status,ver_submitted,ver_action,rej_submitted", COMBINATIONS)
    def test_never_blocked_and_validatable(self, status, ver_submitted, ver_action, rej_submitted):
        assert not (
            sm.is_blocked(status, ver_submitted, ver_action, rej_submitted)
            and sm.can_validate(status, ver_submitted, ver_action, rej_submitted)
        )

    def test_conforme_not_blocked(self):
        assert not sm.is_blocked(QualityStatus.CONFORME, False, None, False)
        assert sm.blocked_reason(QualityStatus.CONFORME, False, None, False) is None

    def test_no_verdict_yet(self):
        assert sm.outstanding_requirement(None, False, None, False) == "quality_check"

    def test_non_conforme_waits_for_rejection(self):
        assert sm.outstanding_requirement(QualityStatus.NON_CONFORME, False, None, False) == "rejection_form"
        assert sm.outstanding_requirement(QualityStatus.NON_CONFORME, False, None, True) is None

    def test_a_verifier_waits_for_verification(self):
        assert sm.outstanding_requirement(QualityStatus.A_VERIFIER, False, None, False) == "verification_form"
        assert sm.blocked_reason(QualityStatus.A_VERIFIER, False, None, False) == (
            sm.OUTSTANDING_REASONS["verification_form"]
        )

    def test_verification_reject_waits_for_rejection(self):
        assert sm.outstanding_requirement(
            QualityStatus.A_VERIFIER, True, VerificationAction.REJECT, False
        ) == "rejection_form"

    def test_new_inspection_stays_blocked(self):
        args = (QualityStatus.A_VERIFIER, True, VerificationAction.REQUEST_NEW_INSPECTION, False)
        assert sm.is_blocked(*args)
        assert not sm.can_validate(*args)
        assert sm.outstanding_requirement(*args) == "new_inspection"

    def test_accepted_verification_unblocks(self):
        args = (QualityStatus.A_VERIFIER, True, VerificationAction.ACCEPT_WITH_CONDITIONS, False)
        assert not sm.is_blocked(*args)
        assert sm.can_validate(*args)


class TestTransitionTable:
    """Allowed transitions."""

    def test_every_status_has_an_entry(self):
        assert set(sm.RECEPTION_TRANSITIONS) == set(WorkflowStatus.all())

    @pytest.mark.parametrize("status", [WorkflowStatus.VALIDATED, WorkflowStatus.REJECTED])
    def test_terminal_states(self, status):
        assert sm.is_terminal(status)
        assert sm.get_allowed_transitions(status) == []
        with pytest.raises(WorkflowTerminalError):
            sm.validate_transition(status, WorkflowStatus.AWAITING_TECHNICAL)

    def test_reinspect_has_no_path_to_validated(self):
        assert not sm.is_terminal(WorkflowStatus.VERIFIED_REINSPECT)
        assert sm.get_allowed_transitions(WorkflowStatus.VERIFIED_REINSPECT) == []

    def test_non_conforme_cannot_validate(self):
        assert not sm.can_transition(WorkflowStatus.VERDICT_NON_CONFORME, WorkflowStatus.VALIDATED)

    def test_validated_only_from_accepting_states(self):
        sources = [s for s, targets in sm.RECEPTION_TRANSITIONS.items() if WorkflowStatus.VALIDATED in targets]
        assert set(sources) == {WorkflowStatus.VERDICT_CONFORME, WorkflowStatus.VERIFIED_ACCEPTED}

    def test_illegal_transition_message(self):
        with pytest.raises(WorkflowStateError) as exc_info:
            sm.validate_transition(
                WorkflowStatus.AWAITING_TECHNICAL, WorkflowStatus.VALIDATED, "BR-1"
            )
        assert "Allowed transitions" in exc_info.value.message
        assert exc_info.value.order_id == "BR-1"

    def test_phase_for(self):
        assert sm.phase_for(WorkflowStatus.AWAITING_TECHNICAL) == WorkflowPhase.TECHNICAL_CHECK
        assert sm.phase_for(WorkflowStatus.VERDICT_NON_CONFORME) == WorkflowPhase.FRONT_DESK
        assert sm.phase_for(WorkflowStatus.REJECTED) == WorkflowPhase.COMPLETE


class TestTransitionExecutor:
    """transition_reception."""

    def test_updates_status_phase_and_history(self):
        state = WorkflowState(order=make_order(), status=WorkflowStatus.AWAITING_TECHNICAL)
        record = sm.transition_reception(
            state, WorkflowStatus.VERDICT_CONFORME,
            actor="Abdel Sadek", role=WorkflowRole.TECHNICAL_RESPONSIBILITY
        )
        assert state.status == WorkflowStatus.VERDICT_CONFORME
        assert state.phase == WorkflowPhase.FRONT_DESK
        assert state.history == [record]
        assert record.action == "Technical Verdict: Conforme"
        assert record.override is False

    def test_refused_transition_leaves_state_untouched(self):
        state = WorkflowState(order=make_order(), status=WorkflowStatus.VERDICT_NON_CONFORME)
        with pytest.raises(WorkflowStateError):
            sm.transition_reception(state, WorkflowStatus.VALIDATED)
        assert state.status == WorkflowStatus.VERDICT_NON_CONFORME
        assert state.history == []
