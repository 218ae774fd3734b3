"""
Reception Workflow State Machine

This module is the SINGLE SOURCE OF TRUTH for reception workflow status
transitions and for the validation gate's two derived flags:
- can_validate: may the front desk confirm quantity and close the deal?
- is_blocked: is the front desk waiting on an outstanding form/inspection?

Both flags are pure functions of the verdict and sub-form completion so the
same logic runs headlessly in tests, in the API and in any UI.
"""

from typing import Optional, List, Dict, Union

from reception.core.exceptions import WorkflowStateError, WorkflowTerminalError
from reception.models.reception import (
    QualityStatus, VerificationAction, WorkflowPhase, WorkflowRole
)
from reception.schemas.reception import WorkflowState, TransitionRecord


# =============================================================================
# STATUS DEFINITIONS (Single Source of Truth)
# =============================================================================

class WorkflowStatus:
    """Reception workflow status constants - use these instead of strings."""
    AWAITING_TECHNICAL = "AWAITING_TECHNICAL"
    VERDICT_CONFORME = "VERDICT_CONFORME"
    VERDICT_NEEDS_VERIFICATION = "VERDICT_NEEDS_VERIFICATION"
    VERDICT_NON_CONFORME = "VERDICT_NON_CONFORME"
    VERIFIED_ACCEPTED = "VERIFIED_ACCEPTED"
    VERIFIED_REJECTED = "VERIFIED_REJECTED"
    VERIFIED_REINSPECT = "VERIFIED_REINSPECT"
    REJECTION_RECORDED = "REJECTION_RECORDED"
    VALIDATED = "VALIDATED"
    REJECTED = "REJECTED"

    @classmethod
    def all(cls) -> List[str]:
        return [
            cls.AWAITING_TECHNICAL,
            cls.VERDICT_CONFORME, cls.VERDICT_NEEDS_VERIFICATION, cls.VERDICT_NON_CONFORME,
            cls.VERIFIED_ACCEPTED, cls.VERIFIED_REJECTED, cls.VERIFIED_REINSPECT,
            cls.REJECTION_RECORDED,
            cls.VALIDATED, cls.REJECTED,
        ]


# =============================================================================
# TRANSITION RULES
# =============================================================================

# Format: current_status -> [list of allowed next statuses]
RECEPTION_TRANSITIONS: Dict[str, List[str]] = {
    WorkflowStatus.AWAITING_TECHNICAL: [
        WorkflowStatus.VERDICT_CONFORME,            # Verdict: conforme
        WorkflowStatus.VERDICT_NEEDS_VERIFICATION,  # Verdict: a_verifier
        WorkflowStatus.VERDICT_NON_CONFORME,        # Verdict: non_conforme
    ],
    WorkflowStatus.VERDICT_CONFORME: [
        WorkflowStatus.VALIDATED,                   # Confirm quantity
    ],
    WorkflowStatus.VERDICT_NEEDS_VERIFICATION: [
        WorkflowStatus.VERIFIED_ACCEPTED,           # accept_with_conditions
        WorkflowStatus.VERIFIED_REJECTED,           # reject
        WorkflowStatus.VERIFIED_REINSPECT,          # request_new_inspection
    ],
    WorkflowStatus.VERIFIED_ACCEPTED: [
        WorkflowStatus.VALIDATED,                   # Confirm quantity
    ],
    WorkflowStatus.VERIFIED_REJECTED: [
        WorkflowStatus.REJECTION_RECORDED,          # Rejection form submitted
    ],
    WorkflowStatus.VERDICT_NON_CONFORME: [
        WorkflowStatus.REJECTION_RECORDED,          # Rejection form submitted
    ],
    WorkflowStatus.REJECTION_RECORDED: [
        WorkflowStatus.REJECTED,                    # Close as rejected
    ],
    WorkflowStatus.VERIFIED_REINSPECT: [],          # Pending - back in the technical queue
    WorkflowStatus.VALIDATED: [],                   # Terminal state - no transitions
    WorkflowStatus.REJECTED: [],                    # Terminal state - no transitions
}

# Human-readable action names for each transition
TRANSITION_ACTIONS: Dict[tuple, str] = {
    (WorkflowStatus.AWAITING_TECHNICAL, WorkflowStatus.VERDICT_CONFORME): "Technical Verdict: Conforme",
    (WorkflowStatus.AWAITING_TECHNICAL, WorkflowStatus.VERDICT_NEEDS_VERIFICATION): "Technical Verdict: To Verify",
    (WorkflowStatus.AWAITING_TECHNICAL, WorkflowStatus.VERDICT_NON_CONFORME): "Technical Verdict: Non-Conforme",
    (WorkflowStatus.VERDICT_CONFORME, WorkflowStatus.VALIDATED): "Validate Reception",
    (WorkflowStatus.VERDICT_NEEDS_VERIFICATION, WorkflowStatus.VERIFIED_ACCEPTED): "Accept With Conditions",
    (WorkflowStatus.VERDICT_NEEDS_VERIFICATION, WorkflowStatus.VERIFIED_REJECTED): "Recommend Rejection",
    (WorkflowStatus.VERDICT_NEEDS_VERIFICATION, WorkflowStatus.VERIFIED_REINSPECT): "Request New Inspection",
    (WorkflowStatus.VERIFIED_ACCEPTED, WorkflowStatus.VALIDATED): "Validate Reception",
    (WorkflowStatus.VERIFIED_REJECTED, WorkflowStatus.REJECTION_RECORDED): "Record Rejection",
    (WorkflowStatus.VERDICT_NON_CONFORME, WorkflowStatus.REJECTION_RECORDED): "Record Rejection",
    (WorkflowStatus.REJECTION_RECORDED, WorkflowStatus.REJECTED): "Close As Rejected",
}

VERDICT_STATUS: Dict[QualityStatus, str] = {
    QualityStatus.CONFORME: WorkflowStatus.VERDICT_CONFORME,
    QualityStatus.A_VERIFIER: WorkflowStatus.VERDICT_NEEDS_VERIFICATION,
    QualityStatus.NON_CONFORME: WorkflowStatus.VERDICT_NON_CONFORME,
}

VERIFICATION_STATUS: Dict[VerificationAction, str] = {
    VerificationAction.ACCEPT_WITH_CONDITIONS: WorkflowStatus.VERIFIED_ACCEPTED,
    VerificationAction.REJECT: WorkflowStatus.VERIFIED_REJECTED,
    VerificationAction.REQUEST_NEW_INSPECTION: WorkflowStatus.VERIFIED_REINSPECT,
}


# Outstanding requirement keys and their user-facing reasons
OUTSTANDING_REASONS: Dict[str, str] = {
    "quality_check": "Technical quality check not yet submitted",
    "verification_form": "Verification form required before validation",
    "rejection_form": "Rejection form required - delivery cannot be validated",
    "new_inspection": "Awaiting a new technical inspection",
}


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def can_transition(current_status: str, new_status: str) -> bool:
    """Check if a transition is allowed."""
    allowed = RECEPTION_TRANSITIONS.get(current_status, [])
    return new_status in allowed


def get_allowed_transitions(current_status: str) -> List[str]:
    """Get list of statuses that can be transitioned to from current status."""
    return RECEPTION_TRANSITIONS.get(current_status, [])


def get_transition_action(current_status: str, new_status: str) -> str:
    """Get human-readable action name for a transition."""
    return TRANSITION_ACTIONS.get((current_status, new_status), f"{current_status} -> {new_status}")


def is_terminal(status: str) -> bool:
    """Is this a terminal (final) state?"""
    return status in [WorkflowStatus.VALIDATED, WorkflowStatus.REJECTED]


def phase_for(status: str) -> WorkflowPhase:
    """Coarse phase shown to the user for a status."""
    if status == WorkflowStatus.AWAITING_TECHNICAL:
        return WorkflowPhase.TECHNICAL_CHECK
    if is_terminal(status):
        return WorkflowPhase.COMPLETE
    return WorkflowPhase.FRONT_DESK


def validate_transition(current_status: str, new_status: str, order_id: Optional[str] = None) -> None:
    """
    Validate a status transition.

    Raises:
        WorkflowTerminalError: current status is VALIDATED or REJECTED
        WorkflowStateError: the transition is not in the table
    """
    if is_terminal(current_status):
        raise WorkflowTerminalError(
            f"Reception in '{current_status}' status cannot be modified. This is a terminal state.",
            order_id
        )
    if not can_transition(current_status, new_status):
        allowed = get_allowed_transitions(current_status)
        raise WorkflowStateError(
            f"Cannot change reception from '{current_status}' to '{new_status}'. "
            f"Allowed transitions: {', '.join(allowed) or 'none'}",
            order_id
        )


# =============================================================================
# GATE PREDICATES (pure)
# =============================================================================

def _as_status(value: Union[QualityStatus, str, None]) -> Optional[QualityStatus]:
    return QualityStatus(value) if value is not None else None


def _as_action(value: Union[VerificationAction, str, None]) -> Optional[VerificationAction]:
    return VerificationAction(value) if value is not None else None


def can_validate(
    quality_status: Union[QualityStatus, str, None],
    verification_submitted: bool,
    verification_action: Union[VerificationAction, str, None],
    rejection_submitted: bool,
) -> bool:
    """
    Is commercial validation currently permitted?

    Only a conforme verdict, or a verification accepted with conditions.
    A non-conforme verdict never reaches validation.
    """
    status = _as_status(quality_status)
    if status == QualityStatus.CONFORME:
        return True
    return (
        status == QualityStatus.A_VERIFIER
        and verification_submitted
        and _as_action(verification_action) == VerificationAction.ACCEPT_WITH_CONDITIONS
    )


def outstanding_requirement(
    quality_status: Union[QualityStatus, str, None],
    verification_submitted: bool,
    verification_action: Union[VerificationAction, str, None],
    rejection_submitted: bool,
) -> Optional[str]:
    """Key of what the front desk is waiting on, or None when not blocked."""
    status = _as_status(quality_status)
    action = _as_action(verification_action)

    if status is None:
        return "quality_check"
    if status == QualityStatus.NON_CONFORME:
        return None if rejection_submitted else "rejection_form"
    if status == QualityStatus.A_VERIFIER:
        if not verification_submitted:
            return "verification_form"
        if action == VerificationAction.REQUEST_NEW_INSPECTION:
            return "new_inspection"
        if action == VerificationAction.REJECT and not rejection_submitted:
            return "rejection_form"
    return None


def is_blocked(
    quality_status: Union[QualityStatus, str, None],
    verification_submitted: bool,
    verification_action: Union[VerificationAction, str, None],
    rejection_submitted: bool,
) -> bool:
    """Is the front desk blocked waiting on an outstanding form or inspection?"""
    return outstanding_requirement(
        quality_status, verification_submitted, verification_action, rejection_submitted
    ) is not None


def blocked_reason(
    quality_status: Union[QualityStatus, str, None],
    verification_submitted: bool,
    verification_action: Union[VerificationAction, str, None],
    rejection_submitted: bool,
) -> Optional[str]:
    """User-facing reason accompanying a blocked state."""
    key = outstanding_requirement(
        quality_status, verification_submitted, verification_action, rejection_submitted
    )
    return OUTSTANDING_REASONS[key] if key else None


def gate_inputs(state: WorkflowState) -> tuple:
    """Extract the four predicate inputs from the aggregate state."""
    return (
        state.quality_check.status if state.quality_check else None,
        state.verification_form is not None,
        state.verification_form.recommended_action if state.verification_form else None,
        state.rejection_form is not None,
    )


# =============================================================================
# TRANSITION EXECUTOR
# =============================================================================

def transition_reception(
    state: WorkflowState,
    new_status: str,
    actor: Optional[str] = None,
    role: Optional[WorkflowRole] = None,
    override: bool = False,
) -> TransitionRecord:
    """
    Transition a reception workflow to a new status.

    This function:
    1. Validates the transition is allowed
    2. Updates the status and phase
    3. Appends an audit trail entry

    Raises:
        WorkflowTerminalError / WorkflowStateError: if transition is not allowed
    """
    current_status = state.status
    validate_transition(current_status, new_status, state.order.id)

    record = TransitionRecord(
        from_status=current_status,
        to_status=new_status,
        action=get_transition_action(current_status, new_status),
        actor=actor,
        role=role,
        override=override,
    )
    state.status = new_status
    state.phase = phase_for(new_status)
    state.history.append(record)
    return record
