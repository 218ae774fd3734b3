# Models module
from reception.models.reception import (
    ReceptionRecord,
    QualityStatus,
    GravelGrade,
    VerificationAction,
    RejectionAction,
    WorkflowRole,
    WorkflowPhase,
    OutcomeStatus,
)

__all__ = [
    "ReceptionRecord",
    "QualityStatus",
    "GravelGrade",
    "VerificationAction",
    "RejectionAction",
    "WorkflowRole",
    "WorkflowPhase",
    "OutcomeStatus",
]
