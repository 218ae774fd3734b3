"""
Reception Quality Control Schemas.

Pydantic schemas for the two-phase delivery reception workflow:
- Stock reception orders (input from procurement)
- Phase 1 quality check records
- Verification / rejection evidence forms
- Workflow state, snapshots and terminal outcomes
- API request and response bodies
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, List, Literal, Union, Dict, Any, Tuple
from uuid import UUID

from pydantic import BaseModel, Field, computed_field

from reception.config import settings
from reception.models.reception import (
    QualityStatus, GravelGrade, VerificationAction, RejectionAction,
    WorkflowRole, WorkflowPhase, PRICE_PRECISION, HUMIDITY_PRECISION
)
from reception.schemas.base import BaseResponseSchema, BaseCreateSchema, FrozenRecordSchema


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_high_humidity(reading: Decimal) -> bool:
    """Readings strictly above the alert threshold flag elevated risk."""
    return Decimal(reading) > settings.HUMIDITY_ALERT_THRESHOLD


def fits_numeric(value: Decimal, precision: Tuple[int, int]) -> bool:
    """True when a Numeric(digits, scale) column stores value without rounding."""
    digits, scale = precision
    if not value.is_finite():
        return False
    if value.normalize().as_tuple().exponent < -scale:
        return False
    return value == 0 or value.adjusted() < digits - scale


# ============================================================================
# ORDER & ACTOR
# ============================================================================

class StockReceptionOrder(FrozenRecordSchema):
    """Raw-material delivery awaiting reception."""
    id: str = Field(..., min_length=1, max_length=50)
    supplier: str = Field(..., max_length=255)
    material: str = Field(..., max_length=100)
    quantity: Decimal = Field(..., gt=0)
    unit: str = Field(..., max_length=20)
    unit_price: Decimal = Field(
        ..., ge=0, max_digits=PRICE_PRECISION[0], decimal_places=PRICE_PRECISION[1]
    )
    date: str


class Actor(FrozenRecordSchema):
    """Acting user as seen by the workflow."""
    id: str
    name: str
    role: WorkflowRole
    is_primary: bool = False


# ============================================================================
# PHASE 1 - QUALITY CHECK
# ============================================================================

class HumidityTest(FrozenRecordSchema):
    """Sand humidity test result; the meter photo is mandatory."""
    photo_captured: Literal[True]
    reading: Decimal = Field(
        ..., gt=0, le=settings.HUMIDITY_MAX_READING, decimal_places=HUMIDITY_PRECISION[1]
    )

    @computed_field
    @property
    def is_high_humidity(self) -> bool:
        return is_high_humidity(self.reading)


class GravelInspection(FrozenRecordSchema):
    """Gravel grading result; the gravel photo is mandatory."""
    photo_captured: Literal[True]
    grade: GravelGrade


class QualityCheckData(FrozenRecordSchema):
    """Immutable Phase 1 verdict read by the validation gate."""
    humidity: HumidityTest
    gravel: GravelInspection
    status: QualityStatus
    notes: str = ""
    technician: str
    timestamp: datetime = Field(default_factory=utcnow)


# ============================================================================
# PHASE 2 - EVIDENCE FORMS
# ============================================================================

class VerificationFormData(FrozenRecordSchema):
    """Front-desk justification for a verdict that needs verification."""
    reason: str = Field(..., min_length=1)
    photo_captured: bool
    recommended_action: VerificationAction
    notes: Optional[str] = None
    submitted_by: str
    timestamp: datetime = Field(default_factory=utcnow)


class RejectionFormData(FrozenRecordSchema):
    """Front-desk rejection evidence and disposition."""
    reason: str = Field(..., min_length=1)
    photo_captured: bool
    recommended_action: RejectionAction
    notes: Optional[str] = None
    submitted_by: str
    timestamp: datetime = Field(default_factory=utcnow)


class FormValidationError(FrozenRecordSchema):
    """
    Local validation failure.

    Returned instead of raised: the dependent action simply stays disabled
    until every listed field is supplied.
    """
    form: str
    missing: List[str]

    @property
    def message(self) -> str:
        return f"{self.form}: missing or invalid {', '.join(self.missing)}"


# ============================================================================
# WORKFLOW STATE & OUTCOMES
# ============================================================================

class TransitionRecord(FrozenRecordSchema):
    """One entry of the workflow audit trail."""
    from_status: str
    to_status: str
    action: str
    actor: Optional[str] = None
    role: Optional[WorkflowRole] = None
    override: bool = False
    at: datetime = Field(default_factory=utcnow)


class WorkflowState(BaseModel):
    """
    Aggregate record of one reception workflow.

    Mutated only by the validation gate. Blocking and validation
    permissions are derived from it, never stored.
    """
    order: StockReceptionOrder
    phase: WorkflowPhase = WorkflowPhase.TECHNICAL_CHECK
    status: str
    quality_check: Optional[QualityCheckData] = None
    verification_form: Optional[VerificationFormData] = None
    rejection_form: Optional[RejectionFormData] = None
    confirmed_quantity: Optional[Decimal] = None
    total_amount: Optional[Decimal] = None
    finalized_by: Optional[str] = None
    persisted: bool = False
    history: List[TransitionRecord] = Field(default_factory=list)


class ValidatedOutcome(FrozenRecordSchema):
    """Commercial outcome of an accepted delivery."""
    status: Literal["validated"] = "validated"
    order_id: str
    confirmed_quantity: Decimal
    total_amount: Decimal
    currency: str = settings.CURRENCY


class RejectedOutcome(FrozenRecordSchema):
    """Terminal rejection; no commercial outcome exists."""
    status: Literal["rejected"] = "rejected"
    order_id: str
    rejection_form: RejectionFormData


ReceptionOutcome = Union[ValidatedOutcome, RejectedOutcome]


class WorkflowSnapshot(BaseModel):
    """Rendering tuple for an in-progress workflow."""
    order_id: str
    phase: WorkflowPhase
    workflow_status: str
    can_validate: bool
    is_blocked: bool
    blocked_reason: Optional[str] = None
    outstanding_form: Optional[str] = None
    quality_status: Optional[QualityStatus] = None
    is_high_humidity: Optional[bool] = None
    confirmed_quantity: Optional[Decimal] = None
    total_amount: Optional[Decimal] = None
    persisted: bool = False
    is_terminal: bool = False


class FinalizeResult(FrozenRecordSchema):
    """Acknowledgement from the persistence collaborator."""
    order_id: str
    record_id: UUID
    status: str
    created: bool


# ============================================================================
# API SCHEMAS
# ============================================================================

class QualityCheckRequest(BaseCreateSchema):
    """Headless Phase 1 submission from the technician's device."""
    technician_id: str
    humidity_photo_captured: bool = False
    humidity_reading: Decimal
    gravel_photo_captured: bool = False
    gravel_grade: Optional[GravelGrade] = None
    status: QualityStatus
    notes: str = ""


class VerificationRequest(BaseCreateSchema):
    """Verification form as filled by the front desk."""
    reason: str = ""
    photo_captured: bool = False
    action: Optional[VerificationAction] = None
    notes: Optional[str] = None


class RejectionRequest(BaseCreateSchema):
    """Rejection form as filled by the front desk."""
    reason: str = ""
    photo_captured: bool = False
    action: Optional[RejectionAction] = None
    notes: Optional[str] = None


class ValidationRequest(BaseCreateSchema):
    """Quantity confirmation for commercial validation."""
    confirmed_quantity: Decimal


class TechnicianResponse(BaseModel):
    """Technician available for Phase 1."""
    id: str
    name: str
    is_primary: bool


class ReceptionRecordResponse(BaseResponseSchema):
    """Persisted reception outcome."""
    id: UUID
    order_id: str
    status: str
    confirmed_quantity: Optional[Decimal] = None
    total_amount: Optional[Decimal] = None
    quality_status: str
    humidity_reading: Optional[Decimal] = None
    is_high_humidity: bool
    gravel_grade: Optional[str] = None
    technician: Optional[str] = None
    quality_notes: Optional[str] = None
    verification_form: Optional[Dict[str, Any]] = None
    rejection_form: Optional[Dict[str, Any]] = None
    finalized_by: Optional[str] = None
    finalized_at: datetime


class ReceptionStatusResponse(BaseModel):
    """Open workflow snapshot, or the committed record once closed."""
    order_id: str
    open: bool
    snapshot: Optional[WorkflowSnapshot] = None
    record: Optional[ReceptionRecordResponse] = None


class ReceptionRecordListResponse(BaseModel):
    """Paginated committed receptions."""
    items: List[ReceptionRecordResponse]
    total: int
    skip: int
    limit: int


class FinalizeRetryResponse(BaseModel):
    """Result of a finalize retry."""
    result: FinalizeResult
    snapshot: WorkflowSnapshot
