"""
Reception Quality Control Models.

Enumerations shared by the two-phase delivery reception workflow and the
persisted terminal outcome of each reception:
- QualityStatus / GravelGrade: Phase 1 technical verdict
- VerificationAction / RejectionAction: Phase 2 evidence forms
- WorkflowRole / WorkflowPhase: actors and phases
- ReceptionRecord: committed VALIDATED or REJECTED reception
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, Dict, Any, List

from sqlalchemy import String, DateTime, Numeric, Text, Boolean, Index
from sqlalchemy.orm import Mapped, mapped_column

from reception.database import Base
from reception.db_types import JSONType, UUIDType


# ============================================================================
# ENUMS
# ============================================================================

class QualityStatus(str, Enum):
    """Phase 1 verdict."""
    CONFORME = "conforme"           # Compliant, validation allowed
    A_VERIFIER = "a_verifier"       # Needs front-desk verification
    NON_CONFORME = "non_conforme"   # Non-compliant, rejection mandatory


class GravelGrade(str, Enum):
    """Gravel grading classes."""
    G1 = "G1"   # 0-4mm
    G2 = "G2"   # 4-10mm
    G3 = "G3"   # 10-20mm

    @property
    def label(self) -> str:
        return GRAVEL_GRADE_LABELS[self]


GRAVEL_GRADE_LABELS: Dict[GravelGrade, str] = {
    GravelGrade.G1: "G1 (Gravier 0-4mm)",
    GravelGrade.G2: "G2 (Gravier 4-10mm)",
    GravelGrade.G3: "G3 (Gravier 10-20mm)",
}


class VerificationAction(str, Enum):
    """Recommended action on a verification form."""
    ACCEPT_WITH_CONDITIONS = "accept_with_conditions"
    REJECT = "reject"
    REQUEST_NEW_INSPECTION = "request_new_inspection"


class RejectionAction(str, Enum):
    """Disposition recorded on a rejection form."""
    RETURN_TO_SUPPLIER = "return_to_supplier"
    PARTIAL_USE = "partial_use"
    ADDITIONAL_INSPECTION = "additional_inspection"


class WorkflowRole(str, Enum):
    """Actors of the reception workflow."""
    TECHNICAL_RESPONSIBILITY = "technical_responsibility"
    FRONT_DESK = "front_desk"
    MANAGER = "manager"


class WorkflowPhase(str, Enum):
    """Coarse phase of a reception workflow."""
    TECHNICAL_CHECK = "technical_check"
    FRONT_DESK = "front_desk"
    COMPLETE = "complete"


class OutcomeStatus(str, Enum):
    """Terminal outcome committed to storage."""
    VALIDATED = "validated"
    REJECTED = "rejected"


# Stored precision (digits, scale) of the numeric columns. The amount column
# holds any quantity x unit price product exactly.
QUANTITY_PRECISION = (14, 3)
PRICE_PRECISION = (14, 4)
AMOUNT_PRECISION = (28, 7)
HUMIDITY_PRECISION = (5, 2)


# ============================================================================
# MODELS
# ============================================================================

class ReceptionRecord(Base):
    """
    Committed outcome of a delivery reception.

    One row per stock reception order. Written once at the terminal
    transition; a repeated finalize for the same order returns this row.
    """
    __tablename__ = "reception_records"
    __table_args__ = (
        Index('ix_reception_records_status', 'status'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    # Order reference (idempotency key)
    order_id: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
        index=True
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="validated, rejected"
    )

    # Commercial outcome (validated only)
    confirmed_quantity: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(*QUANTITY_PRECISION),
        nullable=True
    )
    total_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(*AMOUNT_PRECISION),
        nullable=True
    )

    # Phase 1 verdict snapshot
    quality_status: Mapped[str] = mapped_column(String(20), nullable=False)
    humidity_reading: Mapped[Optional[Decimal]] = mapped_column(Numeric(*HUMIDITY_PRECISION), nullable=True)
    is_high_humidity: Mapped[bool] = mapped_column(Boolean, default=False)
    gravel_grade: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    technician: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    quality_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Evidence forms
    verification_form: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    rejection_form: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONType, nullable=True)

    # Audit trail of state transitions
    audit_trail: Mapped[Optional[List[Dict[str, Any]]]] = mapped_column(JSONType, nullable=True)

    finalized_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    finalized_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )

    def __repr__(self) -> str:
        return f"<ReceptionRecord {self.order_id} {self.status}>"
