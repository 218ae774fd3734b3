"""
Quality Assessment Service - Phase 1: Technical Inspection.

A strictly ordered four-step procedure run by technical staff:
1. Technician selection (from the technical-responsibility pool)
2. Humidity test (photo first, then a reading in (0, 30], two decimals)
3. Material grading (photo first, then a grade G1/G2/G3)
4. Verdict (conforme / a_verifier / non_conforme + notes)

Each step's advance is refused until its evidence exists. A high humidity
reading never blocks progression; it only flags risk for the verdict.
Submitting emits the immutable QualityCheckData and ends Phase 1.
"""
import logging
from decimal import Decimal, InvalidOperation
from enum import IntEnum
from typing import Optional, List, Dict, Any, Union

from reception.config import settings
from reception.core.exceptions import WorkflowStateError, UnknownActor
from reception.models.reception import QualityStatus, GravelGrade, HUMIDITY_PRECISION
from reception.schemas.reception import (
    Actor, StockReceptionOrder, QualityCheckData, HumidityTest, GravelInspection,
    FormValidationError, is_high_humidity, fits_numeric
)
from reception.services.evidence_capture import (
    EvidenceCapturer, EvidenceSlot, CaptureRequest, SimulatedCapturer
)


logger = logging.getLogger(__name__)


class AssessmentStep(IntEnum):
    """Ordered Phase 1 steps."""
    TECHNICIAN_SELECTION = 1
    HUMIDITY_TEST = 2
    MATERIAL_GRADING = 3
    VERDICT = 4


def humidity_in_range(reading: Optional[Decimal]) -> bool:
    """A usable reading lies in (0, HUMIDITY_MAX_READING] at the meter resolution."""
    return (
        reading is not None
        and Decimal("0") < reading <= settings.HUMIDITY_MAX_READING
        and fits_numeric(reading, HUMIDITY_PRECISION)
    )


class QualityAssessment:
    """Phase 1 engine for one stock reception order."""

    def __init__(
        self,
        order: StockReceptionOrder,
        technicians: List[Actor],
        capturer: Optional[EvidenceCapturer] = None
    ):
        capturer = capturer or SimulatedCapturer()
        self.order = order
        self.pool: Dict[str, Actor] = {t.id: t for t in technicians}
        self.step = AssessmentStep.TECHNICIAN_SELECTION
        self.technician: Optional[Actor] = None

        self.humidity_photo = EvidenceSlot("humidity", capturer)
        self.humidity_reading: Optional[Decimal] = None

        self.gravel_photo = EvidenceSlot("gravel", capturer)
        self.gravel_grade: Optional[GravelGrade] = None

        self.quality_status: Optional[QualityStatus] = None
        self.notes: str = ""
        self.result: Optional[QualityCheckData] = None

    # ========================================================================
    # STEP 1 - TECHNICIAN
    # ========================================================================

    def select_technician(self, technician_id: str) -> Actor:
        """Choose the acting inspector."""
        self._require_step(AssessmentStep.TECHNICIAN_SELECTION)
        technician = self.pool.get(technician_id)
        if technician is None:
            raise UnknownActor(
                f"'{technician_id}' is not in the technical pool", self.order.id
            )
        self.technician = technician
        return technician

    # ========================================================================
    # STEP 2 - HUMIDITY
    # ========================================================================

    async def capture_humidity_photo(self) -> bool:
        """Photograph the humidity meter; resolves to the captured flag."""
        self._require_step(AssessmentStep.HUMIDITY_TEST)
        return await self.humidity_photo.capture(CaptureRequest("humidity", self.order.id))

    def cancel_humidity_capture(self) -> None:
        self.humidity_photo.cancel()

    @property
    def can_enter_humidity_reading(self) -> bool:
        return self.step == AssessmentStep.HUMIDITY_TEST and self.humidity_photo.captured

    def set_humidity_reading(self, reading: Union[Decimal, str, float]) -> None:
        """Record the meter reading; only usable once the photo exists."""
        self._require_step(AssessmentStep.HUMIDITY_TEST)
        if not self.humidity_photo.captured:
            raise WorkflowStateError("Humidity photo required before entering a reading", self.order.id)
        try:
            value = Decimal(str(reading))
        except InvalidOperation:
            value = None
        self.humidity_reading = value if value is not None and value.is_finite() else None

    @property
    def is_high_humidity(self) -> bool:
        return self.humidity_reading is not None and is_high_humidity(self.humidity_reading)

    # ========================================================================
    # STEP 3 - GRAVEL
    # ========================================================================

    async def capture_gravel_photo(self) -> bool:
        """Photograph a handful of gravel; resolves to the captured flag."""
        self._require_step(AssessmentStep.MATERIAL_GRADING)
        return await self.gravel_photo.capture(CaptureRequest("gravel", self.order.id))

    def cancel_gravel_capture(self) -> None:
        self.gravel_photo.cancel()

    @property
    def can_select_grade(self) -> bool:
        return self.step == AssessmentStep.MATERIAL_GRADING and self.gravel_photo.captured

    def select_grade(self, grade: Union[GravelGrade, str]) -> None:
        self._require_step(AssessmentStep.MATERIAL_GRADING)
        if not self.gravel_photo.captured:
            raise WorkflowStateError("Gravel photo required before grading", self.order.id)
        self.gravel_grade = GravelGrade(grade)

    # ========================================================================
    # STEP 4 - VERDICT
    # ========================================================================

    def set_verdict(self, status: Union[QualityStatus, str], notes: str = "") -> None:
        self._require_step(AssessmentStep.VERDICT)
        self.quality_status = QualityStatus(status)
        self.notes = notes or ""

    def summary(self) -> Dict[str, Any]:
        """Captured evidence, as reviewed by the technician before the verdict."""
        return {
            "order_id": self.order.id,
            "technician": self.technician.name if self.technician else None,
            "humidity_reading": self.humidity_reading,
            "is_high_humidity": self.is_high_humidity,
            "gravel_grade": self.gravel_grade.value if self.gravel_grade else None,
            "suggested_status": (
                QualityStatus.A_VERIFIER if self.is_high_humidity else QualityStatus.CONFORME
            ),
        }

    def submit(self) -> Union[QualityCheckData, FormValidationError]:
        """Emit the immutable verdict and close Phase 1."""
        self._require_step(AssessmentStep.VERDICT)
        missing = self.missing_requirements()
        if missing:
            return FormValidationError(form="quality_check", missing=missing)

        self.result = QualityCheckData(
            humidity=HumidityTest(
                photo_captured=self.humidity_photo.captured,
                reading=self.humidity_reading,
            ),
            gravel=GravelInspection(
                photo_captured=self.gravel_photo.captured,
                grade=self.gravel_grade,
            ),
            status=self.quality_status,
            notes=self.notes,
            technician=self.technician.name,
        )
        logger.info(
            "[QUALITY_CHECK] order=%s status=%s humidity=%s%s grade=%s by %s",
            self.order.id, self.result.status.value, self.humidity_reading,
            " (high)" if self.result.humidity.is_high_humidity else "",
            self.gravel_grade.value, self.technician.name
        )
        return self.result

    # ========================================================================
    # NAVIGATION
    # ========================================================================

    def missing_requirements(self) -> List[str]:
        """Evidence still required before the current step can be left."""
        missing: List[str] = []
        if self.step == AssessmentStep.TECHNICIAN_SELECTION:
            if self.technician is None:
                missing.append("technician")
        elif self.step == AssessmentStep.HUMIDITY_TEST:
            if not self.humidity_photo.captured:
                missing.append("humidity_photo")
            if not humidity_in_range(self.humidity_reading):
                missing.append("humidity_reading")
        elif self.step == AssessmentStep.MATERIAL_GRADING:
            if not self.gravel_photo.captured:
                missing.append("gravel_photo")
            if self.gravel_grade is None:
                missing.append("gravel_grade")
        elif self.step == AssessmentStep.VERDICT:
            if self.quality_status is None:
                missing.append("quality_status")
        return missing

    @property
    def can_advance(self) -> bool:
        return (
            self.step < AssessmentStep.VERDICT
            and self.result is None
            and not self.missing_requirements()
        )

    def advance(self) -> Optional[FormValidationError]:
        """Move to the next step, or report what is still missing."""
        if self.result is not None:
            raise WorkflowStateError("Quality check already submitted", self.order.id)
        if self.step == AssessmentStep.VERDICT:
            raise WorkflowStateError("Verdict step ends with submit, not advance", self.order.id)

        missing = self.missing_requirements()
        if missing:
            return FormValidationError(form=f"step_{self.step.name.lower()}", missing=missing)

        self.step = AssessmentStep(self.step + 1)
        logger.debug("Quality check %s advanced to %s", self.order.id, self.step.name)
        return None

    @property
    def is_complete(self) -> bool:
        return self.result is not None

    def _require_step(self, step: AssessmentStep) -> None:
        if self.result is not None:
            raise WorkflowStateError("Quality check already submitted", self.order.id)
        if self.step != step:
            raise WorkflowStateError(
                f"Step {step.name} not available, current step is {self.step.name}",
                self.order.id
            )
