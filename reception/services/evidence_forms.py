"""
Evidence sub-flows of front-desk validation.

VerificationSubflow runs when the verdict is "a_verifier"; RejectionSubflow
when the verdict is "non_conforme" or a verification recommended rejection.
Both share one contract: a non-empty reason, a captured photo and an action
from the sub-flow's own enumeration. Missing input keeps submit disabled
and comes back as a FormValidationError value. A successful form is
write-once for the workflow instance.
"""
import logging
from enum import Enum
from typing import Optional, List, Type, Union, Any

from reception.core.exceptions import WorkflowStateError
from reception.models.reception import VerificationAction, RejectionAction
from reception.schemas.reception import (
    VerificationFormData, RejectionFormData, FormValidationError
)
from reception.services.evidence_capture import (
    EvidenceCapturer, EvidenceSlot, CaptureRequest, SimulatedCapturer
)


logger = logging.getLogger(__name__)


class EvidenceSubflow:
    """Shared write-once evidence form."""

    form_name: str = "evidence_form"
    photo_subject: str = "evidence"
    action_enum: Type[Enum]
    form_model: Type[Union[VerificationFormData, RejectionFormData]]

    def __init__(self, order_id: str, capturer: Optional[EvidenceCapturer] = None):
        self.order_id = order_id
        self.photo = EvidenceSlot(self.photo_subject, capturer or SimulatedCapturer())
        self.result: Optional[Union[VerificationFormData, RejectionFormData]] = None

    @property
    def submitted(self) -> bool:
        return self.result is not None

    @property
    def allowed_actions(self) -> List[str]:
        return [a.value for a in self.action_enum]

    async def capture_photo(self) -> bool:
        """Photograph the concern; resolves to the captured flag."""
        return await self.photo.capture(CaptureRequest(self.photo_subject, self.order_id))

    def _coerce_action(self, action: Any) -> Optional[Enum]:
        if action is None:
            return None
        try:
            return self.action_enum(action)
        except ValueError:
            return None

    def check(self, reason: Optional[str], photo_captured: Optional[bool], action: Any) -> List[str]:
        """Fields still missing before submit is enabled."""
        if photo_captured is None:
            photo_captured = self.photo.captured
        missing: List[str] = []
        if not (reason or "").strip():
            missing.append("reason")
        if photo_captured is not True:
            missing.append("photo")
        if self._coerce_action(action) is None:
            missing.append("action")
        return missing

    def can_submit(self, reason: Optional[str], photo_captured: Optional[bool], action: Any) -> bool:
        return not self.submitted and not self.check(reason, photo_captured, action)

    def submit(
        self,
        reason: Optional[str],
        photo_captured: Optional[bool],
        action: Any,
        notes: Optional[str] = None,
        submitted_by: str = "",
    ) -> Union[VerificationFormData, RejectionFormData, FormValidationError]:
        """
        Submit the form.

        Returns:
            The immutable form on success, or a FormValidationError listing
            the missing fields.

        Raises:
            WorkflowStateError: if the form was already submitted
        """
        if self.submitted:
            raise WorkflowStateError(f"{self.form_name} already submitted", self.order_id)

        missing = self.check(reason, photo_captured, action)
        if missing:
            return FormValidationError(form=self.form_name, missing=missing)

        self.result = self.form_model(
            reason=reason.strip(),
            photo_captured=True,
            recommended_action=self._coerce_action(action),
            notes=notes or None,
            submitted_by=submitted_by,
        )
        logger.info(
            "[%s] order=%s action=%s by %s",
            self.form_name.upper(), self.order_id,
            self.result.recommended_action.value, submitted_by
        )
        return self.result


class VerificationSubflow(EvidenceSubflow):
    """Justification evidence for a verdict that needs verification."""
    form_name = "verification_form"
    photo_subject = "verification"
    action_enum = VerificationAction
    form_model = VerificationFormData


class RejectionSubflow(EvidenceSubflow):
    """Rejection evidence and disposition."""
    form_name = "rejection_form"
    photo_subject = "rejection"
    action_enum = RejectionAction
    form_model = RejectionFormData
