"""
Reception Service - workflow registry for the delivery reception process.

Business logic behind the reception API:
- Opening a workflow per stock reception order
- Running Phase 1 headlessly from a technician's submission
- Forwarding front-desk actions to the order's ValidationGate
- Re-queueing an order whose verification requested a new inspection
- Retrying a terminal outcome whose finalize failed

Open workflows live in memory. Once an outcome is committed the workflow
and its reinspection predecessors are released and the persisted record
becomes the source of truth.
"""
import logging
from decimal import Decimal
from typing import Optional, List, Dict, Tuple, Union

from reception.core.exceptions import (
    WorkflowNotFound, WorkflowStateError, WorkflowTerminalError, UnknownActor
)
from reception.core.identity import IdentityProvider
from reception.core.permissions import Capability, RoleAccessPolicy
from reception.models.reception import ReceptionRecord, OutcomeStatus
from reception.schemas.reception import (
    Actor, StockReceptionOrder, QualityCheckData, QualityCheckRequest,
    VerificationRequest, RejectionRequest, VerificationFormData, RejectionFormData,
    FormValidationError, WorkflowSnapshot, ValidatedOutcome, FinalizeResult
)
from reception.services.evidence_capture import EvidenceCapturer, ReportedCapturer
from reception.services.quality_assessment import QualityAssessment
from reception.services.reception_state_machine import WorkflowStatus
from reception.services.reception_store import ReceptionStore
from reception.services.validation_gate import ValidationGate


logger = logging.getLogger(__name__)


class ReceptionService:
    """Service for reception workflow operations."""

    def __init__(
        self,
        store: ReceptionStore,
        identity: IdentityProvider,
        policy: Optional[RoleAccessPolicy] = None,
        capturer: Optional[EvidenceCapturer] = None,
    ):
        self.store = store
        self.identity = identity
        self.policy = policy or RoleAccessPolicy()
        self.capturer = capturer
        self._open: Dict[str, ValidationGate] = {}
        self._archive: Dict[str, List[ValidationGate]] = {}

    # ========================================================================
    # REGISTRY
    # ========================================================================

    def _new_gate(self, order: StockReceptionOrder) -> ValidationGate:
        return ValidationGate(order, self.store, self.policy, self.capturer)

    async def open(self, order: StockReceptionOrder) -> ValidationGate:
        """Open a workflow for an order awaiting reception."""
        if order.id in self._open:
            raise WorkflowStateError(f"A workflow is already open for {order.id}", order.id)
        if await self.store.get_record(order.id) is not None:
            raise WorkflowTerminalError(f"Order {order.id} has already been received", order.id)

        gate = self._new_gate(order)
        self._open[order.id] = gate
        logger.info(
            "Reception opened for %s: %s %s %s from %s",
            order.id, order.quantity, order.unit, order.material, order.supplier
        )
        return gate

    def gate(self, order_id: str) -> ValidationGate:
        """Get the open workflow of an order."""
        gate = self._open.get(order_id)
        if gate is None:
            raise WorkflowNotFound(f"No open reception workflow for {order_id}", order_id)
        return gate

    def open_workflows(self) -> List[WorkflowSnapshot]:
        return [g.snapshot() for g in self._open.values()]

    def history(self, order_id: str) -> List[ValidationGate]:
        """Workflows superseded by a reinspection while the order is open, oldest first."""
        return list(self._archive.get(order_id, []))

    async def status(self, order_id: str) -> Tuple[Optional[WorkflowSnapshot], Optional[ReceptionRecord]]:
        """Snapshot of the open workflow, or the committed record once closed."""
        gate = self._open.get(order_id)
        if gate is not None:
            return gate.snapshot(), None
        record = await self.store.get_record(order_id)
        if record is None:
            raise WorkflowNotFound(f"No reception found for {order_id}", order_id)
        return None, record

    def _archive_gate(self, gate: ValidationGate) -> None:
        order_id = gate.order.id
        if self._open.get(order_id) is gate:
            del self._open[order_id]
        self._archive.setdefault(order_id, []).append(gate)

    def _close_if_persisted(self, gate: ValidationGate) -> None:
        if gate.is_terminal and gate.state.persisted:
            order_id = gate.order.id
            if self._open.get(order_id) is gate:
                del self._open[order_id]
            self._archive.pop(order_id, None)
            logger.info("Reception %s closed as %s", gate.order.id, gate.status)

    # ========================================================================
    # PHASE 1
    # ========================================================================

    async def run_quality_check(
        self,
        order_id: str,
        actor: Actor,
        data: QualityCheckRequest,
    ) -> Union[QualityCheckData, FormValidationError]:
        """
        Run the four Phase 1 steps from a single submission.

        Steps are taken in order and the first one missing evidence is
        reported back; nothing is recorded on the workflow in that case.
        """
        gate = self.gate(order_id)
        self.policy.require(actor.role, Capability.PERFORM_QUALITY_CHECK, actor.name)
        if gate.status != WorkflowStatus.AWAITING_TECHNICAL:
            raise WorkflowStateError(
                f"Reception {order_id} is not awaiting a technical inspection ({gate.status})", order_id
            )

        capturer = ReportedCapturer(
            humidity=data.humidity_photo_captured,
            gravel=data.gravel_photo_captured,
        )
        assessment = QualityAssessment(gate.order, self.identity.technicians(), capturer)

        try:
            assessment.select_technician(data.technician_id)
        except UnknownActor:
            return FormValidationError(form="step_technician_selection", missing=["technician"])
        missing = assessment.advance()
        if missing:
            return missing

        await assessment.capture_humidity_photo()
        if assessment.can_enter_humidity_reading:
            assessment.set_humidity_reading(data.humidity_reading)
        missing = assessment.advance()
        if missing:
            return missing

        await assessment.capture_gravel_photo()
        if assessment.can_select_grade and data.gravel_grade is not None:
            assessment.select_grade(data.gravel_grade)
        missing = assessment.advance()
        if missing:
            return missing

        assessment.set_verdict(data.status, data.notes)
        result = assessment.submit()
        if isinstance(result, FormValidationError):
            return result

        gate.record_quality_check(actor, result)
        return result

    # ========================================================================
    # PHASE 2
    # ========================================================================

    def submit_verification(
        self,
        order_id: str,
        actor: Actor,
        data: VerificationRequest,
    ) -> Union[VerificationFormData, FormValidationError]:
        gate = self.gate(order_id)
        return gate.submit_verification(actor, data.reason, data.photo_captured, data.action, data.notes)

    async def submit_rejection(
        self,
        order_id: str,
        actor: Actor,
        data: RejectionRequest,
    ) -> Union[RejectionFormData, FormValidationError]:
        gate = self.gate(order_id)
        result = await gate.submit_rejection(
            actor, data.reason, data.photo_captured, data.action, data.notes
        )
        self._close_if_persisted(gate)
        return result

    async def validate(
        self,
        order_id: str,
        actor: Actor,
        confirmed_quantity: Union[Decimal, str, float, None],
    ) -> Union[ValidatedOutcome, FormValidationError]:
        gate = self.gate(order_id)
        result = await gate.validate(actor, confirmed_quantity)
        self._close_if_persisted(gate)
        return result

    async def retry_finalize(self, order_id: str, actor: Actor) -> FinalizeResult:
        """Re-commit the outcome of a workflow stuck with persisted=False."""
        gate = self.gate(order_id)
        if gate.is_terminal:
            capability = (
                Capability.VALIDATE if gate.status == WorkflowStatus.VALIDATED
                else Capability.FILL_REJECTION_FORM
            )
            self.policy.require(actor.role, capability, actor.name)
        logger.info("Finalize retry for %s requested by %s", order_id, actor.name)
        result = await gate.retry_finalize()
        self._close_if_persisted(gate)
        return result

    # ========================================================================
    # REINSPECTION
    # ========================================================================

    def reinspect(self, order_id: str, actor: Actor) -> ValidationGate:
        """
        Send an order back to the technical queue.

        The pending workflow is archived with its verdict and verification
        form intact; a fresh workflow starts in AWAITING_TECHNICAL.
        """
        gate = self.gate(order_id)
        override = self.policy.require(actor.role, Capability.UNBLOCK_FRONT_DESK, actor.name)
        if gate.status != WorkflowStatus.VERIFIED_REINSPECT:
            raise WorkflowStateError(
                f"Reception {order_id} has no pending new-inspection request ({gate.status})", order_id
            )

        self._archive_gate(gate)
        fresh = self._new_gate(gate.order)
        self._open[order_id] = fresh
        logger.info(
            "Reception %s re-queued for inspection by %s%s",
            order_id, actor.name, " (override)" if override else ""
        )
        return fresh

    async def list_records(
        self,
        status: Optional[OutcomeStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[List[ReceptionRecord], int]:
        """Committed receptions."""
        return await self.store.list_records(status=status, skip=skip, limit=limit)
