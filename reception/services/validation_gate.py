"""
Validation Gate - Phase 2: Front-Desk Commercial Validation.

Drives one reception workflow through the state machine:
- records the Phase 1 verdict
- routes through the verification and/or rejection sub-flows
- permits quantity confirmation only when the gate allows it
- commits the terminal outcome through the persistence collaborator

Every action is checked against the injected RoleAccessPolicy first;
violations raise PolicyViolation. Terminal workflows refuse all mutation.
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import Optional, Union, Any

from reception.core.exceptions import (
    PersistenceFailure, ValidationBlockedError, WorkflowStateError, WorkflowTerminalError
)
from reception.core.permissions import Capability, RoleAccessPolicy
from reception.models.reception import OutcomeStatus, QUANTITY_PRECISION
from reception.schemas.reception import (
    Actor, StockReceptionOrder, QualityCheckData, VerificationFormData, RejectionFormData,
    FormValidationError, WorkflowState, WorkflowSnapshot, ValidatedOutcome, RejectedOutcome,
    ReceptionOutcome, FinalizeResult, fits_numeric
)
from reception.services import reception_state_machine as sm
from reception.services.reception_state_machine import WorkflowStatus
from reception.services.evidence_capture import EvidenceCapturer
from reception.services.evidence_forms import VerificationSubflow, RejectionSubflow
from reception.services.reception_store import ReceptionStore


logger = logging.getLogger(__name__)


class ValidationGate:
    """Phase 2 engine for one stock reception order."""

    def __init__(
        self,
        order: StockReceptionOrder,
        store: ReceptionStore,
        policy: Optional[RoleAccessPolicy] = None,
        capturer: Optional[EvidenceCapturer] = None,
    ):
        self.state = WorkflowState(order=order, status=WorkflowStatus.AWAITING_TECHNICAL)
        self.store = store
        self.policy = policy or RoleAccessPolicy()
        self.verification = VerificationSubflow(order.id, capturer)
        self.rejection = RejectionSubflow(order.id, capturer)

    # ========================================================================
    # DERIVED STATE
    # ========================================================================

    @property
    def order(self) -> StockReceptionOrder:
        return self.state.order

    @property
    def status(self) -> str:
        return self.state.status

    @property
    def is_terminal(self) -> bool:
        return sm.is_terminal(self.state.status)

    @property
    def can_validate(self) -> bool:
        return not self.is_terminal and sm.can_validate(*sm.gate_inputs(self.state))

    @property
    def is_blocked(self) -> bool:
        return not self.is_terminal and sm.is_blocked(*sm.gate_inputs(self.state))

    @property
    def blocked_reason(self) -> Optional[str]:
        if self.is_terminal:
            return None
        return sm.blocked_reason(*sm.gate_inputs(self.state))

    @property
    def outstanding_form(self) -> Optional[str]:
        if self.is_terminal:
            return None
        return sm.outstanding_requirement(*sm.gate_inputs(self.state))

    @property
    def verification_required(self) -> bool:
        return self.state.status == WorkflowStatus.VERDICT_NEEDS_VERIFICATION

    @property
    def rejection_required(self) -> bool:
        return self.state.status in (
            WorkflowStatus.VERDICT_NON_CONFORME, WorkflowStatus.VERIFIED_REJECTED
        )

    def preview_total(self, confirmed_quantity: Union[Decimal, str, float]) -> Decimal:
        """totalAmount = confirmedQuantity x unitPrice."""
        return Decimal(str(confirmed_quantity)) * self.order.unit_price

    def snapshot(self) -> WorkflowSnapshot:
        """Current (phase, status, can_validate, is_blocked) for rendering."""
        check = self.state.quality_check
        return WorkflowSnapshot(
            order_id=self.order.id,
            phase=self.state.phase,
            workflow_status=self.state.status,
            can_validate=self.can_validate,
            is_blocked=self.is_blocked,
            blocked_reason=self.blocked_reason,
            outstanding_form=self.outstanding_form,
            quality_status=check.status if check else None,
            is_high_humidity=check.humidity.is_high_humidity if check else None,
            confirmed_quantity=self.state.confirmed_quantity,
            total_amount=self.state.total_amount,
            persisted=self.state.persisted,
            is_terminal=self.is_terminal,
        )

    def outcome(self) -> Optional[ReceptionOutcome]:
        """Terminal outcome, or None while the workflow is open."""
        if self.state.status == WorkflowStatus.VALIDATED:
            return ValidatedOutcome(
                order_id=self.order.id,
                confirmed_quantity=self.state.confirmed_quantity,
                total_amount=self.state.total_amount,
            )
        if self.state.status == WorkflowStatus.REJECTED:
            return RejectedOutcome(order_id=self.order.id, rejection_form=self.state.rejection_form)
        return None

    # ========================================================================
    # PHASE 1 HAND-OFF
    # ========================================================================

    def record_quality_check(self, actor: Actor, check: QualityCheckData) -> str:
        """Enter the verdict state matching the Phase 1 result."""
        self._ensure_open()
        override = self._authorize(actor, Capability.PERFORM_QUALITY_CHECK)
        if self.state.quality_check is not None:
            raise WorkflowStateError("Quality check already recorded for this workflow", self.order.id)

        sm.transition_reception(
            self.state, sm.VERDICT_STATUS[check.status],
            actor=actor.name, role=actor.role, override=override
        )
        self.state.quality_check = check
        logger.info("Reception %s verdict %s -> %s", self.order.id, check.status.value, self.state.status)
        return self.state.status

    # ========================================================================
    # SUB-FLOWS
    # ========================================================================

    def submit_verification(
        self,
        actor: Actor,
        reason: Optional[str],
        photo_captured: Optional[bool],
        action: Any,
        notes: Optional[str] = None,
    ) -> Union[VerificationFormData, FormValidationError]:
        """Verification sub-flow; routes by the recommended action."""
        self._ensure_open()
        override = self._authorize(actor, Capability.FILL_VERIFICATION_FORM)
        if not self.verification_required:
            raise WorkflowStateError(
                f"Verification form not expected in status {self.state.status}", self.order.id
            )

        result = self.verification.submit(reason, photo_captured, action, notes, submitted_by=actor.name)
        if isinstance(result, FormValidationError):
            return result

        sm.transition_reception(
            self.state, sm.VERIFICATION_STATUS[result.recommended_action],
            actor=actor.name, role=actor.role, override=override
        )
        self.state.verification_form = result
        if self.state.status == WorkflowStatus.VERIFIED_REINSPECT:
            logger.info("Reception %s returned to the technical queue for a new inspection", self.order.id)
        return result

    async def submit_rejection(
        self,
        actor: Actor,
        reason: Optional[str],
        photo_captured: Optional[bool],
        action: Any,
        notes: Optional[str] = None,
    ) -> Union[RejectionFormData, FormValidationError]:
        """Rejection sub-flow; closes the workflow as REJECTED."""
        self._ensure_open()
        override = self._authorize(actor, Capability.FILL_REJECTION_FORM)
        if not self.rejection_required:
            raise WorkflowStateError(
                f"Rejection form not expected in status {self.state.status}", self.order.id
            )

        result = self.rejection.submit(reason, photo_captured, action, notes, submitted_by=actor.name)
        if isinstance(result, FormValidationError):
            return result

        sm.transition_reception(
            self.state, WorkflowStatus.REJECTION_RECORDED,
            actor=actor.name, role=actor.role, override=override
        )
        self.state.rejection_form = result
        sm.transition_reception(self.state, WorkflowStatus.REJECTED, actor=actor.name, role=actor.role)
        self.state.finalized_by = actor.name

        await self._finalize()
        return result

    # ========================================================================
    # COMMERCIAL VALIDATION
    # ========================================================================

    async def validate(
        self,
        actor: Actor,
        confirmed_quantity: Union[Decimal, str, float, None],
    ) -> Union[ValidatedOutcome, FormValidationError]:
        """Confirm the received quantity and close the workflow as VALIDATED."""
        self._ensure_open()
        override = self._authorize(actor, Capability.VALIDATE)
        if self.state.quality_check is None:
            raise ValidationBlockedError("Technical quality check required before validation", self.order.id)
        if not self.can_validate:
            raise ValidationBlockedError(
                self.blocked_reason or f"Validation not permitted in status {self.state.status}",
                self.order.id
            )

        quantity = self._parse_quantity(confirmed_quantity)
        if quantity is None:
            return FormValidationError(form="validation", missing=["confirmed_quantity"])
        if quantity > self.order.quantity:
            logger.warning(
                "Reception %s confirmed %s %s above ordered %s",
                self.order.id, quantity, self.order.unit, self.order.quantity
            )

        sm.transition_reception(
            self.state, WorkflowStatus.VALIDATED,
            actor=actor.name, role=actor.role, override=override
        )
        self.state.confirmed_quantity = quantity
        self.state.total_amount = self.preview_total(quantity)
        self.state.finalized_by = actor.name

        await self._finalize()
        return self.outcome()

    # ========================================================================
    # PERSISTENCE
    # ========================================================================

    async def retry_finalize(self) -> FinalizeResult:
        """Re-commit a terminal outcome whose first finalize failed."""
        if not self.is_terminal:
            raise WorkflowStateError("Only terminal workflows can be finalized", self.order.id)
        return await self._finalize()

    async def _finalize(self) -> FinalizeResult:
        state = self.state
        status = (
            OutcomeStatus.VALIDATED if state.status == WorkflowStatus.VALIDATED
            else OutcomeStatus.REJECTED
        )
        try:
            result = await self.store.finalize(
                self.order.id,
                state.confirmed_quantity,
                state.verification_form,
                state.rejection_form,
                status=status,
                quality_check=state.quality_check,
                total_amount=state.total_amount,
                finalized_by=state.finalized_by,
                audit_trail=[h.model_dump(mode="json") for h in state.history],
            )
        except PersistenceFailure:
            state.persisted = False
            logger.error("Reception %s is %s in memory but not persisted", self.order.id, state.status)
            raise
        except Exception as e:
            state.persisted = False
            logger.error("Reception %s finalize failed: %s", self.order.id, e)
            raise PersistenceFailure(f"Finalize failed for {self.order.id}: {e}", self.order.id) from e

        state.persisted = True
        return result

    # ========================================================================
    # GUARDS
    # ========================================================================

    def _ensure_open(self) -> None:
        if self.is_terminal:
            raise WorkflowTerminalError(
                f"Reception {self.order.id} is {self.state.status}; no further changes allowed",
                self.order.id
            )

    def _authorize(self, actor: Actor, capability: Capability) -> bool:
        override = self.policy.require(actor.role, capability, actor.name)
        if override:
            logger.warning(
                "[OVERRIDE] %s (%s) performed %s on reception %s",
                actor.name, actor.role.value, capability.value, self.order.id
            )
        return override

    @staticmethod
    def _parse_quantity(value: Union[Decimal, str, float, None]) -> Optional[Decimal]:
        if value is None:
            return None
        try:
            quantity = Decimal(str(value))
        except InvalidOperation:
            return None
        if not quantity.is_finite() or quantity <= 0:
            return None
        if not fits_numeric(quantity, QUANTITY_PRECISION):
            return None
        return quantity
