"""
Tests for ReceptionService.

Verifies:
- Workflow registry open / lookup / close
- Headless Phase 1 run reports the first missing evidence
- Reinspection archives the pending workflow and re-queues the order
- Closed workflows fall back to the committed record and are released
"""
from decimal import Decimal

import pytest

from conftest import make_order
from reception.core.exceptions import (
    PersistenceFailure, PolicyViolation, WorkflowNotFound, WorkflowStateError, WorkflowTerminalError
)
from reception.models.reception import QualityStatus, GravelGrade, VerificationAction, RejectionAction
from reception.schemas.reception import (
    FormValidationError, QualityCheckRequest, RejectionRequest, VerificationRequest
)
from reception.services.reception_service import ReceptionService
from reception.services.reception_state_machine import WorkflowStatus


def quality_request(**overrides) -> QualityCheckRequest:
    data = dict(
        technician_id="ABDEL_SADEK",
        humidity_photo_captured=True,
        humidity_reading=Decimal("12"),
        gravel_photo_captured=True,
        gravel_grade=GravelGrade.G1,
        status=QualityStatus.CONFORME,
        notes="",
    )
    data.update(overrides)
    return QualityCheckRequest(**data)


@pytest.fixture
def service(store, directory):
    return ReceptionService(store, directory)


class TestRegistry:
    """Opening and looking up workflows."""

    async def test_open_and_status(self, service, order):
        gate = await service.open(order)
        assert service.gate(order.id) is gate
        snapshot, record = await service.status(order.id)
        assert snapshot.workflow_status == WorkflowStatus.AWAITING_TECHNICAL
        assert record is None
        assert [s.order_id for s in service.open_workflows()] == [order.id]

    async def test_open_twice_refused(self, service, order):
        await service.open(order)
        with pytest.raises(WorkflowStateError):
            await service.open(order)

    async def test_unknown_order(self, service):
        with pytest.raises(WorkflowNotFound):
            service.gate("NOPE")
        with pytest.raises(WorkflowNotFound):
            await service.status("NOPE")

    async def test_closed_order_cannot_reopen(self, service, order, technician, front_desk):
        await service.open(order)
        await service.run_quality_check(order.id, technician, quality_request())
        await service.validate(order.id, front_desk, Decimal("10"))

        with pytest.raises(WorkflowNotFound):
            service.gate(order.id)
        snapshot, record = await service.status(order.id)
        assert snapshot is None
        assert record["status"] == "validated"
        with pytest.raises(WorkflowTerminalError):
            await service.open(order)
        assert service.history(order.id) == []

    async def test_committed_workflows_are_released(self, service, technician, front_desk):
        order_ids = [f"R-{n}" for n in range(50)]
        for order_id in order_ids:
            await service.open(make_order(order_id))
            await service.run_quality_check(order_id, technician, quality_request())
            await service.validate(order_id, front_desk, Decimal("1"))

        assert service.open_workflows() == []
        assert all(service.history(order_id) == [] for order_id in order_ids)
        _, record = await service.status(order_ids[-1])
        assert record["status"] == "validated"

    async def test_reinspected_order_releases_predecessors(self, service, order, technician, front_desk):
        await service.open(order)
        await service.run_quality_check(order.id, technician, quality_request(status=QualityStatus.A_VERIFIER))
        service.submit_verification(order.id, front_desk, VerificationRequest(
            reason="doubtful", photo_captured=True, action=VerificationAction.REQUEST_NEW_INSPECTION
        ))
        service.reinspect(order.id, technician)
        assert len(service.history(order.id)) == 1

        await service.run_quality_check(order.id, technician, quality_request())
        await service.validate(order.id, front_desk, Decimal("10"))
        assert service.history(order.id) == []


class TestQualityCheckRun:
    """Headless Phase 1."""

    async def test_records_verdict(self, service, order, technician):
        await service.open(order)
        result = await service.run_quality_check(
            order.id, technician,
            quality_request(humidity_reading=Decimal("18"), status=QualityStatus.A_VERIFIER)
        )
        assert result.humidity.is_high_humidity
        assert service.gate(order.id).status == WorkflowStatus.VERDICT_NEEDS_VERIFICATION

    @pytest.mark.parametrize("overrides,form,missing", [
        ({"technician_id": "FRONT_DESK"}, "step_technician_selection", ["technician"]),
        ({"humidity_photo_captured": False}, "step_humidity_test", ["humidity_photo", "humidity_reading"]),
        ({"humidity_reading": Decimal("45")}, "step_humidity_test", ["humidity_reading"]),
        ({"gravel_photo_captured": False}, "step_material_grading", ["gravel_photo", "gravel_grade"]),
        ({"gravel_grade": None}, "step_material_grading", ["gravel_grade"]),
    ])
    async def test_first_missing_step_reported(self, service, order, technician, overrides, form, missing):
        await service.open(order)
        result = await service.run_quality_check(order.id, technician, quality_request(**overrides))
        assert isinstance(result, FormValidationError)
        assert result.form == form
        assert result.missing == missing
        assert service.gate(order.id).status == WorkflowStatus.AWAITING_TECHNICAL

    async def test_front_desk_cannot_run_phase_one(self, service, order, front_desk):
        await service.open(order)
        with pytest.raises(PolicyViolation):
            await service.run_quality_check(order.id, front_desk, quality_request())

    async def test_second_run_refused(self, service, order, technician):
        await service.open(order)
        await service.run_quality_check(order.id, technician, quality_request())
        with pytest.raises(WorkflowStateError):
            await service.run_quality_check(order.id, technician, quality_request())


class TestReinspection:
    """request_new_inspection re-queue."""

    async def _pending_reinspection(self, service, order, technician, front_desk):
        await service.open(order)
        await service.run_quality_check(order.id, technician, quality_request(status=QualityStatus.A_VERIFIER))
        service.submit_verification(order.id, front_desk, VerificationRequest(
            reason="doubtful", photo_captured=True, action=VerificationAction.REQUEST_NEW_INSPECTION
        ))
        return service.gate(order.id)

    async def test_technician_requeues(self, service, order, technician, front_desk):
        old = await self._pending_reinspection(service, order, technician, front_desk)
        fresh = service.reinspect(order.id, technician)

        assert fresh is not old
        assert fresh.status == WorkflowStatus.AWAITING_TECHNICAL
        assert service.gate(order.id) is fresh
        assert service.history(order.id) == [old]
        assert old.state.quality_check.status == QualityStatus.A_VERIFIER
        assert old.status == WorkflowStatus.VERIFIED_REINSPECT

        await service.run_quality_check(order.id, technician, quality_request())
        outcome = await service.validate(order.id, front_desk, Decimal("10"))
        assert outcome.total_amount == Decimal("1000")

    async def test_front_desk_cannot_unblock_itself(self, service, order, technician, front_desk):
        await self._pending_reinspection(service, order, technician, front_desk)
        with pytest.raises(PolicyViolation):
            service.reinspect(order.id, front_desk)

    async def test_only_pending_reinspection(self, service, order, technician):
        await service.open(order)
        with pytest.raises(WorkflowStateError):
            service.reinspect(order.id, technician)


class TestFinalizeRetry:
    """Failed commits stay open until retried."""

    async def test_failed_rejection_retried(self, service, store, order, technician, front_desk):
        await service.open(order)
        await service.run_quality_check(order.id, technician, quality_request(status=QualityStatus.NON_CONFORME))
        store.failures = 1

        with pytest.raises(PersistenceFailure):
            await service.submit_rejection(order.id, front_desk, RejectionRequest(
                reason="wet", photo_captured=True, action=RejectionAction.RETURN_TO_SUPPLIER
            ))
        gate = service.gate(order.id)
        assert gate.status == WorkflowStatus.REJECTED
        assert not gate.state.persisted

        result = await service.retry_finalize(order.id, front_desk)
        assert result.status == "rejected"
        with pytest.raises(WorkflowNotFound):
            service.gate(order.id)
        assert store.records[order.id]["rejection_form"].reason == "wet"

    async def test_retry_requires_terminal_capability(self, service, store, order, technician, front_desk, manager):
        await service.open(order)
        await service.run_quality_check(order.id, technician, quality_request())
        store.failures = 1
        with pytest.raises(PersistenceFailure):
            await service.validate(order.id, front_desk, Decimal("10"))

        with pytest.raises(PolicyViolation):
            await service.retry_finalize(order.id, technician)
        assert not service.gate(order.id).state.persisted

        result = await service.retry_finalize(order.id, manager)
        assert result.status == "validated"


class TestListing:
    async def test_list_records(self, service, technician, front_desk):
        for order_id in ("A-1", "A-2"):
            order = make_order(order_id)
            await service.open(order)
            await service.run_quality_check(order_id, technician, quality_request())
            await service.validate(order_id, front_desk, Decimal("1"))
        records, total = await service.list_records()
        assert total == 2
