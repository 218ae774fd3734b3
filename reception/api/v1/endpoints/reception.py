"""
Reception API Endpoints - two-phase delivery quality control.

API endpoints for the reception workflow including:
- Technician pool
- Opening a reception for a stock order
- Phase 1 technical quality check
- Phase 2 verification / rejection forms and commercial validation
- Finalize retry and reinspection re-queue
"""
from typing import Optional, List

from fastapi import APIRouter, HTTPException, Query, status

from reception.api.deps import CurrentActor, Service
from reception.models.reception import OutcomeStatus
from reception.schemas.reception import (
    StockReceptionOrder, QualityCheckRequest, VerificationRequest, RejectionRequest,
    ValidationRequest, QualityCheckData, VerificationFormData, RejectionFormData,
    FormValidationError, ValidatedOutcome, WorkflowSnapshot, TechnicianResponse,
    ReceptionRecordResponse, ReceptionRecordListResponse, ReceptionStatusResponse,
    FinalizeRetryResponse
)

router = APIRouter()


def _unwrap(result):
    """Turn a local FormValidationError into a 422 response."""
    if isinstance(result, FormValidationError):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"form": result.form, "missing": result.missing, "message": result.message},
        )
    return result


# ============================================================================
# TECHNICIANS
# ============================================================================

@router.get(
    "/technicians",
    response_model=List[TechnicianResponse],
    summary="List Technicians"
)
async def list_technicians(service: Service, actor: CurrentActor):
    """Technical-responsibility pool, primary inspector first."""
    return [
        TechnicianResponse(id=t.id, name=t.name, is_primary=t.is_primary)
        for t in service.identity.technicians()
    ]


# ============================================================================
# RECEPTIONS
# ============================================================================

@router.post(
    "/receptions",
    response_model=WorkflowSnapshot,
    status_code=status.HTTP_201_CREATED,
    summary="Open Reception"
)
async def open_reception(order: StockReceptionOrder, service: Service, actor: CurrentActor):
    """Open a reception workflow for a stock order."""
    gate = await service.open(order)
    return gate.snapshot()


@router.get(
    "/receptions",
    response_model=List[WorkflowSnapshot],
    summary="List Open Receptions"
)
async def list_open_receptions(service: Service, actor: CurrentActor):
    """Receptions still in progress."""
    return service.open_workflows()


@router.get(
    "/receptions/records",
    response_model=ReceptionRecordListResponse,
    summary="List Committed Receptions"
)
async def list_records(
    service: Service,
    actor: CurrentActor,
    outcome: Optional[OutcomeStatus] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
):
    """List validated and rejected receptions."""
    records, total = await service.list_records(status=outcome, skip=skip, limit=limit)
    return ReceptionRecordListResponse(
        items=[ReceptionRecordResponse.model_validate(r) for r in records],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.get(
    "/receptions/{order_id}",
    response_model=ReceptionStatusResponse,
    summary="Get Reception"
)
async def get_reception(order_id: str, service: Service, actor: CurrentActor):
    """Snapshot of an open reception, or its committed record."""
    snapshot, record = await service.status(order_id)
    return ReceptionStatusResponse(
        order_id=order_id,
        open=snapshot is not None,
        snapshot=snapshot,
        record=ReceptionRecordResponse.model_validate(record) if record is not None else None,
    )


# ============================================================================
# PHASE 1
# ============================================================================

@router.post(
    "/receptions/{order_id}/quality-check",
    response_model=QualityCheckData,
    summary="Submit Quality Check"
)
async def submit_quality_check(
    order_id: str,
    data: QualityCheckRequest,
    service: Service,
    actor: CurrentActor,
):
    """Run the technical quality check and record its verdict."""
    return _unwrap(await service.run_quality_check(order_id, actor, data))


# ============================================================================
# PHASE 2
# ============================================================================

@router.post(
    "/receptions/{order_id}/verification",
    response_model=VerificationFormData,
    summary="Submit Verification Form"
)
async def submit_verification(
    order_id: str,
    data: VerificationRequest,
    service: Service,
    actor: CurrentActor,
):
    """Justify a verdict that needs verification."""
    return _unwrap(service.submit_verification(order_id, actor, data))


@router.post(
    "/receptions/{order_id}/rejection",
    response_model=RejectionFormData,
    summary="Submit Rejection Form"
)
async def submit_rejection(
    order_id: str,
    data: RejectionRequest,
    service: Service,
    actor: CurrentActor,
):
    """Record the rejection and close the reception."""
    return _unwrap(await service.submit_rejection(order_id, actor, data))


@router.post(
    "/receptions/{order_id}/validate",
    response_model=ValidatedOutcome,
    summary="Validate Reception"
)
async def validate_reception(
    order_id: str,
    data: ValidationRequest,
    service: Service,
    actor: CurrentActor,
):
    """Confirm the received quantity and close the reception."""
    return _unwrap(await service.validate(order_id, actor, data.confirmed_quantity))


@router.post(
    "/receptions/{order_id}/finalize/retry",
    response_model=FinalizeRetryResponse,
    summary="Retry Finalize"
)
async def retry_finalize(order_id: str, service: Service, actor: CurrentActor):
    """Re-commit an outcome whose first commit failed."""
    gate = service.gate(order_id)
    result = await service.retry_finalize(order_id, actor)
    return FinalizeRetryResponse(result=result, snapshot=gate.snapshot())


@router.post(
    "/receptions/{order_id}/reinspect",
    response_model=WorkflowSnapshot,
    summary="Request Reinspection"
)
async def reinspect(order_id: str, service: Service, actor: CurrentActor):
    """Send the order back to the technical queue."""
    gate = service.reinspect(order_id, actor)
    return gate.snapshot()
