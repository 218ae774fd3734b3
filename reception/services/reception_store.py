"""
Reception Store - persistence collaborator of the reception workflow.

finalize() is invoked once per terminal transition and is idempotent keyed
by order id: repeating it with the same outcome returns the stored record,
so a failed commit can be retried without redoing the workflow.
"""
import logging
from decimal import Decimal
from typing import Optional, List, Dict, Any, Tuple, Protocol, Union

from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reception.core.exceptions import PersistenceFailure
from reception.database import async_session_factory
from reception.models.reception import ReceptionRecord, OutcomeStatus
from reception.schemas.reception import (
    QualityCheckData, VerificationFormData, RejectionFormData, FinalizeResult
)


logger = logging.getLogger(__name__)


class ReceptionStore(Protocol):
    """Persistence collaborator contract."""

    async def finalize(
        self,
        order_id: str,
        confirmed_quantity: Optional[Decimal] = None,
        verification_form: Optional[VerificationFormData] = None,
        rejection_form: Optional[RejectionFormData] = None,
        *,
        status: OutcomeStatus,
        quality_check: QualityCheckData,
        total_amount: Optional[Decimal] = None,
        finalized_by: Optional[str] = None,
        audit_trail: Optional[List[Dict[str, Any]]] = None,
    ) -> FinalizeResult:
        ...

    async def get_record(self, order_id: str) -> Optional[ReceptionRecord]:
        ...

    async def list_records(
        self,
        status: Optional[OutcomeStatus] = None,
        skip: int = 0,
        limit: int = 100
    ) -> Tuple[List[ReceptionRecord], int]:
        ...


class SqlReceptionStore:
    """SQLAlchemy-backed reception store."""

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        self.session_factory = session_factory or async_session_factory

    async def _get(self, db: AsyncSession, order_id: str) -> Optional[ReceptionRecord]:
        result = await db.execute(
            select(ReceptionRecord).where(ReceptionRecord.order_id == order_id)
        )
        return result.scalar_one_or_none()

    async def finalize(
        self,
        order_id: str,
        confirmed_quantity: Optional[Decimal] = None,
        verification_form: Optional[VerificationFormData] = None,
        rejection_form: Optional[RejectionFormData] = None,
        *,
        status: Union[OutcomeStatus, str],
        quality_check: QualityCheckData,
        total_amount: Optional[Decimal] = None,
        finalized_by: Optional[str] = None,
        audit_trail: Optional[List[Dict[str, Any]]] = None,
    ) -> FinalizeResult:
        """Commit the terminal outcome of a reception."""
        status = OutcomeStatus(status)
        try:
            async with self.session_factory() as db:
                existing = await self._get(db, order_id)
                if existing is not None:
                    if existing.status != status.value:
                        raise PersistenceFailure(
                            f"Order {order_id} already finalized as {existing.status}",
                            order_id
                        )
                    logger.info("Finalize for %s already committed, returning stored record", order_id)
                    return FinalizeResult(
                        order_id=order_id, record_id=existing.id,
                        status=existing.status, created=False
                    )

                record = ReceptionRecord(
                    order_id=order_id,
                    status=status.value,
                    confirmed_quantity=confirmed_quantity,
                    total_amount=total_amount,
                    quality_status=quality_check.status.value,
                    humidity_reading=quality_check.humidity.reading,
                    is_high_humidity=quality_check.humidity.is_high_humidity,
                    gravel_grade=quality_check.gravel.grade.value,
                    technician=quality_check.technician,
                    quality_notes=quality_check.notes or None,
                    verification_form=(
                        verification_form.model_dump(mode="json") if verification_form else None
                    ),
                    rejection_form=(
                        rejection_form.model_dump(mode="json") if rejection_form else None
                    ),
                    audit_trail=audit_trail,
                    finalized_by=finalized_by,
                )
                db.add(record)
                await db.commit()
                await db.refresh(record)
                logger.info("[AUDIT_TRAIL] Reception %s committed as %s", order_id, status.value)
                return FinalizeResult(
                    order_id=order_id, record_id=record.id,
                    status=record.status, created=True
                )
        except SQLAlchemyError as e:
            logger.error("Finalize failed for %s: %s", order_id, e)
            raise PersistenceFailure(f"Could not commit reception {order_id}: {e}", order_id) from e

    async def get_record(self, order_id: str) -> Optional[ReceptionRecord]:
        """Get the committed outcome of an order."""
        async with self.session_factory() as db:
            return await self._get(db, order_id)

    async def list_records(
        self,
        status: Optional[OutcomeStatus] = None,
        skip: int = 0,
        limit: int = 100
    ) -> Tuple[List[ReceptionRecord], int]:
        """List committed receptions, newest first."""
        async with self.session_factory() as db:
            query = select(ReceptionRecord)
            if status:
                query = query.where(ReceptionRecord.status == OutcomeStatus(status).value)

            count_query = select(func.count()).select_from(query.subquery())
            total = (await db.execute(count_query)).scalar() or 0

            query = query.order_by(ReceptionRecord.finalized_at.desc()).offset(skip).limit(limit)
            result = await db.execute(query)
            return list(result.scalars().all()), total
