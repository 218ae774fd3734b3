"""Shared fixtures for the reception workflow tests."""
import os
import tempfile
from decimal import Decimal
from typing import Dict, List, Optional

# Point the app at a throwaway SQLite file before reception.config is imported
_DB_DIR = tempfile.mkdtemp(prefix="reception-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_DB_DIR, 'reception.db')}"
os.environ["EVIDENCE_CAPTURE_DELAY_SECONDS"] = "0"

import uuid

import pytest

from reception.core.exceptions import PersistenceFailure
from reception.core.identity import StaticDirectory
from reception.models.reception import QualityStatus, GravelGrade, OutcomeStatus
from reception.schemas.reception import (
    StockReceptionOrder, QualityCheckData, HumidityTest, GravelInspection, FinalizeResult
)
from reception.services.validation_gate import ValidationGate


class FakeStore:
    """In-memory persistence collaborator with injectable failures."""

    def __init__(self):
        self.records: Dict[str, dict] = {}
        self.calls: List[dict] = []
        self.failures = 0

    async def finalize(
        self,
        order_id,
        confirmed_quantity=None,
        verification_form=None,
        rejection_form=None,
        *,
        status,
        quality_check,
        total_amount=None,
        finalized_by=None,
        audit_trail=None,
    ):
        call = {
            "order_id": order_id,
            "status": OutcomeStatus(status).value,
            "confirmed_quantity": confirmed_quantity,
            "total_amount": total_amount,
            "verification_form": verification_form,
            "rejection_form": rejection_form,
            "quality_check": quality_check,
            "finalized_by": finalized_by,
            "audit_trail": audit_trail,
        }
        self.calls.append(call)
        if self.failures:
            self.failures -= 1
            raise PersistenceFailure("database unavailable", order_id)

        existing = self.records.get(order_id)
        if existing is not None:
            if existing["status"] != call["status"]:
                raise PersistenceFailure(f"{order_id} already finalized", order_id)
            return FinalizeResult(
                order_id=order_id, record_id=existing["id"], status=existing["status"], created=False
            )

        call["id"] = uuid.uuid4()
        self.records[order_id] = call
        return FinalizeResult(order_id=order_id, record_id=call["id"], status=call["status"], created=True)

    async def get_record(self, order_id) -> Optional[dict]:
        return self.records.get(order_id)

    async def list_records(self, status=None, skip=0, limit=100):
        items = [r for r in self.records.values() if status is None or r["status"] == status]
        return items[skip:skip + limit], len(items)


def make_order(order_id: str = "BR-2024-001", quantity="10", unit_price="100") -> StockReceptionOrder:
    return StockReceptionOrder(
        id=order_id,
        supplier="Carrieres du Souss",
        material="Sable 0/4",
        quantity=Decimal(quantity),
        unit="t",
        unit_price=Decimal(unit_price),
        date="2024-03-12",
    )


def make_check(status=QualityStatus.CONFORME, reading="12", grade=GravelGrade.G2) -> QualityCheckData:
    return QualityCheckData(
        humidity=HumidityTest(photo_captured=True, reading=Decimal(reading)),
        gravel=GravelInspection(photo_captured=True, grade=grade),
        status=status,
        notes="",
        technician="Abdel Sadek",
    )


@pytest.fixture
def directory():
    return StaticDirectory()


@pytest.fixture
def technician(directory):
    return directory.get_actor("ABDEL_SADEK")


@pytest.fixture
def front_desk(directory):
    return directory.get_actor("FRONT_DESK")


@pytest.fixture
def manager(directory):
    return directory.get_actor("SUPERVISEUR")


@pytest.fixture
def order():
    return make_order()


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def gate(order, store):
    return ValidationGate(order, store)
