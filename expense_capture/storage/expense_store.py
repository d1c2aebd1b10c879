"""
Expense record store interface.

Persistence is an external collaborator. The review flow only needs the
owner-scoped CRUD operations below; ``InMemoryExpenseStore`` implements them
for development and tests.
"""

import datetime as dt
import uuid
from decimal import Decimal
from typing import Any, Protocol

from pydantic import BaseModel, Field

from expense_capture.logging_config import get_logger

logger = get_logger(__name__)

UPDATABLE_FIELDS = frozenset({"amount", "currency", "description", "category", "date"})


class ExpenseRecord(BaseModel):
    """Committed expense as stored for a user."""

    id: str
    user_id: str
    amount: Decimal = Field(..., ge=0)
    category: str
    description: str
    date: dt.date
    currency: str
    created_at: dt.datetime
    updated_at: dt.datetime


class RecordNotFoundError(LookupError):
    """Raised when a record does not exist for the given owner."""


class ExpenseRecordStore(Protocol):
    """Owner-scoped CRUD; no cross-owner visibility."""

    async def create(self, owner_id: str, fields: dict[str, Any]) -> ExpenseRecord: ...

    async def update(self, record_id: str, fields: dict[str, Any], *, owner_id: str) -> ExpenseRecord: ...

    async def delete(self, record_id: str, *, owner_id: str) -> None: ...

    async def list_by_owner(self, owner_id: str) -> list[ExpenseRecord]: ...


class InMemoryExpenseStore:
    """Process-local record store."""

    def __init__(self) -> None:
        self._records: dict[str, ExpenseRecord] = {}

    async def create(self, owner_id: str, fields: dict[str, Any]) -> ExpenseRecord:
        now = dt.datetime.now(dt.timezone.utc)
        record = ExpenseRecord(
            id=str(uuid.uuid4()),
            user_id=owner_id,
            created_at=now,
            updated_at=now,
            **{key: value for key, value in fields.items() if key in UPDATABLE_FIELDS},
        )
        self._records[record.id] = record
        logger.info(
            "expense_created",
            expense_id=record.id,
            user_id=owner_id,
            amount=float(record.amount),
            currency=record.currency,
            category=record.category,
        )
        return record

    def _get_owned(self, record_id: str, owner_id: str) -> ExpenseRecord:
        record = self._records.get(record_id)
        if record is None or record.user_id != owner_id:
            raise RecordNotFoundError(f"Expense {record_id} not found")
        return record

    async def update(self, record_id: str, fields: dict[str, Any], *, owner_id: str) -> ExpenseRecord:
        record = self._get_owned(record_id, owner_id)
        changes = {key: value for key, value in fields.items() if key in UPDATABLE_FIELDS}
        updated = ExpenseRecord.model_validate(
            {
                **record.model_dump(),
                **changes,
                "updated_at": dt.datetime.now(dt.timezone.utc),
            }
        )
        self._records[record_id] = updated
        logger.info("expense_updated", expense_id=record_id, fields=sorted(changes))
        return updated

    async def delete(self, record_id: str, *, owner_id: str) -> None:
        self._get_owned(record_id, owner_id)
        del self._records[record_id]
        logger.info("expense_deleted", expense_id=record_id)

    async def list_by_owner(self, owner_id: str) -> list[ExpenseRecord]:
        # Insertion order is creation order; updates keep their slot
        return [r for r in reversed(self._records.values()) if r.user_id == owner_id]
