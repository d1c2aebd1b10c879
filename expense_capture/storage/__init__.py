"""
Storage interfaces for committed expenses.
"""

from expense_capture.storage.expense_store import (
    ExpenseRecord,
    ExpenseRecordStore,
    InMemoryExpenseStore,
    RecordNotFoundError,
)

__all__ = [
    "ExpenseRecord",
    "ExpenseRecordStore",
    "InMemoryExpenseStore",
    "RecordNotFoundError",
]
