"""
Pydantic schemas and media handles shared across the pipeline.
"""

from expense_capture.schemas.extraction import (
    ExpenseCategory,
    ExtractedExpenseDraft,
    ReceiptFields,
    ReceiptParseRequest,
    ReceiptParseResponse,
    ReceiptParseResult,
    TranscriptionResult,
)
from expense_capture.schemas.media import MediaHandle, MediaKind

__all__ = [
    "ExpenseCategory",
    "ExtractedExpenseDraft",
    "MediaHandle",
    "MediaKind",
    "ReceiptFields",
    "ReceiptParseRequest",
    "ReceiptParseResponse",
    "ReceiptParseResult",
    "TranscriptionResult",
]
