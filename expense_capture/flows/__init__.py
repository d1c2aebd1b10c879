"""
Flows package: review of extracted drafts and the capture pipeline.
"""

from expense_capture.flows.capture_pipeline import ExpenseCapturePipeline, build_pipeline
from expense_capture.flows.review import (
    DraftSource,
    ReviewReconciliationFlow,
    ReviewSession,
    ReviewStatus,
    draft_from_receipt,
)

__all__ = [
    "DraftSource",
    "ExpenseCapturePipeline",
    "ReviewReconciliationFlow",
    "ReviewSession",
    "ReviewStatus",
    "build_pipeline",
    "draft_from_receipt",
]
