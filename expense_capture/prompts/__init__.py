"""
Prompt templates for model calls.
"""

from expense_capture.prompts.receipt_parsing import (
    RECEIPT_PARSING_SYSTEM,
    build_receipt_messages,
)

__all__ = ["RECEIPT_PARSING_SYSTEM", "build_receipt_messages"]
