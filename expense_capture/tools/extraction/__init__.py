"""
Extraction tools for voice and receipt expense capture.
Provides the transcription client, the rule-based text extractor and the
receipt parser/client pair.
"""

from expense_capture.tools.extraction.audio_extractor import (
    TranscriptionClient,
    extract_expense_from_audio,
)
from expense_capture.tools.extraction.receipt_client import ReceiptParsingClient
from expense_capture.tools.extraction.receipt_parser import (
    ReceiptParser,
    validate_image_payload,
)
from expense_capture.tools.extraction.text_extractor import (
    ExpenseExtractionEngine,
    extract_expense_from_text,
    infer_category,
)

__all__ = [
    # Text extraction
    "ExpenseExtractionEngine",
    "extract_expense_from_text",
    "infer_category",
    # Audio extraction
    "TranscriptionClient",
    "extract_expense_from_audio",
    # Receipt extraction
    "ReceiptParser",
    "ReceiptParsingClient",
    "validate_image_payload",
]
