"""
Review and reconciliation of extracted drafts.

Every draft passes through a review session before it reaches the record
store. The session edits a working copy so the original can always be
discarded; low confidence is flagged for the user but never blocks saving.
"""

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Any

from expense_capture.config import Settings, settings
from expense_capture.errors import IncompleteDraftError, ReviewClosedError
from expense_capture.logging_config import get_logger
from expense_capture.schemas.extraction import (
    ExtractedExpenseDraft,
    ReceiptParseResult,
    TranscriptionResult,
)
from expense_capture.schemas.media import MediaHandle
from expense_capture.storage.expense_store import ExpenseRecord, ExpenseRecordStore
from expense_capture.tools.extraction.text_extractor import infer_category

logger = get_logger(__name__)

RECEIPT_FALLBACK_DESCRIPTION = "Receipt scan"
# Currency value the receipt model uses when it cannot tell
UNKNOWN_RECEIPT_CURRENCY = "OTHER"


class DraftSource(str, Enum):
    VOICE = "voice"
    RECEIPT = "receipt"
    MANUAL = "manual"


class ReviewStatus(str, Enum):
    OPEN = "open"
    CONFIRMED = "confirmed"
    DISCARDED = "discarded"


def draft_from_receipt(
    result: ReceiptParseResult,
    default_currency: str,
) -> ExtractedExpenseDraft:
    """Map a receipt parse result to a reviewable draft."""
    currency = result.currency
    if not currency or currency == UNKNOWN_RECEIPT_CURRENCY or len(currency) != 3:
        currency = default_currency

    try:
        date = dt.date.fromisoformat(result.date_iso) if result.date_iso else dt.date.today()
    except ValueError:
        logger.warning("receipt_date_unparseable", date_iso=result.date_iso)
        date = dt.date.today()

    return ExtractedExpenseDraft(
        amount=Decimal(str(result.amount)),
        currency=currency,
        description=result.vendor or RECEIPT_FALLBACK_DESCRIPTION,
        category=infer_category(result.vendor),
        date=date,
        confidence=result.confidence,
    )


class ReviewSession:
    """
    One draft under review.

    ``original`` is never modified; ``working`` holds the user's edits.
    """

    def __init__(
        self,
        flow: "ReviewReconciliationFlow",
        draft: ExtractedExpenseDraft,
        media: MediaHandle | None = None,
        source: DraftSource = DraftSource.VOICE,
        transcription: TranscriptionResult | None = None,
    ):
        self._flow = flow
        self.original = draft
        self.working = draft.model_copy(deep=True)
        self.media = media
        self.source = source
        self.transcription = transcription
        self.status = ReviewStatus.OPEN
        self.record: ExpenseRecord | None = None

    @property
    def is_open(self) -> bool:
        return self.status == ReviewStatus.OPEN

    @property
    def low_confidence(self) -> bool:
        """True when the extraction deserves a visible warning."""
        return self.original.confidence < self._flow.confidence_threshold

    def _ensure_open(self) -> None:
        if not self.is_open:
            raise ReviewClosedError(f"Review already {self.status.value}")

    def edit(self, **fields: Any) -> ExtractedExpenseDraft:
        """
        Apply field corrections to the working copy.

        The merged draft is re-validated, so an invalid edit leaves the
        working copy untouched.
        """
        self._ensure_open()
        unknown = set(fields) - set(ExtractedExpenseDraft.model_fields)
        if unknown:
            raise ValueError(f"Unknown draft fields: {sorted(unknown)}")

        self.working = ExtractedExpenseDraft.model_validate(
            {**self.working.model_dump(), **fields}
        )
        logger.debug("draft_edited", fields=sorted(fields), source=self.source.value)
        return self.working

    def reset(self) -> ExtractedExpenseDraft:
        """Throw away edits and start again from the original draft."""
        self._ensure_open()
        self.working = self.original.model_copy(deep=True)
        return self.working

    async def confirm(self) -> ExpenseRecord:
        """
        Commit the working copy to the record store.

        Raises:
            ReviewClosedError: Already confirmed or discarded
            IncompleteDraftError: Amount is zero or description is empty
        """
        self._ensure_open()
        if self.working.amount <= 0 or not self.working.description.strip():
            raise IncompleteDraftError(
                f"Draft incomplete: amount={self.working.amount}, "
                f"description_length={len(self.working.description.strip())}"
            )

        self.record = await self._flow.commit(self.working)
        self.status = ReviewStatus.CONFIRMED
        self._release_media()
        logger.info(
            "review_confirmed",
            expense_id=self.record.id,
            source=self.source.value,
            low_confidence=self.low_confidence,
            edited=self.working != self.original,
        )
        return self.record

    def discard(self) -> None:
        """Drop the draft and its media so capture can start over."""
        if not self.is_open:
            return
        self.status = ReviewStatus.DISCARDED
        self._release_media()
        logger.info("review_discarded", source=self.source.value)

    def _release_media(self) -> None:
        if self.media is not None:
            self.media.release()


class ReviewReconciliationFlow:
    """
    Gate between extraction and persistence.

    Example:
        >>> flow = ReviewReconciliationFlow(store, owner_id="user-1")
        >>> review = flow.begin(draft)
        >>> review.edit(category="Transport")
        >>> record = await review.confirm()
    """

    def __init__(
        self,
        store: ExpenseRecordStore,
        owner_id: str,
        config: Settings | None = None,
        confidence_threshold: float | None = None,
    ):
        config = config or settings
        self.store = store
        self.owner_id = owner_id
        self.confidence_threshold = (
            confidence_threshold if confidence_threshold is not None else config.confidence_threshold
        )

    def begin(
        self,
        draft: ExtractedExpenseDraft,
        media: MediaHandle | None = None,
        source: DraftSource = DraftSource.VOICE,
        transcription: TranscriptionResult | None = None,
    ) -> ReviewSession:
        session = ReviewSession(self, draft, media=media, source=source, transcription=transcription)
        if session.low_confidence:
            logger.info(
                "low_confidence_draft",
                confidence=draft.confidence,
                threshold=self.confidence_threshold,
                source=source.value,
            )
        return session

    async def commit(self, draft: ExtractedExpenseDraft) -> ExpenseRecord:
        return await self.store.create(self.owner_id, draft.to_record_fields())
