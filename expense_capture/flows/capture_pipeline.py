"""
Capture pipeline: media handle -> client -> draft -> review session.

The pipeline is built once by the application's composition root and owns
its collaborators; nothing here is a module-level singleton.
"""

from typing import Any

from expense_capture.capture.audio_session import AudioCaptureSession
from expense_capture.capture.backends import BrowserMediaDriver, NativeRecorderDriver, select_audio_backend
from expense_capture.capture.image_session import ImageCaptureSession, ImagePickerDriver
from expense_capture.config import Settings, settings
from expense_capture.errors import CaptureError
from expense_capture.flows.review import (
    DraftSource,
    ReviewReconciliationFlow,
    ReviewSession,
    draft_from_receipt,
)
from expense_capture.integrations.identity import IdentityProvider
from expense_capture.logging_config import get_logger
from expense_capture.schemas.media import MediaHandle
from expense_capture.storage.expense_store import ExpenseRecordStore
from expense_capture.tools.extraction.audio_extractor import (
    TranscriptionClient,
    extract_expense_from_audio,
)
from expense_capture.tools.extraction.receipt_client import ReceiptParsingClient
from expense_capture.tools.extraction.text_extractor import ExpenseExtractionEngine

logger = get_logger(__name__)


class ExpenseCapturePipeline:
    """Runs voice and receipt capture through extraction into review."""

    def __init__(
        self,
        audio: AudioCaptureSession,
        images: ImageCaptureSession,
        transcription: TranscriptionClient,
        engine: ExpenseExtractionEngine,
        receipts: ReceiptParsingClient,
        review: ReviewReconciliationFlow,
        config: Settings | None = None,
    ):
        self.config = config or settings
        self.audio = audio
        self.images = images
        self.transcription = transcription
        self.engine = engine
        self.receipts = receipts
        self.review = review

    async def voice_to_review(self, handle: MediaHandle, **kwargs: Any) -> ReviewSession:
        """Transcribe a recording, extract a draft and open its review."""
        transcription, draft = await extract_expense_from_audio(
            handle, self.transcription, engine=self.engine, **kwargs
        )
        return self.review.begin(
            draft,
            media=handle,
            source=DraftSource.VOICE,
            transcription=transcription,
        )

    async def receipt_to_review(
        self,
        handle: MediaHandle,
        locale_hint: str | None = None,
        currency_hint: str | None = None,
        **kwargs: Any,
    ) -> ReviewSession:
        """Parse a receipt image and open its review."""
        result = await self.receipts.parse(
            handle,
            locale_hint=locale_hint,
            currency_hint=currency_hint,
            **kwargs,
        )
        draft = draft_from_receipt(result, default_currency=currency_hint or self.config.default_currency)
        return self.review.begin(draft, media=handle, source=DraftSource.RECEIPT)

    async def record_voice_expense(self, **kwargs: Any) -> ReviewSession | None:
        """
        Wait for the active recording to end, then process it.

        Returns None when the recording was aborted.
        """
        if not self.audio.is_recording:
            raise CaptureError("No recording in progress")
        handle = await self.audio.wait_for_handle()
        if handle is None:
            return None
        return await self.voice_to_review(handle, **kwargs)


def build_pipeline(
    audio_driver: NativeRecorderDriver | BrowserMediaDriver,
    image_driver: ImagePickerDriver,
    identity: IdentityProvider,
    store: ExpenseRecordStore,
    config: Settings | None = None,
) -> ExpenseCapturePipeline:
    """
    Composition root: wire the pipeline from settings and injected drivers.

    The audio backend variant is chosen here, once, from ``capture_runtime``.
    """
    config = config or settings
    owner_id = identity.current_user_id()
    if not owner_id:
        raise ValueError("No signed-in user")

    backend = select_audio_backend(config.capture_runtime, audio_driver)
    logger.info("pipeline_built", capture_runtime=config.capture_runtime, backend=backend.name)

    return ExpenseCapturePipeline(
        audio=AudioCaptureSession(backend, config=config),
        images=ImageCaptureSession(image_driver, config=config),
        transcription=TranscriptionClient(config=config),
        engine=ExpenseExtractionEngine(config=config),
        receipts=ReceiptParsingClient(identity=identity, config=config),
        review=ReviewReconciliationFlow(store, owner_id=owner_id, config=config),
        config=config,
    )
