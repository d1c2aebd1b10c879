"""
Audio transcription using the OpenAI Whisper API.
Transcribes a captured recording, then extracts expense information.
"""

import hashlib
from typing import Any

import openai
from openai import AsyncOpenAI

from expense_capture.config import Settings, settings
from expense_capture.errors import NetworkError, TranscriptionServiceError
from expense_capture.logging_config import get_logger
from expense_capture.schemas.extraction import ExtractedExpenseDraft, TranscriptionResult
from expense_capture.schemas.media import MediaHandle
from expense_capture.tools.extraction.text_extractor import (
    ExpenseExtractionEngine,
    extract_expense_from_text,
)

logger = get_logger(__name__)

# Whisper does not report a score; the API is treated as highly reliable.
WHISPER_CONFIDENCE = 0.95


class TranscriptionClient:
    """
    Send recordings to the speech-to-text endpoint.

    One attempt per call, bounded by the request timeout. The media handle
    is released once the request finishes, successfully or not.
    """

    def __init__(self, config: Settings | None = None, client: AsyncOpenAI | None = None):
        self.config = config or settings
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self.config.openai_api_key:
                raise ValueError("OPENAI_API_KEY not configured")
            self._client = AsyncOpenAI(
                api_key=self.config.openai_api_key,
                base_url=self.config.openai_base_url,
                timeout=self.config.request_timeout_seconds,
                max_retries=0,
            )
        return self._client

    async def transcribe(self, handle: MediaHandle, **kwargs: Any) -> TranscriptionResult:
        """
        Transcribe a recording.

        Args:
            handle: Audio media handle (file path or in-memory blob)
            **kwargs: Additional context for logging

        Returns:
            TranscriptionResult with text and confidence

        Raises:
            TranscriptionServiceError: Non-2xx response or no text in the payload
            NetworkError: Timeout or connection failure
        """
        try:
            client = self._get_client()
            content = handle.read_bytes()
            logger.info(
                "transcribing_audio",
                source="file" if handle.path is not None else "blob",
                filename=handle.filename,
                mime_type=handle.base_mime_type,
                size=len(content),
                audio_hash=hashlib.sha256(content).hexdigest()[:16],
                **kwargs,
            )

            transcription = await client.audio.transcriptions.create(
                model=self.config.whisper_model,
                file=(handle.filename, content, handle.base_mime_type),
                response_format="json",
            )
        except openai.APITimeoutError as e:
            logger.error("audio_transcription_timeout", error=str(e), **kwargs)
            raise NetworkError(f"Transcription timed out: {e}") from e
        except openai.APIConnectionError as e:
            logger.error("audio_transcription_connection_failed", error=str(e), **kwargs)
            raise NetworkError(f"Transcription connection failed: {e}") from e
        except openai.APIStatusError as e:
            logger.error(
                "audio_transcription_failed",
                status_code=e.status_code,
                error=str(e),
                **kwargs,
            )
            raise TranscriptionServiceError(
                f"Transcription service returned HTTP {e.status_code}"
            ) from e
        finally:
            handle.release()

        text = getattr(transcription, "text", None)
        if not isinstance(text, str):
            logger.error("audio_transcription_missing_text", **kwargs)
            raise TranscriptionServiceError("Transcription response has no text field")

        result = TranscriptionResult(
            text=text,
            confidence=WHISPER_CONFIDENCE,
            language=getattr(transcription, "language", None),
        )
        logger.info(
            "audio_transcribed_successfully",
            text_length=len(result.text),
            language=result.language,
            **kwargs,
        )
        return result


async def extract_expense_from_audio(
    handle: MediaHandle,
    client: TranscriptionClient,
    engine: ExpenseExtractionEngine | None = None,
    **kwargs: Any,
) -> tuple[TranscriptionResult, ExtractedExpenseDraft]:
    """
    Extract an expense draft from a recording.

    Pipeline:
    1. Transcribe audio using the Whisper API
    2. Extract expense fields from the transcription

    Args:
        handle: Audio media handle
        client: Transcription client
        engine: Extraction engine (process-wide engine if None)
        **kwargs: Additional context (e.g., user_id) for logging

    Returns:
        The transcription and the extracted draft

    Raises:
        TranscriptionServiceError: If the transcription is empty
    """
    logger.info("extracting_expense_from_audio", **kwargs)

    transcription = await client.transcribe(handle, **kwargs)
    text = transcription.text.strip()
    if not text:
        raise TranscriptionServiceError("Transcription resulted in empty text")

    draft = extract_expense_from_text(text, engine=engine, **kwargs)
    return transcription, draft
