"""
Receipt parser using OpenAI vision models through LangChain.

Validates the image payload, then tries the cost-effective model tier and
falls back to the full model when the first tier errors out or returns
JSON that does not match the receipt schema.
"""

import json
import math
from collections.abc import Callable
from typing import Any

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import BaseMessage
from langchain_core.runnables import Runnable
from langchain_openai import ChatOpenAI
from pydantic import ValidationError

from expense_capture.config import Settings, settings
from expense_capture.errors import ImageTooLarge, InvalidImageFormat, ReceiptParsingFailed
from expense_capture.logging_config import get_logger
from expense_capture.prompts.receipt_parsing import build_receipt_messages
from expense_capture.schemas.extraction import (
    ReceiptFields,
    ReceiptParseRequest,
    ReceiptParseResult,
)

logger = get_logger(__name__)

IMAGE_DATA_URL_PREFIX = "data:image/"


def estimate_decoded_size(image_b64: str) -> int:
    """Decoded byte size estimated from the base64 length."""
    return math.ceil(len(image_b64) * 3 / 4)


def validate_image_payload(image_b64: str | None, max_bytes: int | None = None) -> str:
    """
    Reject payloads that are not image data URLs or are too large.

    Raises:
        InvalidImageFormat: Payload missing or not ``data:image/...``
        ImageTooLarge: Estimated decoded size above ``max_bytes``
    """
    max_bytes = max_bytes if max_bytes is not None else settings.max_image_bytes
    if not isinstance(image_b64, str) or not image_b64.startswith(IMAGE_DATA_URL_PREFIX):
        raise InvalidImageFormat()

    estimated = estimate_decoded_size(image_b64)
    if estimated > max_bytes:
        raise ImageTooLarge(f"Estimated image size {estimated} exceeds {max_bytes} bytes")
    return image_b64


def parse_model_output(content: Any) -> ReceiptFields:
    """
    Parse and schema-check a model response.

    Raises:
        ValueError: Empty or non-JSON content
        ValidationError: JSON that misses or mistypes ``amount``/``confidence``
    """
    if not isinstance(content, str) or not content.strip():
        raise ValueError("No content in model response")
    data = json.loads(content)
    if not isinstance(data, dict):
        raise ValueError("Model response is not a JSON object")
    return ReceiptFields.model_validate(data)


class ReceiptParser:
    """
    Two-tier receipt extraction.

    The mini tier handles the common case; the full tier is a quality
    fallback with the identical prompt, not a retry for transient errors.
    """

    def __init__(
        self,
        config: Settings | None = None,
        llm_factory: Callable[[str], BaseChatModel] | None = None,
    ):
        self.config = config or settings
        self._llm_factory = llm_factory or self._default_llm

    @property
    def tiers(self) -> tuple[str, str]:
        return (self.config.receipt_model_mini, self.config.receipt_model_full)

    def _default_llm(self, model: str) -> BaseChatModel:
        if not self.config.openai_api_key:
            raise ValueError("OPENAI_API_KEY not configured")

        logger.debug("initializing_openai_vision_llm", model=model)
        return ChatOpenAI(
            model=model,
            api_key=self.config.openai_api_key,
            base_url=self.config.openai_base_url,
            temperature=0,
            max_tokens=self.config.receipt_max_tokens,
            timeout=self.config.request_timeout_seconds,
            max_retries=0,
        )

    def _get_chain(self, model: str) -> Runnable:
        return self._llm_factory(model).bind(response_format={"type": "json_object"})

    async def _call_tier(
        self,
        model: str,
        messages: list[BaseMessage],
        **kwargs: Any,
    ) -> ReceiptFields | None:
        """Run one tier; returns None when the tier fails for any reason."""
        logger.info("calling_receipt_model", model=model, **kwargs)
        try:
            response = await self._get_chain(model).ainvoke(messages)
            return parse_model_output(response.content)
        except (ValidationError, ValueError) as e:
            logger.warning(
                "receipt_model_output_invalid",
                model=model,
                error=str(e),
                error_type=type(e).__name__,
                **kwargs,
            )
        except Exception as e:
            logger.error(
                "receipt_model_call_failed",
                model=model,
                error=str(e),
                error_type=type(e).__name__,
                **kwargs,
                exc_info=True,
            )
        return None

    async def parse(self, request: ReceiptParseRequest, **kwargs: Any) -> ReceiptParseResult:
        """
        Extract the final total and metadata from a receipt image.

        Args:
            request: Image data URL plus optional locale/currency hints
            **kwargs: Additional context (e.g., client_id) for logging

        Returns:
            ReceiptParseResult annotated with the model tier that produced it

        Raises:
            InvalidImageFormat / ImageTooLarge: Payload rejected before any model call
            ReceiptParsingFailed: Neither tier produced a schema-conformant result
        """
        image_b64 = validate_image_payload(request.image_b64, self.config.max_image_bytes)
        messages = build_receipt_messages(
            image_b64,
            locale_hint=request.locale_hint,
            currency_hint=request.currency_hint,
        )

        logger.info(
            "parsing_receipt",
            estimated_bytes=estimate_decoded_size(image_b64),
            locale_hint=request.locale_hint,
            currency_hint=request.currency_hint,
            **kwargs,
        )

        for model in self.tiers:
            fields = await self._call_tier(model, messages, **kwargs)
            if fields is None:
                continue

            result = ReceiptParseResult(**fields.model_dump(), model=model)
            logger.info(
                "receipt_parsed_successfully",
                model=model,
                amount=result.amount,
                currency=result.currency,
                has_vendor=result.vendor is not None,
                confidence=result.confidence,
                **kwargs,
            )
            return result

        logger.error("receipt_parsing_failed_all_tiers", tiers=list(self.tiers), **kwargs)
        raise ReceiptParsingFailed("Both models failed to parse receipt")
