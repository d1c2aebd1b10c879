"""
HTTP client for the receipt parsing service.

Posts a receipt image with locale/currency hints and maps service error
responses back onto the error taxonomy.
"""

from typing import Any

import httpx
from pydantic import ValidationError

from expense_capture.config import Settings, settings
from expense_capture.errors import (
    ImageTooLarge,
    InvalidImageFormat,
    NetworkError,
    RateLimitExceeded,
    ReceiptParsingFailed,
)
from expense_capture.integrations.identity import IdentityProvider
from expense_capture.logging_config import get_logger
from expense_capture.schemas.extraction import ReceiptParseResult
from expense_capture.schemas.media import MediaHandle
from expense_capture.tools.extraction.receipt_parser import validate_image_payload

logger = get_logger(__name__)

VALIDATION_ERRORS = {
    InvalidImageFormat.code: InvalidImageFormat,
    ImageTooLarge.code: ImageTooLarge,
}


def _retry_after(response: httpx.Response) -> int:
    try:
        return max(1, int(response.headers.get("Retry-After", "")))
    except ValueError:
        return 60


class ReceiptParsingClient:
    """
    Submit receipt images to the parsing service.

    The payload is validated locally with the service's own rules, so an
    invalid image never leaves the device. One attempt per call.
    """

    def __init__(
        self,
        identity: IdentityProvider | None = None,
        config: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.config = config or settings
        self.identity = identity
        self._http_client = http_client

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        token = self.identity.access_token() if self.identity else None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        if self._http_client is not None:
            return await self._http_client.post(
                self.config.receipt_parse_url,
                json=payload,
                headers=self._headers(),
                timeout=self.config.request_timeout_seconds,
            )
        async with httpx.AsyncClient(timeout=self.config.request_timeout_seconds) as client:
            return await client.post(
                self.config.receipt_parse_url,
                json=payload,
                headers=self._headers(),
            )

    async def parse(
        self,
        handle: MediaHandle,
        locale_hint: str | None = None,
        currency_hint: str | None = None,
        **kwargs: Any,
    ) -> ReceiptParseResult:
        """
        Parse a receipt image.

        Args:
            handle: Image media handle
            locale_hint: Locale used to disambiguate dates (e.g., "en-US")
            currency_hint: User's preferred currency
            **kwargs: Additional context for logging

        Returns:
            ReceiptParseResult

        Raises:
            InvalidImageFormat / ImageTooLarge: Payload rejected
            RateLimitExceeded: Too many requests; carries the retry-after hint
            ReceiptParsingFailed: Service could not parse the receipt
            NetworkError: Timeout or connection failure
        """
        try:
            image_b64 = validate_image_payload(handle.as_data_url(), self.config.max_image_bytes)
            payload = {
                "image_b64": image_b64,
                "locale_hint": locale_hint or self.config.default_locale,
                "currency_hint": currency_hint,
            }
            logger.info(
                "requesting_receipt_parse",
                locale_hint=payload["locale_hint"],
                currency_hint=currency_hint,
                **kwargs,
            )

            try:
                response = await self._post(payload)
            except httpx.TimeoutException as e:
                logger.error("receipt_parse_timeout", error=str(e), **kwargs)
                raise NetworkError(f"Timeout calling receipt parser: {e}") from e
            except httpx.HTTPError as e:
                logger.error("receipt_parse_http_error", error=str(e), **kwargs)
                raise NetworkError(f"HTTP error calling receipt parser: {e}") from e
        finally:
            handle.release()

        return self._handle_response(response, **kwargs)

    def _handle_response(self, response: httpx.Response, **kwargs: Any) -> ReceiptParseResult:
        if response.status_code == 429:
            raise RateLimitExceeded(retry_after_seconds=_retry_after(response))

        if response.status_code == 400:
            code = self._error_code(response)
            raise VALIDATION_ERRORS.get(code, InvalidImageFormat)()

        if response.status_code != 200:
            logger.error(
                "receipt_parse_service_error",
                status_code=response.status_code,
                error=self._error_code(response),
                **kwargs,
            )
            raise ReceiptParsingFailed(f"Receipt service returned HTTP {response.status_code}")

        try:
            result = ReceiptParseResult.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.error("receipt_parse_invalid_response", error=str(e), **kwargs)
            raise ReceiptParsingFailed("Receipt service returned an invalid payload") from e

        logger.info(
            "receipt_parse_received",
            model=result.model,
            confidence=result.confidence,
            **kwargs,
        )
        return result

    @staticmethod
    def _error_code(response: httpx.Response) -> str | None:
        try:
            body = response.json()
        except ValueError:
            return None
        return body.get("error") if isinstance(body, dict) else None
