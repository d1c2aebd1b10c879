"""
Receipt parsing endpoint.

POST parses a receipt image; GET is an unauthenticated health check.
This module should NOT contain extraction logic - it's a thin proxy layer
over ReceiptParser.
"""

from datetime import datetime, timezone

from fastapi import APIRouter

from expense_capture.api.deps import AppSettings, ClientId, Limiter, Parser
from expense_capture.errors import ExpenseCaptureError, ReceiptParsingFailed
from expense_capture.logging_config import get_logger
from expense_capture.schemas.extraction import (
    ReceiptParseRequest,
    ReceiptParseResponse,
    ReceiptServiceHealth,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/receipts", tags=["receipts"])

FEATURES = ["receipt-parsing", "rate-limiting", "cors-support"]


@router.get("/parse", response_model=ReceiptServiceHealth)
async def receipt_service_health(config: AppSettings) -> ReceiptServiceHealth:
    """Health check for the receipt parser. No authentication required."""
    return ReceiptServiceHealth(
        status="healthy",
        timestamp=datetime.now(timezone.utc),
        version=config.service_version,
        features=FEATURES,
    )


@router.post("/parse", response_model=ReceiptParseResponse)
async def parse_receipt(
    body: ReceiptParseRequest,
    parser: Parser,
    limiter: Limiter,
    client_id: ClientId,
    config: AppSettings,
) -> ReceiptParseResponse:
    """
    Parse a receipt image into vendor, date, currency and final total.

    Order of checks:
    1. Per-client rate limit (429)
    2. Image payload format and size (400)
    3. Mini model, then full model (500 if both fail)
    """
    limiter.check(client_id)

    try:
        result = await parser.parse(body, client_id=client_id)
    except ExpenseCaptureError:
        raise
    except Exception as e:
        logger.error(
            "receipt_parse_unexpected_error",
            client_id=client_id,
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        raise ReceiptParsingFailed("Unexpected error while parsing receipt") from e

    return ReceiptParseResponse(**result.model_dump(), version=config.service_version)
