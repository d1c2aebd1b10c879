"""
FastAPI application entry point.

This is the receipt parsing service that handles:
- Receipt parsing with two model tiers
- Per-client rate limiting
- Health checks
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from expense_capture.api.routes import health_router, receipts_router
from expense_capture.config import Settings, settings
from expense_capture.errors import (
    ExpenseCaptureError,
    RateLimitExceeded,
    ReceiptParsingFailed,
    ReceiptValidationError,
)
from expense_capture.logging_config import configure_logging, get_logger
from expense_capture.schemas.extraction import ErrorResponse
from expense_capture.services.rate_limiter import RateLimiter
from expense_capture.tools.extraction.receipt_parser import ReceiptParser

logger = get_logger(__name__)

CORS_ALLOW_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]
CORS_ALLOW_METHODS = ["GET", "POST", "OPTIONS"]


def _error_body(code: str, message: str) -> dict:
    return ErrorResponse(
        error=code,
        message=message,
        timestamp=datetime.now(timezone.utc),
    ).model_dump(mode="json")


# ─────────────────────────────────────────────────────────────────────────────
# Exception Handlers
# ─────────────────────────────────────────────────────────────────────────────

async def receipt_validation_handler(request: Request, exc: ReceiptValidationError) -> JSONResponse:
    logger.info("receipt_request_rejected", error=exc.code, detail=str(exc))
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.code, exc.user_message))


async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    body = _error_body(exc.code, exc.user_message)
    body["retryAfter"] = exc.retry_after_seconds
    return JSONResponse(
        status_code=exc.status_code,
        content=body,
        headers={"Retry-After": str(exc.retry_after_seconds)},
    )


async def parsing_failed_handler(request: Request, exc: ExpenseCaptureError) -> JSONResponse:
    # Upstream detail stays in the logs
    logger.error("receipt_request_failed", error_type=type(exc).__name__, detail=str(exc))
    return JSONResponse(
        status_code=500,
        content=_error_body(ReceiptParsingFailed.code, ReceiptParsingFailed.default_message),
    )


# ─────────────────────────────────────────────────────────────────────────────
# Application Factory
# ─────────────────────────────────────────────────────────────────────────────

def create_app(
    config: Settings | None = None,
    receipt_parser: ReceiptParser | None = None,
    rate_limiter: RateLimiter | None = None,
) -> FastAPI:
    """
    Build the receipt parsing service.

    Collaborators are constructed here once and shared through ``app.state``.
    """
    config = config or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(config)
        logger.info(
            "application_starting",
            environment=config.environment,
            llm_configured=bool(config.openai_api_key),
            rate_limiting=config.rate_limit_enabled,
            models=[config.receipt_model_mini, config.receipt_model_full],
        )

        yield

        logger.info("application_shutting_down")

    app = FastAPI(
        title="Expense Capture Receipt Service",
        description="Receipt parsing for voice and photo expense capture",
        version=config.service_version,
        lifespan=lifespan,
        docs_url="/docs" if config.environment != "production" else None,
        redoc_url="/redoc" if config.environment != "production" else None,
    )

    app.state.settings = config
    app.state.receipt_parser = receipt_parser or ReceiptParser(config=config)
    app.state.rate_limiter = rate_limiter or RateLimiter(config=config)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=CORS_ALLOW_METHODS,
        allow_headers=CORS_ALLOW_HEADERS,
    )

    app.add_exception_handler(ReceiptValidationError, receipt_validation_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    app.add_exception_handler(ExpenseCaptureError, parsing_failed_handler)

    app.include_router(health_router, prefix="/api/v1")
    app.include_router(receipts_router, prefix="/api/v1")

    # Also mount health at root for simpler health checks
    app.include_router(health_router)

    @app.get("/")
    async def root():
        """Root endpoint with basic info."""
        return {
            "name": "Expense Capture Receipt Service",
            "version": config.service_version,
            "status": "running",
            "health": "/health",
            "receipts": "/api/v1/receipts/parse",
        }

    return app


app = create_app()


# ─────────────────────────────────────────────────────────────────────────────
# Run with Uvicorn (for development)
# ─────────────────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "expense_capture.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.environment == "development",
        log_level="debug" if settings.environment == "development" else "info",
    )
