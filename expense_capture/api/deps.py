"""
FastAPI dependencies for dependency injection.

Service instances are created once per application in ``create_app`` and
stored on ``app.state``.
"""

from typing import Annotated

from fastapi import Depends, Request

from expense_capture.config import Settings
from expense_capture.services.rate_limiter import RateLimiter, derive_client_id
from expense_capture.tools.extraction.receipt_parser import ReceiptParser


# ─────────────────────────────────────────────────────────────────────────────
# Settings & Services
# ─────────────────────────────────────────────────────────────────────────────

def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_receipt_parser(request: Request) -> ReceiptParser:
    return request.app.state.receipt_parser


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


AppSettings = Annotated[Settings, Depends(get_settings)]
Parser = Annotated[ReceiptParser, Depends(get_receipt_parser)]
Limiter = Annotated[RateLimiter, Depends(get_rate_limiter)]


# ─────────────────────────────────────────────────────────────────────────────
# Client Identity
# ─────────────────────────────────────────────────────────────────────────────

def get_client_id(request: Request) -> str:
    """
    Rate-limit key for the caller.

    Derived from the bearer token hash, the forwarded/real IP, or the
    shared anonymous bucket.
    """
    return derive_client_id(request.headers)


ClientId = Annotated[str, Depends(get_client_id)]
