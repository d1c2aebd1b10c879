"""
Service-side helpers for the receipt parsing API.
"""

from expense_capture.services.rate_limiter import (
    RateLimiter,
    RateLimitState,
    derive_client_id,
)

__all__ = ["RateLimiter", "RateLimitState", "derive_client_id"]
