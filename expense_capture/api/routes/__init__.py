"""
API route modules.
"""

from expense_capture.api.routes.health import router as health_router
from expense_capture.api.routes.receipts import router as receipts_router

__all__ = ["health_router", "receipts_router"]
