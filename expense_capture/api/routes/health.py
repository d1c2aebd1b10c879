"""
Health check endpoints for monitoring and deployment.
"""

from datetime import datetime, timezone

from fastapi import APIRouter
from pydantic import BaseModel

from expense_capture.api.deps import AppSettings

router = APIRouter(prefix="/health", tags=["health"])


class HealthStatus(BaseModel):
    """Health check response model."""
    status: str
    timestamp: datetime
    version: str
    environment: str
    checks: dict[str, bool]


@router.get("", response_model=HealthStatus)
@router.get("/", response_model=HealthStatus)
async def health_check(config: AppSettings) -> HealthStatus:
    """
    Basic health check endpoint.

    Reports configuration status without calling any upstream model.
    Used by load balancers for simple alive checks.
    """
    return HealthStatus(
        status="healthy",
        timestamp=datetime.now(timezone.utc),
        version=config.service_version,
        environment=config.environment,
        checks={
            "app": True,
            "llm": bool(config.openai_api_key),
            "rate_limiting": config.rate_limit_enabled,
        },
    )


@router.get("/live")
async def liveness_check() -> dict:
    """
    Simple liveness probe.

    Returns 200 if the application process is running.
    """
    return {"status": "alive", "timestamp": datetime.now(timezone.utc).isoformat()}
