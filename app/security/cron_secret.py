"""
Shared-secret guard for scheduler-triggered endpoints.
"""

import hmac

from fastapi import Header, HTTPException

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

CRON_HEADER = "x-cron-secret"


def verify_cron_secret(provided: str | None) -> None:
    expected = settings.CRON_SECRET
    if not expected:
        logger.error("CRON_SECRET is not configured, rejecting scheduled call")
        raise HTTPException(status_code=401, detail="Unauthorized")
    if not provided or not hmac.compare_digest(provided.encode(), expected.encode()):
        raise HTTPException(status_code=401, detail="Unauthorized")


async def require_cron_secret(x_cron_secret: str | None = Header(default=None)) -> None:
    """FastAPI dependency: 401 unless x-cron-secret matches CRON_SECRET."""
    verify_cron_secret(x_cron_secret)
