"""
Health check endpoints.
"""

import time

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from app.config import settings
from app.db.pool import db_health_check
from app.db.postgres import check_db

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "crm-mail-sync"}


def _configuration_issues() -> list[str]:
    issues = []
    if not settings.CRON_SECRET:
        issues.append("CRON_SECRET not set")
    if not settings.GMAIL_USER or not settings.GMAIL_APP_PASSWORD:
        issues.append("GMAIL_USER / GMAIL_APP_PASSWORD not set")
    if not settings.AI_API_KEY:
        issues.append("AI_API_KEY not set")
    return issues


@router.get("/readyz")
async def readyz():
    """Readiness: database reachable and the scheduled jobs configured."""
    checks = {}

    t0 = time.time()
    db_result = await check_db()
    checks["database"] = {
        "ok": db_result is True,
        "latency_ms": round((time.time() - t0) * 1000, 1),
    }
    if db_result is not True:
        checks["database"]["error"] = db_result

    issues = _configuration_issues()
    checks["configuration"] = {
        "ok": not issues,
        "issues": issues or None,
        "environment": settings.environment,
    }

    overall_ok = all(check["ok"] for check in checks.values())
    return JSONResponse(
        status_code=200 if overall_ok else 503,
        content={"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()},
    )


@router.get("/health/database")
async def database_health():
    """Pool statistics plus a timed round trip."""
    return await db_health_check()
