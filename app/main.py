"""
FastAPI application: scheduler-triggered sync/classify/reminder endpoints
and the on-demand AI insight endpoints.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from app.config import settings
from app.db.pool import db_pool
from app.features.ai_insights import ai_insights_router
from app.features.crm import crm_router
from app.features.mail_sync import mail_sync_router
from app.infrastructure.observability.logging import get_logger, log_request, setup_logging
from app.routes import health
from app.services.infrastructure.storage_client import storage_client

setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the database pool on startup; close clients on shutdown."""
    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    await db_pool.initialize()

    yield

    logger.info("Application shutting down")
    shutdown_errors = []

    try:
        await storage_client.close()
    except Exception as e:
        logger.error("Error closing storage client", error=str(e))
        shutdown_errors.append(f"Storage: {e}")

    try:
        await db_pool.close()
    except Exception as e:
        logger.error("Error closing database pool", error=str(e))
        shutdown_errors.append(f"Database: {e}")

    if shutdown_errors:
        logger.warning("Some services had shutdown errors", errors=shutdown_errors)
    else:
        logger.info("All services closed successfully")


app = FastAPI(
    title="CRM Mail Sync",
    description="Personal CRM backend: mailbox sync, follow-ups and cached AI insights",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(mail_sync_router)
app.include_router(crm_router)
app.include_router(ai_insights_router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log HTTP requests with timing."""
    start_time = time.time()
    response = await call_next(request)
    log_request(
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round((time.time() - start_time) * 1000, 2),
    )
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
