"""
One-shot job runner for schedulers that prefer a process over an HTTP call.

Reads the job name from CLI args or the WORKER_JOB environment variable,
opens the database pool, runs the job once and closes everything again.
"""

import asyncio
import os
import sys
from collections.abc import Awaitable, Callable

from app.config import settings
from app.db.pool import db_pool
from app.features.ai_insights.services.classify_batch_service import classify_batch_service
from app.features.crm.services.reminder_service import reminder_service
from app.features.mail_sync.services.backfill_service import backfill_service
from app.features.mail_sync.services.sync_service import mail_sync_service
from app.infrastructure.observability.logging import get_logger, setup_logging
from app.services.infrastructure.storage_client import storage_client

logger = get_logger(__name__)

JobCoroutine = Callable[[], Awaitable[None]]


async def run_mail_sync() -> None:
    result = await mail_sync_service.run()
    if not result.ok:
        raise RuntimeError(result.error)


async def run_classify_batch() -> None:
    await classify_batch_service.run()


async def run_followup_reminders() -> None:
    await reminder_service.run()


async def run_attachment_backfill() -> None:
    summary = await backfill_service.backfill_attachments()
    if not summary["ok"]:
        raise RuntimeError(summary["error"])


JOB_REGISTRY: dict[str, JobCoroutine] = {
    "mail_sync": run_mail_sync,
    "classify_batch": run_classify_batch,
    "followup_reminders": run_followup_reminders,
    "attachment_backfill": run_attachment_backfill,
}


def _resolve_job_name() -> str:
    """Pick the target job from CLI args or WORKER_JOB env variable."""
    if len(sys.argv) > 1:
        return sys.argv[1].strip().lower()
    return os.getenv("WORKER_JOB", "mail_sync").strip().lower()


async def run_worker(job_name: str | None = None) -> None:
    """Run the requested job once."""
    name = (job_name or _resolve_job_name()).strip().lower()
    if name not in JOB_REGISTRY:
        raise ValueError(
            f"Unknown worker job '{name}'. "
            f"Available jobs: {', '.join(sorted(JOB_REGISTRY.keys()))}"
        )

    logger.info("Starting worker job", job=name)
    await JOB_REGISTRY[name]()
    logger.info("Worker job finished", job=name)


async def _main(job_name: str) -> None:
    await db_pool.initialize()
    try:
        await run_worker(job_name)
    finally:
        await storage_client.close()
        await db_pool.close()


def main() -> None:
    """CLI entrypoint."""
    setup_logging(log_level=settings.LOG_LEVEL)
    asyncio.run(_main(_resolve_job_name()))


if __name__ == "__main__":
    main()
