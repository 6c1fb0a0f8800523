"""
Mailbox sync routes. All of them move data and are scheduler-guarded.
"""

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from app.features.mail_sync.domain.models import SyncRunResult
from app.features.mail_sync.services.backfill_service import backfill_service
from app.features.mail_sync.services.sync_service import mail_sync_service
from app.infrastructure.observability.logging import get_logger
from app.security.cron_secret import require_cron_secret

logger = get_logger(__name__)

router = APIRouter(prefix="/gmail", tags=["gmail-sync"], dependencies=[Depends(require_cron_secret)])


class ContactBackfillRequest(BaseModel):
    emails: list[str] = Field(..., min_length=1, description="Addresses to search for")
    contact_id: str | None = Field(None, alias="contactId", description="Link matches to this contact")
    limit: int | None = Field(None, ge=1, description="Newest messages to process (max 200)")

    model_config = {"populate_by_name": True}


class AttachmentBackfillRequest(BaseModel):
    count: int | None = Field(None, ge=1, description="How many recent UIDs to scan (max 400)")


def _run_response(result: SyncRunResult) -> JSONResponse:
    if result.ok:
        status_code = 200
    elif result.conflict:
        status_code = 409
    else:
        status_code = 500
    return JSONResponse(status_code=status_code, content=result.to_response())


@router.api_route("/sync", methods=["GET", "POST"])
async def run_sync() -> JSONResponse:
    """Process the next batch of new mailbox messages."""
    result = await mail_sync_service.run()
    return _run_response(result)


@router.post("/backfill-contact")
async def backfill_contact(payload: ContactBackfillRequest) -> JSONResponse:
    try:
        result = await backfill_service.backfill_contact(
            payload.emails, contact_id=payload.contact_id, limit=payload.limit
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return _run_response(result)


@router.post("/backfill-attachments")
async def backfill_attachments(payload: AttachmentBackfillRequest | None = None) -> JSONResponse:
    summary = await backfill_service.backfill_attachments(payload.count if payload else None)
    return JSONResponse(status_code=200 if summary["ok"] else 500, content=summary)
