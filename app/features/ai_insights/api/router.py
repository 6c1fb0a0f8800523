"""
AI insight routes.

/ai/category and /summary serve the UI one contact at a time;
/ai/classify-all is the scheduler's batch entry point.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from app.features.ai_insights.domain.models import InsightKind
from app.features.ai_insights.services.classify_batch_service import classify_batch_service
from app.features.ai_insights.services.insight_service import (
    ContactNotFoundError,
    NoEmailsError,
    insight_service,
)
from app.features.ai_insights.services.llm_client import AiServiceError
from app.features.ai_insights.services.response_parser import AiResponseInvalidError
from app.infrastructure.observability.logging import get_logger
from app.security.cron_secret import require_cron_secret

logger = get_logger(__name__)

router = APIRouter(tags=["ai-insights"])


class InsightRequest(BaseModel):
    contact_id: str = Field(..., alias="contactId", description="Contact to classify or summarize")
    force: bool = Field(False, description="Ignore a fresh cache entry")

    model_config = {"populate_by_name": True}


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"ok": False, "error": message})


async def _insight_response(payload: InsightRequest, kind: InsightKind) -> JSONResponse:
    try:
        result = await insight_service.get_insight(payload.contact_id, kind, force=payload.force)
    except ContactNotFoundError:
        return _error(404, "Contact not found")
    except NoEmailsError:
        return _error(404, "No emails for this contact")
    except AiServiceError as e:
        logger.warning("AI insight unavailable", kind=kind.value, status_code=e.status_code, error=str(e))
        return _error(429 if e.rate_limited else 503, e.public_message())
    except AiResponseInvalidError as e:
        logger.error("AI response invalid", kind=kind.value, contact_id=payload.contact_id, error=str(e))
        return _error(502, "AI response invalid")
    return JSONResponse(content=result.to_response())


@router.post("/ai/category")
async def classify_contact(payload: InsightRequest) -> JSONResponse:
    return await _insight_response(payload, InsightKind.CATEGORY)


@router.post("/summary")
async def summarize_contact(payload: InsightRequest) -> JSONResponse:
    return await _insight_response(payload, InsightKind.SUMMARY)


@router.api_route("/ai/classify-all", methods=["GET", "POST"], dependencies=[Depends(require_cron_secret)])
async def classify_all() -> dict:
    """Classify the next page of contacts and advance the batch cursor."""
    result = await classify_batch_service.run()
    return result.to_response()
