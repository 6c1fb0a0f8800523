"""
Classification batch over all contacts.

Each run classifies one page of contacts (ordered by created_at) starting at
the persisted offset, then moves the offset forward by the page length. A
short page means the end of the list was reached and the offset wraps to 0,
so repeated runs sweep the whole contact set in a ring.
"""

from app.config import settings
from app.features.ai_insights.domain.models import ClassifyBatchResult, InsightKind
from app.features.ai_insights.repository.classify_state_repository import ClassifyStateRepository
from app.features.ai_insights.services.insight_service import (
    InsightService,
    NoEmailsError,
    insight_service,
)
from app.features.crm.repository.contact_repository import ContactRepository
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


def next_offset(offset: int, fetched: int, batch_size: int) -> int:
    if fetched < batch_size:
        return 0
    return offset + fetched


class ClassifyBatchService:
    def __init__(
        self,
        contacts=ContactRepository,
        state=ClassifyStateRepository,
        insights: InsightService | None = None,
        batch_size: int | None = None,
    ):
        self.contacts = contacts
        self.state = state
        self.insights = insights or insight_service
        self.batch_size = batch_size

    async def run(self) -> ClassifyBatchResult:
        size = self.batch_size or settings.classify_batch_size()
        stored_offset = await self.state.get_offset()
        offset = stored_offset or 0

        page = await self.contacts.list_page(offset, size)
        result = ClassifyBatchResult(
            offset=offset,
            next_offset=next_offset(offset, len(page), size),
            batch_size=size,
        )

        for contact in page:
            result.processed += 1
            try:
                insight = await self.insights.get_insight(contact.id, InsightKind.CATEGORY)
            except NoEmailsError:
                result.skipped += 1
                continue
            except Exception as e:
                result.errors += 1
                logger.error(
                    "Contact classification failed",
                    contact_id=contact.id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue

            if insight.cached:
                result.cached += 1
            if insight.status_changed:
                result.updated += 1

        if stored_offset is None:
            result.cursor_persisted = False
        elif not await self.state.compare_and_set(stored_offset, result.next_offset):
            result.cursor_persisted = False
            logger.warning(
                "Classify cursor moved by another run, not overwriting",
                expected=stored_offset,
                next_offset=result.next_offset,
            )

        logger.info("Classification batch completed", **result.to_response())
        return result


classify_batch_service = ClassifyBatchService()
