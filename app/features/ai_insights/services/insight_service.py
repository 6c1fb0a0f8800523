"""
Cached AI insights per contact.

Read protocol: find the contact's newest email timestamp (received_at,
falling back to created_at), load the cache entry for the purpose key and
reuse it while its watermark is at or past that timestamp. Otherwise ask
the model over the newest messages, validate the reply, store it with the
new watermark and, for categories, move the contact status.
"""

from datetime import datetime

from app.config import settings
from app.features.ai_insights.domain.models import (
    AiCategory,
    CacheEntry,
    CategoryResult,
    InsightKind,
    InsightResult,
    SummaryResult,
)
from app.features.ai_insights.repository.insight_repository import InsightRepository
from app.features.ai_insights.services.llm_client import AiServiceError, LlmClient, llm_client
from app.features.ai_insights.services.prompt_builder import (
    build_category_prompt,
    build_summary_prompt,
)
from app.features.ai_insights.services.response_parser import AiResponseInvalidError, parse_payload
from app.features.crm.domain.models import Contact, ContactStatus
from app.features.crm.repository.contact_repository import ContactRepository
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class ContactNotFoundError(Exception):
    pass


class NoEmailsError(Exception):
    """Nothing to summarize or classify for this contact."""


def email_timestamp(email: dict) -> datetime | None:
    return email.get("received_at") or email.get("created_at")


def latest_email_at(emails: list[dict]) -> datetime | None:
    stamps = [stamp for stamp in (email_timestamp(e) for e in emails) if stamp is not None]
    return max(stamps) if stamps else None


class InsightService:
    def __init__(
        self,
        contacts=ContactRepository,
        insights=InsightRepository,
        llm: LlmClient | None = None,
        email_limit: int | None = None,
        recent_count: int | None = None,
    ):
        self.contacts = contacts
        self.insights = insights
        self.llm = llm or llm_client
        self.email_limit = email_limit or settings.SUMMARY_EMAIL_LIMIT
        self.recent_count = recent_count or settings.SUMMARY_RECENT_COUNT

    async def get_insight(self, contact_id: str, kind: InsightKind, force: bool = False) -> InsightResult:
        contact = await self.contacts.get(contact_id)
        if contact is None:
            raise ContactNotFoundError(f"Contact {contact_id} not found")

        # the prompt window never exceeds what was fetched
        fetch_limit = max(self.email_limit, self.recent_count)
        emails = await self.insights.recent_emails(contact.id, contact.addresses(), fetch_limit)
        if not emails:
            raise NoEmailsError(f"No emails for contact {contact_id}")
        latest = latest_email_at(emails)

        entry = await self.insights.get_entry(contact.id, kind.thread_key)
        cached = self._load_cached(kind, entry)

        if cached is not None and not force and entry.is_fresh(latest):
            logger.debug("Insight cache hit", contact_id=contact.id, kind=kind.value)
            result = InsightResult(
                contact_id=contact.id,
                kind=kind,
                result=cached,
                cached=True,
                last_email_at=entry.last_email_at,
                model=entry.model,
            )
            await self._apply_category(contact, result)
            return result

        prompt = self._build_prompt(kind, contact, emails[: self.recent_count])
        try:
            reply = await self.llm.complete(prompt)
        except AiServiceError as e:
            if e.rate_limited and cached is not None and kind is InsightKind.SUMMARY:
                logger.warning("AI rate limited, serving stale summary", contact_id=contact.id)
                return InsightResult(
                    contact_id=contact.id,
                    kind=kind,
                    result=cached,
                    cached=True,
                    last_email_at=entry.last_email_at,
                    model=entry.model,
                    rate_limited=True,
                )
            raise

        parsed = parse_payload(kind, reply)
        stored = await self.insights.upsert_entry(
            CacheEntry(
                contact_id=contact.id,
                thread_key=kind.thread_key,
                payload=parsed.model_dump_json(),
                last_email_at=latest,
                model=self.llm.model,
            )
        )
        result = InsightResult(
            contact_id=contact.id,
            kind=kind,
            result=parsed,
            cached=False,
            last_email_at=latest,
            model=self.llm.model,
            stored=stored,
        )
        await self._apply_category(contact, result)
        logger.info(
            "Insight generated",
            contact_id=contact.id,
            kind=kind.value,
            emails=len(emails),
            stored=stored,
            status_changed=result.status_changed,
        )
        return result

    def _build_prompt(self, kind: InsightKind, contact: Contact, emails: list[dict]) -> str:
        if kind is InsightKind.CATEGORY:
            return build_category_prompt(contact, emails)
        return build_summary_prompt(contact, emails)

    def _load_cached(
        self, kind: InsightKind, entry: CacheEntry | None
    ) -> CategoryResult | SummaryResult | None:
        if entry is None or not entry.payload:
            return None
        try:
            return parse_payload(kind, entry.payload)
        except AiResponseInvalidError as e:
            logger.warning("Cached insight unreadable, regenerating", contact_id=entry.contact_id, error=str(e))
            return None

    async def _apply_category(self, contact: Contact, result: InsightResult) -> None:
        if result.kind is not InsightKind.CATEGORY:
            return
        category: AiCategory = result.result.category
        target: ContactStatus = category.to_status()
        result.applied_status = target
        if contact.status == target:
            return
        await self.contacts.update_status(contact.id, target)
        result.status_changed = True
        logger.info(
            "Contact status set from AI category",
            contact_id=contact.id,
            previous=contact.status.value if contact.status else None,
            status=target.value,
        )


insight_service = InsightService()
