"""
Domain models for cached AI insights (category + conversation summary).

Model answers are validated into these pydantic models before anything is
stored; the cache row keeps the validated JSON, never the raw reply.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from app.features.crm.domain.models import ContactStatus

CATEGORY_THREAD_KEY = "__ai_category__"
SUMMARY_THREAD_KEY = "__contact__"


class InsightKind(str, Enum):
    CATEGORY = "category"
    SUMMARY = "summary"

    @property
    def thread_key(self) -> str:
        return CATEGORY_THREAD_KEY if self is InsightKind.CATEGORY else SUMMARY_THREAD_KEY


class AiCategory(str, Enum):
    CLOSED = "closed"
    INTERESTED = "interested"
    NOT_INTERESTED = "not_interested"

    def to_status(self) -> ContactStatus:
        return {
            AiCategory.CLOSED: ContactStatus.CLOSED,
            AiCategory.INTERESTED: ContactStatus.INTERESTED,
            AiCategory.NOT_INTERESTED: ContactStatus.NOT_INTERESTED,
        }[self]


class CategoryResult(BaseModel):
    category: AiCategory
    confidence: float = Field(0.5, ge=0.0, le=1.0)
    reason: str = Field("", max_length=160)


class SummaryResult(BaseModel):
    one_liner: str = Field("", max_length=380)
    highlights: list[str] = Field(default_factory=list)
    open_questions: list[str] = Field(default_factory=list)
    next_actions: list[str] = Field(default_factory=list)
    last_inbound: str = Field("", max_length=160)
    last_outbound: str = Field("", max_length=160)


@dataclass(slots=True)
class CacheEntry:
    """One conversation_summaries row."""

    contact_id: str
    thread_key: str
    payload: str
    last_email_at: datetime | None
    model: str | None
    updated_at: datetime | None = None

    def is_fresh(self, latest_email_at: datetime | None) -> bool:
        """Valid iff no email newer than the watermark has arrived."""
        if latest_email_at is None:
            return True
        if self.last_email_at is None:
            return False
        return self.last_email_at >= latest_email_at


@dataclass(slots=True)
class InsightResult:
    contact_id: str
    kind: InsightKind
    result: CategoryResult | SummaryResult
    cached: bool
    last_email_at: datetime | None
    model: str | None
    stored: bool = True
    rate_limited: bool = False
    applied_status: ContactStatus | None = None
    status_changed: bool = False

    def to_response(self) -> dict:
        body = {
            "ok": True,
            "contact_id": self.contact_id,
            self.kind.value: self.result.model_dump(mode="json"),
            "cached": self.cached,
            "stored": self.stored,
            "model": self.model,
            "last_email_at": self.last_email_at.isoformat() if self.last_email_at else None,
        }
        if self.rate_limited:
            body["rate_limited"] = True
        if self.kind is InsightKind.CATEGORY:
            body["applied_status"] = self.applied_status.value if self.applied_status else None
            body["status_changed"] = self.status_changed
        return body


@dataclass(slots=True)
class ClassifyBatchResult:
    offset: int
    next_offset: int
    batch_size: int
    processed: int = 0
    updated: int = 0
    cached: int = 0
    skipped: int = 0
    errors: int = 0
    cursor_persisted: bool = True

    def to_response(self) -> dict:
        return {
            "ok": True,
            "offset": self.offset,
            "next_offset": self.next_offset,
            "batch_size": self.batch_size,
            "processed": self.processed,
            "updated": self.updated,
            "cached": self.cached,
            "skipped": self.skipped,
            "errors": self.errors,
            "cursor_persisted": self.cursor_persisted,
        }
