"""
Domain models for the mailbox sync feature.

Parsed messages are plain dataclasses; the attachment metadata stored in
``emails.raw`` is a pydantic model because it crosses a storage boundary
and is validated strictly when read back.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class SyncPhase(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    LOCATING_MAILBOX = "locating-mailbox"
    LOCKING_MAILBOX = "locking-mailbox"
    LOADING_CURSOR = "loading-cursor"
    SEARCHING = "searching"
    FETCHING = "fetching"
    PROCESSING = "per-message-processing"
    ADVANCING_CURSOR = "advancing-cursor"
    DONE = "done"
    ERROR = "error"


class EmailDirection(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class ProcessOutcome(str, Enum):
    INSERTED = "inserted"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    DUPLICATE = "duplicate"  # lost an insert race, another path stored it
    MISSING = "missing"  # UID no longer on the server


@dataclass(slots=True)
class ParsedAddress:
    address: str
    name: str | None = None

    def display(self) -> str:
        return f"{self.name} <{self.address}>" if self.name else self.address


@dataclass(slots=True)
class ParsedAttachment:
    """One leaf MIME part that is not a message body."""

    filename: str | None
    content_type: str
    size: int
    content_id: str | None = None
    disposition: str | None = None
    content: bytes | None = None


@dataclass(slots=True)
class ParsedMessage:
    """
    Structured view of one raw message.

    Every field is optional in practice: anything the parser could not read
    is left at its empty value and the reason is appended to parse_errors.
    """

    from_addresses: list[ParsedAddress] = field(default_factory=list)
    to_addresses: list[ParsedAddress] = field(default_factory=list)
    cc_addresses: list[ParsedAddress] = field(default_factory=list)
    bcc_addresses: list[ParsedAddress] = field(default_factory=list)
    subject: str | None = None
    text_body: str | None = None
    html_body: str | None = None
    attachments: list[ParsedAttachment] = field(default_factory=list)
    message_id: str | None = None
    in_reply_to: str | None = None
    references: str | None = None
    date: datetime | None = None
    headers: list[tuple[str, str]] = field(default_factory=list)
    parse_errors: list[str] = field(default_factory=list)

    @property
    def sender(self) -> ParsedAddress | None:
        return self.from_addresses[0] if self.from_addresses else None

    @property
    def recipients(self) -> list[ParsedAddress]:
        """to + cc + bcc, de-duplicated by address, first occurrence wins."""
        seen: set[str] = set()
        result: list[ParsedAddress] = []
        for addr in (*self.to_addresses, *self.cc_addresses, *self.bcc_addresses):
            if addr.address in seen:
                continue
            seen.add(addr.address)
            result.append(addr)
        return result


class AttachmentMeta(BaseModel):
    """Attachment descriptor persisted in emails.raw.attachments."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True, strict=True)

    filename: str
    content_type: str = Field(alias="contentType")
    size: int = Field(ge=0)
    cid: str | None = None
    inline: bool = False
    url: str | None = None

    def to_raw(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


def attachments_complete(raw: dict | None) -> bool:
    """
    True when a stored raw payload carries attachment metadata that needs no
    re-materialization: the list exists, every entry validates and every
    entry either has a URL or had no bytes to upload (size 0). Unknown
    shapes count as incomplete.
    """
    if not isinstance(raw, dict):
        return False
    entries = raw.get("attachments")
    if not isinstance(entries, list):
        return False
    try:
        metas = [AttachmentMeta.model_validate(entry) for entry in entries]
    except ValidationError:
        return False
    return all(meta.url or meta.size == 0 for meta in metas)


@dataclass(slots=True)
class EmailRecord:
    """Column values for one emails row."""

    direction: EmailDirection
    gmail_uid: int | None
    contact_id: str | None
    message_id_header: str | None
    in_reply_to: str | None
    references: str | None
    from_email: str | None
    from_name: str | None
    to_email: str | None
    subject: str | None
    text_body: str | None
    html_body: str | None
    received_at: datetime | None
    raw: dict[str, Any]


@dataclass(slots=True)
class SyncRunResult:
    """Outcome of one sync or backfill run."""

    ok: bool = True
    phase: SyncPhase = SyncPhase.IDLE
    processed: int = 0
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    failed: int = 0
    failed_uids: list[int] = field(default_factory=list)
    cursor_before: int = 0
    last_uid: int = 0
    range_start: int | None = None
    range_end: int | None = None
    error: str | None = None
    failed_phase: SyncPhase | None = None
    failed_uid: int | None = None
    conflict: bool = False
    mailbox: str | None = None

    def to_response(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "ok": self.ok,
            "phase": self.phase.value,
            "processed": self.processed,
            "inserted": self.inserted,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "failed": self.failed,
            "failed_uids": self.failed_uids,
            "last_uid": self.last_uid,
            "range": {"start": self.range_start, "end": self.range_end},
        }
        if self.error:
            body["error"] = self.error
            body["failed_phase"] = self.failed_phase.value if self.failed_phase else None
            body["failed_uid"] = self.failed_uid
        return body
