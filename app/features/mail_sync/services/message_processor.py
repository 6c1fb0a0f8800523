"""
Per-message pipeline shared by the incremental sync and the backfills.

parse -> direction -> contact -> dedupe on gmail_uid -> insert or patch ->
notification (new inbound only) -> follow-up (outbound with a contact).
"""

from typing import Any

from app.config import settings
from app.db.helpers import DatabaseError
from app.features.crm.domain.models import NotificationType
from app.features.crm.repository.notification_repository import NotificationRepository
from app.features.crm.services.followup_service import FollowupService, followup_service
from app.features.mail_sync.domain.models import (
    AttachmentMeta,
    EmailDirection,
    EmailRecord,
    ParsedMessage,
    ProcessOutcome,
    attachments_complete,
)
from app.features.mail_sync.parsing.message_parser import parse_message
from app.features.mail_sync.repository.email_repository import EmailRepository
from app.features.mail_sync.services.contact_resolver import ContactResolver, contact_resolver
from app.features.mail_sync.storage.attachment_materializer import AttachmentMaterializer
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

SNIPPET_LENGTH = 140


def snippet(text: str | None, limit: int = SNIPPET_LENGTH) -> str | None:
    """Whitespace-collapsed preview, cut with an ellipsis past limit characters."""
    if not text:
        return None
    collapsed = " ".join(text.split())
    if not collapsed:
        return None
    if len(collapsed) <= limit:
        return collapsed
    return collapsed[: limit - 1].rstrip() + "…"


def recipients_display(parsed: ParsedMessage) -> str | None:
    addresses = [addr.address for addr in parsed.recipients]
    return ", ".join(addresses) or None


def raw_payload(uid: int, parsed: ParsedMessage, attachments: list[AttachmentMeta]) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "uid": uid,
        "cc": [addr.display() for addr in parsed.cc_addresses],
        "bcc": [addr.display() for addr in parsed.bcc_addresses],
        "headers": [{"name": name, "value": value} for name, value in parsed.headers],
        "attachments": [meta.to_raw() for meta in attachments],
    }
    if parsed.parse_errors:
        payload["parse_errors"] = parsed.parse_errors
    return payload


class MessageProcessor:
    def __init__(
        self,
        emails=EmailRepository,
        notifications=NotificationRepository,
        resolver: ContactResolver | None = None,
        materializer: AttachmentMaterializer | None = None,
        followups: FollowupService | None = None,
        owner_address: str | None = None,
    ):
        self.emails = emails
        self.notifications = notifications
        self.resolver = resolver or contact_resolver
        self.materializer = materializer or AttachmentMaterializer()
        self.followups = followups or followup_service
        self.owner_address = owner_address if owner_address is not None else settings.owner_address()

    def direction_of(self, parsed: ParsedMessage) -> EmailDirection:
        sender = parsed.sender
        if self.owner_address and sender and sender.address == self.owner_address:
            return EmailDirection.OUTBOUND
        return EmailDirection.INBOUND

    async def resolve_contact(self, parsed: ParsedMessage, direction: EmailDirection) -> str | None:
        if direction is EmailDirection.OUTBOUND:
            return await self.resolver.resolve(addr.address for addr in parsed.recipients)
        sender = parsed.sender
        return await self.resolver.resolve([sender.address] if sender else [])

    async def process(self, uid: int, raw: bytes | None, contact_id: str | None = None) -> ProcessOutcome:
        """
        Store or patch one fetched message.

        contact_id, when given, overrides resolution (contact backfill).
        Raises on datastore failures other than a duplicate uid.
        """
        if raw is None:
            logger.warning("Message vanished before fetch", uid=uid)
            return ProcessOutcome.MISSING

        parsed = parse_message(raw)
        direction = self.direction_of(parsed)
        if contact_id is None:
            contact_id = await self.resolve_contact(parsed, direction)

        existing = await self.emails.get_by_uid(uid)
        if existing:
            outcome = await self._patch_existing(uid, existing, parsed, contact_id)
            # the stored row is authoritative for direction and contact
            contact_id = existing.get("contact_id") or contact_id
            direction = EmailDirection(existing.get("direction") or direction.value)
        else:
            outcome, email_id = await self._insert_new(uid, parsed, direction, contact_id)
            if outcome is ProcessOutcome.INSERTED and direction is EmailDirection.INBOUND:
                await self._notify_inbound(parsed, contact_id, email_id)

        if (
            outcome is not ProcessOutcome.DUPLICATE
            and direction is EmailDirection.OUTBOUND
            and contact_id
        ):
            await self.followups.handle_outbound(str(contact_id), parsed.date)

        logger.debug(
            "Message processed",
            uid=uid,
            outcome=outcome.value,
            direction=direction.value,
            contact_id=contact_id,
        )
        return outcome

    async def _insert_new(
        self, uid: int, parsed: ParsedMessage, direction: EmailDirection, contact_id: str | None
    ) -> tuple[ProcessOutcome, str | None]:
        attachments = await self.materializer.materialize(uid, parsed.attachments)
        sender = parsed.sender
        record = EmailRecord(
            direction=direction,
            gmail_uid=uid,
            contact_id=contact_id,
            message_id_header=parsed.message_id,
            in_reply_to=parsed.in_reply_to,
            references=parsed.references,
            from_email=sender.address if sender else None,
            from_name=sender.name if sender else None,
            to_email=recipients_display(parsed),
            subject=parsed.subject,
            text_body=parsed.text_body,
            html_body=parsed.html_body,
            received_at=parsed.date,
            raw=raw_payload(uid, parsed, attachments),
        )
        try:
            email_id = await self.emails.insert(record)
        except DatabaseError as e:
            if e.is_unique_violation:
                logger.info("Message stored concurrently, skipping", uid=uid)
                return ProcessOutcome.DUPLICATE, None
            raise
        return ProcessOutcome.INSERTED, email_id

    async def _patch_existing(
        self, uid: int, existing: dict, parsed: ParsedMessage, contact_id: str | None
    ) -> ProcessOutcome:
        fields = await self.stale_fields(uid, existing, parsed, contact_id)
        if not fields:
            return ProcessOutcome.UNCHANGED
        await self.emails.update_fields(str(existing["id"]), fields)
        logger.info("Stored message patched", uid=uid, fields=sorted(fields))
        return ProcessOutcome.UPDATED

    async def stale_fields(
        self, uid: int, existing: dict, parsed: ParsedMessage, contact_id: str | None
    ) -> dict[str, Any]:
        """Columns of an existing row that are missing or out of date."""
        fields: dict[str, Any] = {}
        if existing.get("contact_id") is None and contact_id:
            fields["contact_id"] = contact_id

        sender = parsed.sender
        current = {
            "from_email": sender.address if sender else None,
            "from_name": sender.name if sender else None,
            "to_email": recipients_display(parsed),
        }
        for column, value in current.items():
            if value is not None and existing.get(column) != value:
                fields[column] = value

        stored_raw = existing.get("raw")
        if not attachments_complete(stored_raw):
            attachments = await self.materializer.materialize(uid, parsed.attachments)
            base = stored_raw if isinstance(stored_raw, dict) else {}
            fields["raw"] = {**base, **raw_payload(uid, parsed, attachments)}
        return fields

    async def _notify_inbound(
        self, parsed: ParsedMessage, contact_id: str | None, email_id: str | None
    ) -> None:
        sender = parsed.sender
        who = (sender.name or sender.address) if sender else "unknown"
        try:
            await self.notifications.create(
                NotificationType.EMAIL_RECEIVED,
                title=f"New email from {who}",
                body=parsed.subject or snippet(parsed.text_body),
                contact_id=contact_id,
                email_id=email_id,
            )
        except DatabaseError as e:
            # the email row is committed; a lost notification must not block the cursor
            logger.warning("Inbound notification failed", email_id=email_id, error=str(e))
