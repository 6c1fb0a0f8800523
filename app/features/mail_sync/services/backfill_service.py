"""
Out-of-band passes over mail that the incremental sync already moved past.

- contact backfill: pull every message to/from a set of addresses and link it
- attachment backfill: re-materialize attachment metadata for recent rows
- ensure: the same for one stored email

None of these touch the sync cursor.
"""

from typing import Any

from app.config import settings
from app.features.mail_sync.domain.models import SyncPhase, SyncRunResult, attachments_complete
from app.features.mail_sync.parsing.message_parser import parse_message
from app.features.mail_sync.repository.email_repository import EmailRepository
from app.features.mail_sync.services.imap_client import ImapMailbox, build_address_query
from app.features.mail_sync.services.message_processor import MessageProcessor, raw_payload
from app.features.mail_sync.services.sync_service import (
    MailSyncService,
    enter,
    fail,
    mail_sync_service,
    record_outcome,
)
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

CONTACT_BACKFILL_DEFAULT = 50
CONTACT_BACKFILL_MAX = 200


class EmailNotFoundError(Exception):
    """No stored email with the requested id."""


class BackfillService:
    def __init__(self, sync: MailSyncService | None = None, emails=EmailRepository):
        self.sync = sync or mail_sync_service
        self.emails = emails

    @property
    def processor(self) -> MessageProcessor:
        return self.sync.processor

    async def backfill_contact(
        self,
        addresses: list[str],
        contact_id: str | None = None,
        limit: int | None = None,
    ) -> SyncRunResult:
        """
        Run the per-message pipeline over the newest `limit` messages that
        mention any of the addresses. With contact_id, those messages are
        linked to that contact instead of being resolved.
        """
        cleaned = sorted({a.strip().lower() for a in addresses if a and a.strip()})
        if not cleaned:
            raise ValueError("At least one address is required")
        limit = min(CONTACT_BACKFILL_MAX, max(1, limit or CONTACT_BACKFILL_DEFAULT))

        result = SyncRunResult()
        try:
            async with self.sync.session(result) as mailbox:
                enter(result, SyncPhase.SEARCHING, addresses=cleaned)
                uids = (await mailbox.search_uids(build_address_query(cleaned)))[-limit:]
                if uids:
                    result.range_start, result.range_end = uids[0], uids[-1]
                await self._process_all(mailbox, uids, result, contact_id)
        except Exception as e:
            fail(result, e)
            logger.error("Contact backfill failed", error=result.error, addresses=cleaned)
            return result

        enter(result, SyncPhase.DONE)
        logger.info(
            "Contact backfill completed",
            addresses=cleaned,
            contact_id=contact_id,
            processed=result.processed,
            inserted=result.inserted,
            updated=result.updated,
            failed=result.failed,
        )
        return result

    async def _process_all(
        self, mailbox: ImapMailbox, uids: list[int], result: SyncRunResult, contact_id: str | None
    ) -> None:
        for uid in uids:
            enter(result, SyncPhase.FETCHING, uid=uid)
            raw = await mailbox.fetch(uid)
            enter(result, SyncPhase.PROCESSING, uid=uid)
            try:
                outcome = await self.processor.process(uid, raw, contact_id=contact_id)
            except Exception as e:
                result.failed += 1
                result.failed_uids.append(uid)
                logger.error("Backfill message failed", uid=uid, error=str(e))
                continue
            record_outcome(result, outcome)

    async def backfill_attachments(self, count: int | None = None) -> dict[str, Any]:
        """Re-materialize attachments for the newest `count` UIDs whose metadata is incomplete."""
        count = settings.attachment_backfill_count(count)
        result = SyncRunResult()
        scanned = updated = skipped = failed = 0
        try:
            async with self.sync.session(result) as mailbox:
                enter(result, SyncPhase.SEARCHING, count=count)
                uids = await self._recent_uids(mailbox, count)
                rows = await self.emails.get_by_uids(uids)

                for uid in uids:
                    scanned += 1
                    row = rows.get(uid)
                    if row is None or attachments_complete(row.get("raw")):
                        skipped += 1
                        continue
                    enter(result, SyncPhase.FETCHING, uid=uid)
                    raw = await mailbox.fetch(uid)
                    enter(result, SyncPhase.PROCESSING, uid=uid)
                    try:
                        if await self._rematerialize(uid, row, raw):
                            updated += 1
                        else:
                            skipped += 1
                    except Exception as e:
                        failed += 1
                        logger.error("Attachment backfill failed for message", uid=uid, error=str(e))
        except Exception as e:
            fail(result, e)
            logger.error("Attachment backfill failed", error=result.error)
            return {"ok": False, "error": result.error, "scanned": scanned, "updated": updated}

        logger.info(
            "Attachment backfill completed",
            scanned=scanned,
            updated=updated,
            skipped=skipped,
            failed=failed,
        )
        return {"ok": True, "scanned": scanned, "updated": updated, "skipped": skipped, "failed": failed}

    async def _recent_uids(self, mailbox: ImapMailbox, count: int) -> list[int]:
        uid_next = await mailbox.uid_next()
        if uid_next:
            start = max(1, uid_next - count)
            uids = [u for u in await mailbox.search_uids(f"UID {start}:{uid_next - 1}") if u < uid_next]
            if uids:
                return uids[-count:]
        return (await mailbox.search_uids("ALL"))[-count:]

    async def _rematerialize(self, uid: int, row: dict, raw: bytes | None) -> bool:
        if raw is None:
            logger.warning("Message vanished before attachment backfill", uid=uid)
            return False
        parsed = parse_message(raw)
        attachments = await self.processor.materializer.materialize(uid, parsed.attachments)
        stored_raw = row.get("raw") if isinstance(row.get("raw"), dict) else {}
        await self.emails.update_fields(
            str(row["id"]), {"raw": {**stored_raw, **raw_payload(uid, parsed, attachments)}}
        )
        return True

    async def ensure_email_attachments(self, email_id: str) -> list[dict]:
        """
        Attachment metadata for one stored email, re-materialized from the
        mailbox first when incomplete.
        """
        row = await self.emails.get_by_id(email_id)
        if row is None:
            raise EmailNotFoundError(f"Email {email_id} not found")

        stored_raw = row.get("raw") if isinstance(row.get("raw"), dict) else {}
        uid = row.get("gmail_uid")
        if attachments_complete(stored_raw) or uid is None:
            return list(stored_raw.get("attachments") or [])

        result = SyncRunResult()
        # read-only single fetch, no need to wait on a running sync
        async with self.sync.session(result, locked=False) as mailbox:
            raw = await mailbox.fetch(int(uid))
        await self._rematerialize(int(uid), row, raw)
        refreshed = await self.emails.get_by_id(email_id)
        refreshed_raw = (refreshed or {}).get("raw") or {}
        return list(refreshed_raw.get("attachments") or [])


backfill_service = BackfillService()
