import pytest

from app.features.crm.services.followup_service import FollowupService
from app.features.mail_sync.domain.models import SyncPhase
from app.features.mail_sync.services.backfill_service import BackfillService, EmailNotFoundError
from app.features.mail_sync.services.contact_resolver import ContactResolver
from app.features.mail_sync.services.message_processor import MessageProcessor
from app.features.mail_sync.services.sync_service import MailSyncService
from app.features.mail_sync.storage.attachment_materializer import AttachmentMaterializer

OWNER = "owner@example.com"
PDF = (("quote.pdf", b"%PDF", "application/pdf"),)


@pytest.fixture
def build_backfill(fake_emails, fake_contacts, fake_notifications, fake_uploader, sync_state_factory, lock):
    def _build(mailbox, state=None):
        processor = MessageProcessor(
            emails=fake_emails,
            notifications=fake_notifications,
            resolver=ContactResolver(contacts=fake_contacts, owner_address=OWNER),
            materializer=AttachmentMaterializer(uploader=fake_uploader, bucket="b", clock_ms=lambda: 7),
            followups=FollowupService(contacts=fake_contacts, days=10, tz_name="UTC"),
            owner_address=OWNER,
        )
        sync = MailSyncService(
            mailbox_factory=lambda: mailbox,
            state=state or sync_state_factory(0),
            processor=processor,
            lock=lock,
            batch_limit=10,
        )
        return BackfillService(sync=sync, emails=fake_emails)

    return _build


def _stored(uid, raw, email_id=None):
    return {
        "id": email_id or f"stored-{uid}",
        "gmail_uid": uid,
        "contact_id": None,
        "direction": "inbound",
        "from_email": "alice@example.com",
        "from_name": "Alice",
        "to_email": OWNER,
        "raw": raw,
    }


@pytest.mark.asyncio
async def test_contact_backfill_links_newest_messages(
    build_backfill, mailbox_factory, message_factory, fake_emails, sync_state_factory
):
    mailbox = mailbox_factory({uid: message_factory(sender="bob@x.com") for uid in (4, 9, 12)})
    state = sync_state_factory(3)
    service = build_backfill(mailbox, state)

    result = await service.backfill_contact([" Bob@X.com ", ""], contact_id="c-9", limit=2)

    assert result.ok is True
    assert result.inserted == 2
    assert mailbox.fetched == [9, 12]
    assert {row["contact_id"] for row in fake_emails.rows.values()} == {"c-9"}
    assert 'FROM "bob@x.com"' in mailbox.criteria[0]
    assert state.advances == []


@pytest.mark.asyncio
async def test_contact_backfill_patches_unlinked_rows(build_backfill, mailbox_factory, message_factory, fake_emails):
    fake_emails.rows[5] = _stored(5, {"attachments": []})
    mailbox = mailbox_factory({5: message_factory()})

    result = await build_backfill(mailbox).backfill_contact(["alice@example.com"], contact_id="c-1")

    assert result.updated == 1
    assert fake_emails.rows[5]["contact_id"] == "c-1"


@pytest.mark.asyncio
async def test_contact_backfill_requires_an_address(build_backfill, mailbox_factory):
    with pytest.raises(ValueError):
        await build_backfill(mailbox_factory({})).backfill_contact(["  "])


@pytest.mark.asyncio
async def test_contact_backfill_reports_fetch_failure(build_backfill, mailbox_factory, message_factory):
    mailbox = mailbox_factory({1: message_factory(), 2: message_factory()}, fail_fetch_at=2)

    result = await build_backfill(mailbox).backfill_contact(["alice@example.com"])

    assert result.ok is False
    assert result.failed_phase is SyncPhase.FETCHING
    assert result.processed == 1
    assert mailbox.closed is True


@pytest.mark.asyncio
async def test_attachment_backfill_only_touches_incomplete_rows(
    build_backfill, mailbox_factory, message_factory, fake_emails, fake_uploader
):
    complete = {"attachments": [{"filename": "a.pdf", "contentType": "application/pdf", "size": 4,
                                 "cid": None, "inline": False, "url": "https://storage.test/a"}]}
    fake_emails.rows[1] = _stored(1, complete)
    fake_emails.rows[2] = _stored(2, {"uid": 2, "attachments": [{"filename": "quote.pdf"}]})
    mailbox = mailbox_factory({uid: message_factory(attachments=PDF) for uid in (1, 2, 3)})

    summary = await build_backfill(mailbox).backfill_attachments(count=10)

    assert summary == {"ok": True, "scanned": 3, "updated": 1, "skipped": 2, "failed": 0}
    assert mailbox.criteria[0] == "UID 1:3"
    assert mailbox.fetched == [2]
    email_id, fields = fake_emails.updates[0]
    assert email_id == "stored-2"
    assert fields["raw"]["attachments"][0]["url"] == "https://storage.test/b/gmail/2/0-7-quote.pdf"
    assert len(fake_uploader.uploads) == 1


@pytest.mark.asyncio
async def test_ensure_returns_stored_metadata_when_complete(build_backfill, mailbox_factory, fake_emails):
    meta = {"filename": "a.pdf", "contentType": "application/pdf", "size": 4,
            "cid": None, "inline": False, "url": "https://storage.test/a"}
    fake_emails.rows[8] = _stored(8, {"attachments": [meta]}, email_id="e-8")
    mailbox = mailbox_factory({})

    attachments = await build_backfill(mailbox).ensure_email_attachments("e-8")

    assert attachments == [meta]
    assert mailbox.connected is False


@pytest.mark.asyncio
async def test_ensure_rematerializes_incomplete_metadata(
    build_backfill, mailbox_factory, message_factory, fake_emails
):
    fake_emails.rows[8] = _stored(8, {"uid": 8}, email_id="e-8")
    mailbox = mailbox_factory({8: message_factory(attachments=PDF)})

    attachments = await build_backfill(mailbox).ensure_email_attachments("e-8")

    assert [a["filename"] for a in attachments] == ["quote.pdf"]
    assert attachments[0]["url"].endswith("gmail/8/0-7-quote.pdf")
    assert mailbox.closed is True


@pytest.mark.asyncio
async def test_ensure_unknown_email(build_backfill, mailbox_factory):
    with pytest.raises(EmailNotFoundError):
        await build_backfill(mailbox_factory({})).ensure_email_attachments("missing")
