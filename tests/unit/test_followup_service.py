from datetime import UTC, date, datetime

import pytest

from app.features.crm.domain.models import ContactStatus
from app.features.crm.services.followup_service import (
    OUTBOUND_NOTE,
    FollowupService,
    compute_followup,
    local_date,
)
from app.features.crm.services.reminder_service import ReminderService


class TestLocalDate:
    def test_naive_is_treated_as_utc(self):
        assert local_date(datetime(2024, 2, 1, 23, 30), "UTC") == date(2024, 2, 1)

    def test_converts_into_crm_timezone(self):
        moment = datetime(2024, 2, 1, 23, 30, tzinfo=UTC)
        assert local_date(moment, "Europe/Madrid") == date(2024, 2, 2)


def test_compute_followup_adds_days():
    update = compute_followup("c-1", date(2024, 2, 1), 10)

    assert update.next_action_at == date(2024, 2, 11)
    assert update.last_action_note == OUTBOUND_NOTE
    assert update.next_action_note == "Automatic follow-up (10 days)"


@pytest.mark.asyncio
async def test_interested_contact_gets_followup(fake_contacts, contact_factory):
    fake_contacts.contacts = [contact_factory("c-1", "bob@x.com", status=ContactStatus.INTERESTED)]
    service = FollowupService(contacts=fake_contacts, days=10, tz_name="UTC")

    update = await service.handle_outbound("c-1", datetime(2024, 2, 1, 12, 0, tzinfo=UTC))

    assert update is not None
    contact = fake_contacts.contacts[0]
    assert contact.last_action_at == date(2024, 2, 1)
    assert contact.last_action_note == "Email sent"
    assert contact.next_action_at == date(2024, 2, 11)
    assert contact.status is ContactStatus.INTERESTED


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [ContactStatus.CLOSED, ContactStatus.NOT_INTERESTED])
async def test_inactive_contact_is_left_alone(fake_contacts, contact_factory, status):
    fake_contacts.contacts = [contact_factory("c-1", "bob@x.com", status=status)]
    service = FollowupService(contacts=fake_contacts, days=10, tz_name="UTC")

    assert await service.handle_outbound("c-1", datetime(2024, 2, 1, tzinfo=UTC)) is None
    assert fake_contacts.followups == []
    assert fake_contacts.contacts[0].next_action_at is None


@pytest.mark.asyncio
async def test_older_send_does_not_override_newer_action(fake_contacts, contact_factory):
    fake_contacts.contacts = [
        contact_factory("c-1", "bob@x.com", last_action_at=date(2024, 3, 1), next_action_at=date(2024, 3, 5))
    ]
    service = FollowupService(contacts=fake_contacts, days=10, tz_name="UTC")

    assert await service.handle_outbound("c-1", datetime(2024, 2, 1, tzinfo=UTC)) is None
    assert fake_contacts.contacts[0].next_action_at == date(2024, 3, 5)


@pytest.mark.asyncio
async def test_same_day_send_is_a_noop(fake_contacts, contact_factory):
    fake_contacts.contacts = [contact_factory("c-1", "bob@x.com", last_action_at=date(2024, 2, 1))]
    service = FollowupService(contacts=fake_contacts, days=10, tz_name="UTC")

    assert await service.handle_outbound("c-1", datetime(2024, 2, 1, 18, 0, tzinfo=UTC)) is None


@pytest.mark.asyncio
async def test_missing_contact(fake_contacts):
    service = FollowupService(contacts=fake_contacts, days=10, tz_name="UTC")

    assert await service.handle_outbound("nope", datetime(2024, 2, 1, tzinfo=UTC)) is None


@pytest.mark.asyncio
async def test_reminders_notify_once_per_day(fake_contacts, fake_notifications, contact_factory):
    today = datetime.now(UTC).date()
    fake_contacts.contacts = [
        contact_factory("c-1", "a@x.com", name="Ana", next_action_at=today, next_action_note="Call back"),
        contact_factory("c-2", "b@x.com", next_action_at=date(2000, 1, 1)),
        contact_factory("c-3", "c@x.com", status=ContactStatus.CLOSED, next_action_at=today),
    ]
    service = ReminderService(contacts=fake_contacts, notifications=fake_notifications, tz_name="UTC")

    first = await service.run()
    second = await service.run()

    assert first == {"ok": True, "date": today.isoformat(), "due": 1, "notified": 1}
    assert second["notified"] == 0
    assert fake_notifications.created == [
        {
            "type": "followup_due",
            "title": "Follow-up due: Ana",
            "body": "Call back",
            "contact_id": "c-1",
            "email_id": None,
        }
    ]
