"""
Follow-up scheduling triggered by outbound mail.

When the owner sends a message to a contact, the contact's last action
becomes that send and a follow-up is scheduled a fixed number of days later.
"""

from datetime import UTC, date, datetime, timedelta
from zoneinfo import ZoneInfo

from app.config import settings
from app.features.crm.domain.models import FollowupUpdate
from app.features.crm.repository.contact_repository import ContactRepository
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

OUTBOUND_NOTE = "Email sent"


def followup_note(days: int) -> str:
    return f"Automatic follow-up ({days} days)"


def local_date(moment: datetime, tz_name: str | None = None) -> date:
    """Calendar date of a timestamp in the CRM's timezone."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(ZoneInfo(tz_name or settings.CRM_TIMEZONE)).date()


def compute_followup(contact_id: str, sent_on: date, days: int) -> FollowupUpdate:
    return FollowupUpdate(
        contact_id=contact_id,
        last_action_at=sent_on,
        last_action_note=OUTBOUND_NOTE,
        next_action_at=sent_on + timedelta(days=days),
        next_action_note=followup_note(days),
    )


class FollowupService:
    """Outbound-send side effect on contact follow-up state."""

    def __init__(self, contacts=ContactRepository, days: int | None = None, tz_name: str | None = None):
        self.contacts = contacts
        self.days = days if days is not None else settings.followup_days()
        self.tz_name = tz_name

    async def handle_outbound(self, contact_id: str, sent_at: datetime | None) -> FollowupUpdate | None:
        """
        Schedule a follow-up for a contact the owner just wrote to.

        Returns the applied update, or None when nothing changed: unknown
        contact, inactive status, or a last action already on/after the send.
        """
        contact = await self.contacts.get(contact_id)
        if contact is None:
            logger.warning("Outbound follow-up skipped, contact missing", contact_id=contact_id)
            return None

        if contact.status is not None and contact.status.is_inactive:
            logger.debug(
                "Outbound follow-up suppressed for inactive contact",
                contact_id=contact_id,
                status=contact.status.value,
            )
            return None

        sent_on = local_date(sent_at or datetime.now(UTC), self.tz_name)
        if contact.last_action_at is not None and contact.last_action_at >= sent_on:
            logger.debug(
                "Outbound follow-up skipped, newer last action",
                contact_id=contact_id,
                last_action_at=contact.last_action_at.isoformat(),
                sent_on=sent_on.isoformat(),
            )
            return None

        update = compute_followup(contact_id, sent_on, self.days)
        applied = await self.contacts.apply_followup(update)
        if not applied:
            return None

        logger.info(
            "Follow-up scheduled",
            contact_id=contact_id,
            last_action_at=update.last_action_at.isoformat(),
            next_action_at=update.next_action_at.isoformat(),
        )
        return update


followup_service = FollowupService()
