"""
Daily follow-up reminders.

Every active contact whose next action falls on today (in the CRM timezone)
gets one followup_due notification per day.
"""

from datetime import UTC, date, datetime, time, timedelta
from typing import Any
from zoneinfo import ZoneInfo

from app.config import settings
from app.features.crm.domain.models import NotificationType
from app.features.crm.repository.contact_repository import ContactRepository
from app.features.crm.repository.notification_repository import NotificationRepository
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class ReminderService:
    def __init__(
        self,
        contacts=ContactRepository,
        notifications=NotificationRepository,
        tz_name: str | None = None,
    ):
        self.contacts = contacts
        self.notifications = notifications
        self.tz_name = tz_name

    def _today(self) -> tuple[date, datetime, datetime]:
        tz = ZoneInfo(self.tz_name or settings.CRM_TIMEZONE)
        today = datetime.now(tz).date()
        day_start = datetime.combine(today, time.min, tzinfo=tz).astimezone(UTC)
        return today, day_start, day_start + timedelta(days=1)

    async def run(self) -> dict[str, Any]:
        today, day_start, day_end = self._today()
        due = await self.contacts.due_followups(today)

        notified = 0
        already = 0
        for contact in due:
            if await self.notifications.exists_for_contact_on(
                NotificationType.FOLLOWUP_DUE, contact.id, day_start, day_end
            ):
                already += 1
                continue
            await self.notifications.create(
                NotificationType.FOLLOWUP_DUE,
                title=f"Follow-up due: {contact.label()}",
                body=contact.next_action_note,
                contact_id=contact.id,
            )
            notified += 1

        logger.info(
            "Follow-up reminders processed",
            date=today.isoformat(),
            due=len(due),
            notified=notified,
            already_notified=already,
        )
        return {"ok": True, "date": today.isoformat(), "due": len(due), "notified": notified}


reminder_service = ReminderService()
