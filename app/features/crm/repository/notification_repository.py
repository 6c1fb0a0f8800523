"""
Postgres repository for the notifications feed.
"""

from app.db.helpers import fetch_val
from app.features.crm.domain.models import NotificationType


class NotificationRepository:
    """Insert-only access; the UI owns the read flag."""

    @staticmethod
    async def create(
        notification_type: NotificationType,
        title: str,
        body: str | None = None,
        contact_id: str | None = None,
        email_id: str | None = None,
    ) -> str:
        notification_id = await fetch_val(
            """
            INSERT INTO notifications (type, contact_id, email_id, title, body, is_read)
            VALUES (%s, %s, %s, %s, %s, false)
            RETURNING id
            """,
            (notification_type.value, contact_id, email_id, title, body),
        )
        return str(notification_id)

    @staticmethod
    async def exists_for_contact_on(
        notification_type: NotificationType, contact_id: str, day_start, day_end
    ) -> bool:
        found = await fetch_val(
            """
            SELECT EXISTS (
                SELECT 1 FROM notifications
                WHERE type = %s AND contact_id = %s
                  AND created_at >= %s AND created_at < %s
            )
            """,
            (notification_type.value, contact_id, day_start, day_end),
        )
        return bool(found)
