"""
Postgres repository for the contacts table.
"""

from datetime import date

from app.db.helpers import escape_like, execute_query, fetch_all, fetch_one
from app.features.crm.domain.models import Contact, ContactStatus, FollowupUpdate
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

_CONTACT_COLUMNS = """
    id, name, email, status, last_action_at, last_action_note,
    next_action_at, next_action_note, created_at
"""


class ContactRepository:
    """Persistence helpers for contacts."""

    @staticmethod
    async def get(contact_id: str) -> Contact | None:
        row = await fetch_one(
            f"SELECT {_CONTACT_COLUMNS} FROM contacts WHERE id = %s",
            (contact_id,),
        )
        return Contact.from_row(row) if row else None

    @staticmethod
    async def find_by_exact_emails(candidates: list[str]) -> list[Contact]:
        """Contacts whose whole email field equals one of the candidates, case-insensitive."""
        if not candidates:
            return []
        rows = await fetch_all(
            f"""
            SELECT {_CONTACT_COLUMNS}
            FROM contacts
            WHERE lower(btrim(email)) = ANY(%s)
            ORDER BY created_at ASC, id ASC
            """,
            (candidates,),
        )
        return [Contact.from_row(row) for row in rows]

    @staticmethod
    async def find_containing_emails(candidates: list[str]) -> list[Contact]:
        """Prefilter: contacts whose email field mentions any candidate as a substring."""
        if not candidates:
            return []
        patterns = [f"%{escape_like(candidate)}%" for candidate in candidates]
        rows = await fetch_all(
            f"""
            SELECT {_CONTACT_COLUMNS}
            FROM contacts
            WHERE email ILIKE ANY(%s)
            ORDER BY created_at ASC, id ASC
            """,
            (patterns,),
        )
        return [Contact.from_row(row) for row in rows]

    @staticmethod
    async def list_page(offset: int, limit: int) -> list[Contact]:
        rows = await fetch_all(
            f"""
            SELECT {_CONTACT_COLUMNS}
            FROM contacts
            ORDER BY created_at ASC, id ASC
            OFFSET %s LIMIT %s
            """,
            (offset, limit),
        )
        return [Contact.from_row(row) for row in rows]

    @staticmethod
    async def update_status(contact_id: str, status: ContactStatus) -> None:
        """Write a status; inactive statuses also drop any scheduled follow-up."""
        if status.is_inactive:
            query = """
                UPDATE contacts
                SET status = %s, next_action_at = NULL, next_action_note = NULL, updated_at = NOW()
                WHERE id = %s
            """
        else:
            query = "UPDATE contacts SET status = %s, updated_at = NOW() WHERE id = %s"
        await execute_query(query, (status.value, contact_id))
        logger.info("Contact status updated", contact_id=contact_id, status=status.value)

    @staticmethod
    async def apply_followup(update: FollowupUpdate) -> bool:
        """
        Record an outbound send and schedule the next follow-up.

        Guarded in SQL as well: a row whose status became inactive or whose
        last action moved past this date in the meantime is left alone.
        """
        count = await execute_query(
            """
            UPDATE contacts
            SET last_action_at = %s,
                last_action_note = %s,
                next_action_at = %s,
                next_action_note = %s,
                updated_at = NOW()
            WHERE id = %s
              AND (status IS NULL OR status NOT IN (%s, %s))
              AND (last_action_at IS NULL OR last_action_at < %s)
            """,
            (
                update.last_action_at,
                update.last_action_note,
                update.next_action_at,
                update.next_action_note,
                update.contact_id,
                ContactStatus.CLOSED.value,
                ContactStatus.NOT_INTERESTED.value,
                update.last_action_at,
            ),
        )
        return count > 0

    @staticmethod
    async def due_followups(today: date) -> list[Contact]:
        rows = await fetch_all(
            f"""
            SELECT {_CONTACT_COLUMNS}
            FROM contacts
            WHERE next_action_at = %s
              AND (status IS NULL OR status NOT IN (%s, %s))
            ORDER BY created_at ASC, id ASC
            """,
            (today, ContactStatus.CLOSED.value, ContactStatus.NOT_INTERESTED.value),
        )
        return [Contact.from_row(row) for row in rows]
