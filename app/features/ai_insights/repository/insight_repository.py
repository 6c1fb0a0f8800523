"""
Postgres repository for conversation_summaries, the AI insight cache.

Rows are keyed by (contact_id, thread_key); thread_key tells a category
entry from a summary entry for the same contact.
"""

from app.db.helpers import DatabaseError, execute_query, fetch_all, fetch_one
from app.features.ai_insights.domain.models import CacheEntry
from app.features.crm.domain.models import address_token_pattern
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class InsightRepository:
    """Persistence helpers for cached insights and the emails they are built from."""

    @staticmethod
    async def get_entry(contact_id: str, thread_key: str) -> CacheEntry | None:
        try:
            row = await fetch_one(
                """
                SELECT contact_id, thread_key, summary, last_email_at, model, updated_at
                FROM conversation_summaries
                WHERE contact_id = %s AND thread_key = %s
                """,
                (contact_id, thread_key),
            )
        except DatabaseError as e:
            if e.is_missing_table:
                logger.warning("conversation_summaries table missing, cache disabled")
                return None
            raise
        if not row:
            return None
        return CacheEntry(
            contact_id=str(row["contact_id"]),
            thread_key=row["thread_key"],
            payload=row["summary"],
            last_email_at=row.get("last_email_at"),
            model=row.get("model"),
            updated_at=row.get("updated_at"),
        )

    @staticmethod
    async def upsert_entry(entry: CacheEntry) -> bool:
        """Write the entry; False when the cache table does not exist."""
        try:
            await execute_query(
                """
                INSERT INTO conversation_summaries
                    (contact_id, thread_key, summary, last_email_at, model, updated_at)
                VALUES (%s, %s, %s, %s, %s, NOW())
                ON CONFLICT (contact_id, thread_key)
                DO UPDATE SET
                    summary = EXCLUDED.summary,
                    last_email_at = EXCLUDED.last_email_at,
                    model = EXCLUDED.model,
                    updated_at = NOW()
                """,
                (entry.contact_id, entry.thread_key, entry.payload, entry.last_email_at, entry.model),
            )
        except DatabaseError as e:
            if e.is_missing_table:
                logger.warning("conversation_summaries table missing, entry not stored")
                return False
            raise
        return True

    @staticmethod
    async def recent_emails(contact_id: str, addresses: list[str], limit: int) -> list[dict]:
        """
        Newest emails for a contact, newest first: rows linked by contact_id
        plus rows whose from/to hold one of the contact's addresses as a
        whole address token.
        """
        patterns = [address_token_pattern(address) for address in addresses]
        return await fetch_all(
            """
            SELECT id, direction, from_email, from_name, to_email, subject,
                   text_body, html_body, received_at, created_at
            FROM emails
            WHERE contact_id = %s
               OR from_email ~* ANY(%s::text[])
               OR to_email ~* ANY(%s::text[])
            ORDER BY COALESCE(received_at, created_at) DESC
            LIMIT %s
            """,
            (contact_id, patterns, patterns, limit),
        )
