"""
Postgres repository for synced emails.

gmail_uid carries a unique index and is the only dedup key for synced mail.
"""

from typing import Any

from psycopg import sql
from psycopg.types.json import Jsonb

from app.db.helpers import execute_query, fetch_all, fetch_one, fetch_val
from app.features.mail_sync.domain.models import EmailRecord

# Columns a retry may touch on an existing row; direction and gmail_uid are immutable
UPDATABLE_COLUMNS = frozenset({"contact_id", "from_email", "from_name", "to_email", "raw"})

_EMAIL_COLUMNS = """
    id, contact_id, direction, gmail_uid, from_email, from_name, to_email,
    subject, received_at, created_at, raw
"""


class EmailRepository:
    """Persistence helpers for emails."""

    @staticmethod
    async def get_by_uid(uid: int) -> dict | None:
        return await fetch_one(
            f"SELECT {_EMAIL_COLUMNS} FROM emails WHERE gmail_uid = %s",
            (uid,),
        )

    @staticmethod
    async def get_by_id(email_id: str) -> dict | None:
        return await fetch_one(f"SELECT {_EMAIL_COLUMNS} FROM emails WHERE id = %s", (email_id,))

    @staticmethod
    async def get_by_uids(uids: list[int]) -> dict[int, dict]:
        if not uids:
            return {}
        rows = await fetch_all(
            f"SELECT {_EMAIL_COLUMNS} FROM emails WHERE gmail_uid = ANY(%s)",
            (uids,),
        )
        return {int(row["gmail_uid"]): row for row in rows}

    @staticmethod
    async def insert(record: EmailRecord) -> str:
        """Insert one row and return its id. Raises DatabaseError (23505) on a duplicate uid."""
        email_id = await fetch_val(
            """
            INSERT INTO emails (
                contact_id, direction, gmail_uid, message_id_header, in_reply_to,
                "references", from_email, from_name, to_email, subject,
                text_body, html_body, received_at, raw
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING id
            """,
            (
                record.contact_id,
                record.direction.value,
                record.gmail_uid,
                record.message_id_header,
                record.in_reply_to,
                record.references,
                record.from_email,
                record.from_name,
                record.to_email,
                record.subject,
                record.text_body,
                record.html_body,
                record.received_at,
                Jsonb(record.raw),
            ),
        )
        return str(email_id)

    @staticmethod
    async def update_fields(email_id: str, fields: dict[str, Any]) -> int:
        unknown = set(fields) - UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Refusing to update columns: {sorted(unknown)}")
        if not fields:
            return 0

        assignments = sql.SQL(", ").join(
            sql.SQL("{} = %s").format(sql.Identifier(column)) for column in fields
        )
        query = sql.SQL("UPDATE emails SET {} WHERE id = %s").format(assignments)
        params = tuple(Jsonb(v) if column == "raw" else v for column, v in fields.items())
        return await execute_query(query, (*params, email_id))

