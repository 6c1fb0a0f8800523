"""
Persisted mailbox cursor (gmail_state) and the per-mailbox run lock.

gmail_state is a singleton row (id = 1) holding the highest UID whose
processing finished. Writes go through GREATEST so the cursor never moves
backward, even if two runs race on the final write.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from app.db.helpers import DatabaseError, fetch_val, with_db_retry
from app.db.pool import db_pool
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

STATE_ROW_ID = 1
LOCK_NAMESPACE = "mail_sync"


class SyncStateRepository:
    """Persistence helpers for gmail_state."""

    @staticmethod
    @with_db_retry(max_retries=2)
    async def get_last_uid() -> int:
        """Current cursor; creates the row at zero on first use."""
        value = await fetch_val(
            """
            WITH seeded AS (
                INSERT INTO gmail_state (id, last_uid, updated_at)
                VALUES (%s, 0, NOW())
                ON CONFLICT (id) DO NOTHING
                RETURNING last_uid
            )
            SELECT last_uid FROM seeded
            UNION ALL
            SELECT last_uid FROM gmail_state WHERE id = %s
            LIMIT 1
            """,
            (STATE_ROW_ID, STATE_ROW_ID),
        )
        return int(value or 0)

    @staticmethod
    async def advance(new_uid: int) -> int:
        """Move the cursor forward to new_uid; returns the stored value afterwards."""
        value = await fetch_val(
            """
            INSERT INTO gmail_state (id, last_uid, updated_at)
            VALUES (%s, %s, NOW())
            ON CONFLICT (id) DO UPDATE
            SET last_uid = GREATEST(gmail_state.last_uid, EXCLUDED.last_uid),
                updated_at = NOW()
            RETURNING last_uid
            """,
            (STATE_ROW_ID, new_uid),
        )
        stored = int(value or 0)
        if stored != new_uid:
            logger.warning("Cursor already ahead of this run", requested=new_uid, stored=stored)
        return stored


class MailboxLockUnavailable(Exception):
    """Another run holds the lock for this mailbox."""


@asynccontextmanager
async def mailbox_lock(mailbox: str) -> AsyncGenerator[None, None]:
    """
    Session-level Postgres advisory lock keyed by mailbox name.

    Held on a dedicated pooled connection for the whole run and released on
    every exit path. Raises MailboxLockUnavailable if another run holds it.
    """
    key = f"{LOCK_NAMESPACE}:{mailbox}"
    async with db_pool.connection() as conn:
        acquired = await fetch_val("SELECT pg_try_advisory_lock(hashtext(%s))", (key,), connection=conn)
        if not acquired:
            raise MailboxLockUnavailable(f"Mailbox {mailbox!r} is locked by another sync run")
        logger.debug("Mailbox lock acquired", mailbox=mailbox)
        try:
            yield
        finally:
            try:
                await fetch_val("SELECT pg_advisory_unlock(hashtext(%s))", (key,), connection=conn)
            except DatabaseError as e:
                # closing the session releases it anyway
                logger.warning("Mailbox lock release failed", mailbox=mailbox, error=str(e))
