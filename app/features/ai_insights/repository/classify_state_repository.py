"""
Persisted offset for the classification batch (ai_classify_state, id = 1).

If the table is missing the batch still runs from offset 0, it just cannot
remember where it stopped.
"""

from app.db.helpers import DatabaseError, fetch_val
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

STATE_ROW_ID = 1


class ClassifyStateRepository:
    @staticmethod
    async def get_offset() -> int | None:
        """Stored offset (row created at 0 on first use); None if the table is missing."""
        try:
            value = await fetch_val(
                """
                WITH seeded AS (
                    INSERT INTO ai_classify_state (id, cursor_offset, updated_at)
                    VALUES (%s, 0, NOW())
                    ON CONFLICT (id) DO NOTHING
                    RETURNING cursor_offset
                )
                SELECT cursor_offset FROM seeded
                UNION ALL
                SELECT cursor_offset FROM ai_classify_state WHERE id = %s
                LIMIT 1
                """,
                (STATE_ROW_ID, STATE_ROW_ID),
            )
        except DatabaseError as e:
            if e.is_missing_table:
                logger.warning("ai_classify_state table missing, running without a cursor")
                return None
            raise
        return max(0, int(value or 0))

    @staticmethod
    async def compare_and_set(expected: int, new_offset: int) -> bool:
        """Store new_offset only if the row still holds expected."""
        value = await fetch_val(
            """
            UPDATE ai_classify_state
            SET cursor_offset = %s, updated_at = NOW()
            WHERE id = %s AND cursor_offset = %s
            RETURNING cursor_offset
            """,
            (new_offset, STATE_ROW_ID, expected),
        )
        return value is not None
