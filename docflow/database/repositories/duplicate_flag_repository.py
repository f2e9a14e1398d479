from typing import Any

from psycopg.rows import dict_row

from docflow.database.connection import get_connection
from docflow.database.models import DuplicateFlag

REASON_SEPARATOR = "|"


def _to_flag(row: dict[str, Any]) -> DuplicateFlag:
    return DuplicateFlag(
        id=row["id"],
        user_id=row["user_id"],
        file_id=row["file_id"],
        duplicate_file_id=row["duplicate_file_id"],
        reason=row["reason"],
        status=row["status"],
        created_at=row.get("created_at"),
    )


def merge_reasons(existing: str, incoming: str) -> str:
    """Union of '|'-separated reasons, keeping first-seen order."""
    parts = [p for p in existing.split(REASON_SEPARATOR) + incoming.split(REASON_SEPARATOR) if p]
    return REASON_SEPARATOR.join(dict.fromkeys(parts))


class DuplicateFlagRepository:
    """Database operations for the duplicate_flags table."""

    def flag(self, user_id: int, file_id: int, other_file_id: int, reason: str) -> DuplicateFlag:
        """Record that two files of one owner look like the same document.

        Flagging an already flagged pair merges the reasons.

        Raises:
            ValueError: if both ids name the same file.
        """
        if file_id == other_file_id:
            raise ValueError(f"Cannot flag file {file_id} as a duplicate of itself")
        low, high = sorted((file_id, other_file_id))
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT id, user_id, file_id, duplicate_file_id, reason, status, created_at
                    FROM duplicate_flags
                    WHERE user_id = %s AND file_id = %s AND duplicate_file_id = %s
                    FOR UPDATE
                    """,
                    (user_id, low, high),
                )
                existing = cur.fetchone()
                merged = merge_reasons(existing["reason"], reason) if existing else reason
                cur.execute(
                    """
                    INSERT INTO duplicate_flags (user_id, file_id, duplicate_file_id, reason)
                    VALUES (%s, %s, %s, %s)
                    ON CONFLICT (user_id, file_id, duplicate_file_id) DO UPDATE
                    SET reason = EXCLUDED.reason, updated_at = NOW()
                    RETURNING id, user_id, file_id, duplicate_file_id, reason, status, created_at
                    """,
                    (user_id, low, high, merged),
                )
                row = cur.fetchone()
            conn.commit()
        if row is None:
            raise RuntimeError(f"Failed to flag files {low} and {high}")
        return _to_flag(row)

    def find_for_file(self, file_id: int) -> list[DuplicateFlag]:
        """Open flags that involve a file on either side."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT id, user_id, file_id, duplicate_file_id, reason, status, created_at
                    FROM duplicate_flags
                    WHERE (file_id = %s OR duplicate_file_id = %s) AND status = 'open'
                    ORDER BY id
                    """,
                    (file_id, file_id),
                )
                rows = cur.fetchall()
        return [_to_flag(row) for row in rows]
