from datetime import datetime, timedelta, timezone
from typing import Any

from psycopg.types.json import Jsonb

from docflow.database.connection import get_connection


class ChainMetadataRepository:
    """Durable keyed store for chain messages, expiring after a TTL."""

    def __init__(self, ttl_hours: int) -> None:
        self._ttl = timedelta(hours=ttl_hours)

    def expiry_from_now(self) -> datetime:
        return datetime.now(timezone.utc) + self._ttl

    def put(self, chain_id: str, payload: dict[str, Any]) -> None:
        """Store or replace the payload for a chain and refresh its expiry."""
        with get_connection() as conn:
            conn.execute(
                """
                INSERT INTO chain_metadata (chain_id, payload, expires_at, updated_at)
                VALUES (%s, %s, %s, NOW())
                ON CONFLICT (chain_id) DO UPDATE
                SET payload = EXCLUDED.payload,
                    expires_at = EXCLUDED.expires_at,
                    updated_at = NOW()
                """,
                (chain_id, Jsonb(payload), self.expiry_from_now()),
            )
            conn.commit()

    def get(self, chain_id: str) -> dict[str, Any] | None:
        """Return the payload, or None when missing or expired."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT payload
                    FROM chain_metadata
                    WHERE chain_id = %s AND expires_at > NOW()
                    """,
                    (chain_id,),
                )
                row = cur.fetchone()
        if row is None:
            return None
        payload: dict[str, Any] = row[0]
        return payload

    def forget(self, chain_id: str) -> None:
        with get_connection() as conn:
            conn.execute("DELETE FROM chain_metadata WHERE chain_id = %s", (chain_id,))
            conn.commit()

    def purge_expired(self) -> int:
        """Delete expired rows. Returns the number removed."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM chain_metadata WHERE expires_at <= NOW()")
                removed = cur.rowcount
            conn.commit()
        return removed
