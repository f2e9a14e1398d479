from typing import Any

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from docflow.database.connection import get_connection, transaction
from docflow.database.models import EntityRecord, NewEntity

_ENTITY_COLUMNS = """
    id, file_id, user_id, entity_type, is_primary, confidence, entity_date,
    data, created_at, deleted_at
"""


def _to_entity(row: dict[str, Any]) -> EntityRecord:
    return EntityRecord(
        id=row["id"],
        file_id=row["file_id"],
        user_id=row["user_id"],
        entity_type=row["entity_type"],
        is_primary=row["is_primary"],
        confidence=float(row["confidence"]),
        data=row.get("data") or {},
        entity_date=row.get("entity_date"),
        created_at=row.get("created_at"),
        deleted_at=row.get("deleted_at"),
    )


class EntityRepository:
    """Database operations for the entities and entity_items tables."""

    def find_primary_for_file(self, file_id: int) -> EntityRecord | None:
        """Return the live primary entity of a file, if any."""
        with get_connection() as conn:
            return self._find_primary(conn, file_id)

    def find_for_file(self, file_id: int) -> list[EntityRecord]:
        """Return every live entity that references a file, oldest first."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_ENTITY_COLUMNS}
                    FROM entities
                    WHERE file_id = %s AND deleted_at IS NULL
                    ORDER BY id
                    """,
                    (file_id,),
                )
                rows = cur.fetchall()
        return [_to_entity(row) for row in rows]

    def find_owner_entities(
        self,
        user_id: int,
        entity_type: str,
        exclude_file_id: int,
        limit: int = 500,
    ) -> list[EntityRecord]:
        """Newest live primary entities of one type owned by a user, other files only."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_ENTITY_COLUMNS}
                    FROM entities
                    WHERE user_id = %s AND entity_type = %s AND file_id <> %s
                      AND is_primary AND deleted_at IS NULL
                    ORDER BY id DESC
                    LIMIT %s
                    """,
                    (user_id, entity_type, exclude_file_id, limit),
                )
                rows = cur.fetchall()
        return [_to_entity(row) for row in rows]

    def find_duplicate_file_ids(self) -> list[int]:
        """Return ids of files referenced by more than one live entity."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT file_id
                    FROM entities
                    WHERE deleted_at IS NULL
                    GROUP BY file_id
                    HAVING COUNT(*) > 1
                    ORDER BY file_id
                    """
                )
                rows = cur.fetchall()
        return [int(row[0]) for row in rows]

    def insert_primary(self, entity: NewEntity) -> tuple[EntityRecord, bool]:
        """Insert a primary entity with its children in one transaction.

        The partial unique index on (file_id) is the last guard: when another
        worker won the race the existing entity is returned instead.

        Returns:
            (entity, created) where created is False if an entity already existed.
        """
        with transaction() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    INSERT INTO entities
                        (file_id, user_id, entity_type, is_primary, confidence,
                         entity_date, data)
                    VALUES (%s, %s, %s, TRUE, %s, %s, %s)
                    ON CONFLICT (file_id) WHERE is_primary AND deleted_at IS NULL
                    DO NOTHING
                    RETURNING {_ENTITY_COLUMNS}
                    """,
                    (
                        entity.file_id,
                        entity.user_id,
                        entity.entity_type,
                        entity.confidence,
                        entity.entity_date,
                        Jsonb(entity.data),
                    ),
                )
                row = cur.fetchone()

            if row is None:
                existing = self._find_primary(conn, entity.file_id)
                if existing is None:
                    raise RuntimeError(
                        f"Entity insert for file {entity.file_id} conflicted "
                        "but no primary entity was found"
                    )
                return existing, False

            created = _to_entity(row)
            self._insert_children(conn, created.id, entity.children)
        return created, True

    def delete_entities(self, entity_ids: list[int]) -> int:
        """Delete entities and their children atomically. Returns rows removed."""
        if not entity_ids:
            return 0
        with transaction() as conn:
            conn.execute(
                "DELETE FROM entity_items WHERE entity_id = ANY(%s)",
                (entity_ids,),
            )
            with conn.cursor() as cur:
                cur.execute("DELETE FROM entities WHERE id = ANY(%s)", (entity_ids,))
                deleted = cur.rowcount
        return deleted

    def delete_entity(self, entity_id: int) -> bool:
        """Delete an entity on behalf of its owner.

        The file's content hash is cleared in the same transaction so the
        owner may upload the same bytes again.
        """
        with transaction() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "DELETE FROM entities WHERE id = %s RETURNING file_id",
                    (entity_id,),
                )
                row = cur.fetchone()
                if row is None:
                    return False
                cur.execute(
                    """
                    UPDATE uploaded_files
                    SET content_hash = NULL, updated_at = NOW()
                    WHERE id = %s
                    """,
                    (row[0],),
                )
        return True

    def count_children(self, entity_id: int) -> int:
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT COUNT(*) FROM entity_items WHERE entity_id = %s",
                    (entity_id,),
                )
                row = cur.fetchone()
        return int(row[0]) if row else 0

    @staticmethod
    def _find_primary(conn: psycopg.Connection[Any], file_id: int) -> EntityRecord | None:
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                f"""
                SELECT {_ENTITY_COLUMNS}
                FROM entities
                WHERE file_id = %s AND is_primary AND deleted_at IS NULL
                ORDER BY id
                LIMIT 1
                """,
                (file_id,),
            )
            row = cur.fetchone()
        return _to_entity(row) if row is not None else None

    @staticmethod
    def _insert_children(
        conn: psycopg.Connection[Any],
        entity_id: int,
        children: dict[str, list[dict[str, Any]]],
    ) -> None:
        rows = [
            (entity_id, kind, position, Jsonb(item))
            for kind, items in children.items()
            for position, item in enumerate(items)
        ]
        if not rows:
            return
        with conn.cursor() as cur:
            cur.executemany(
                """
                INSERT INTO entity_items (entity_id, kind, position, data)
                VALUES (%s, %s, %s, %s)
                """,
                rows,
            )
