from typing import Any

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from docflow.database.connection import get_connection
from docflow.database.models import FileStatus, UploadedFile
from docflow.pipeline.exceptions import DuplicateSignal, FileRecordNotFoundError

_FILE_COLUMNS = """
    f.id, f.guid, f.user_id, f.file_name, f.extension, f.mime_type, f.file_size,
    f.content_hash, f.category, f.status, f.remote_original_path,
    f.remote_archive_path, f.remote_preview_path, f.note, f.last_error, f.meta,
    f.created_at, f.updated_at
"""


def _to_file(row: dict[str, Any]) -> UploadedFile:
    return UploadedFile(
        id=row["id"],
        guid=str(row["guid"]),
        user_id=row["user_id"],
        file_name=row["file_name"],
        extension=row["extension"],
        mime_type=row["mime_type"],
        file_size=row["file_size"],
        content_hash=row["content_hash"],
        category=row["category"],
        status=row["status"],
        remote_original_path=row.get("remote_original_path"),
        remote_archive_path=row.get("remote_archive_path"),
        remote_preview_path=row.get("remote_preview_path"),
        note=row.get("note"),
        last_error=row.get("last_error"),
        meta=row.get("meta") or {},
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


class UploadedFilesRepository:
    """Database operations for the uploaded_files table."""

    def find_by_id(self, file_id: int) -> UploadedFile:
        """Find an uploaded file by ID.

        Raises:
            FileRecordNotFoundError: if no file with this ID exists.
        """
        found = self.find_optional(file_id)
        if found is None:
            raise FileRecordNotFoundError(f"File {file_id} not found", file_id=file_id)
        return found

    def find_optional(self, file_id: int) -> UploadedFile | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {_FILE_COLUMNS} FROM uploaded_files f WHERE f.id = %s",
                    (file_id,),
                )
                row = cur.fetchone()
        return _to_file(row) if row is not None else None

    def find_duplicate_by_hash(self, user_id: int, content_hash: str) -> UploadedFile | None:
        """Find a file of the same owner with the same content hash.

        Completed files whose primary entity was deleted are ignored so the
        owner can upload the same bytes again.
        """
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_FILE_COLUMNS}
                    FROM uploaded_files f
                    WHERE f.user_id = %s
                      AND f.content_hash = %s
                      AND (
                        f.status <> 'completed'
                        OR EXISTS (
                            SELECT 1 FROM entities e
                            WHERE e.file_id = f.id
                              AND e.is_primary
                              AND e.deleted_at IS NULL
                        )
                      )
                    ORDER BY f.id
                    LIMIT 1
                    """,
                    (user_id, content_hash),
                )
                row = cur.fetchone()
        return _to_file(row) if row is not None else None

    def create(
        self,
        *,
        guid: str,
        user_id: int,
        file_name: str,
        extension: str,
        mime_type: str,
        file_size: int,
        content_hash: str,
        category: str,
        remote_original_path: str,
    ) -> UploadedFile:
        """Insert a new pending file.

        Raises:
            DuplicateSignal: if the owner/hash unique index rejects the row.
        """
        with get_connection() as conn:
            try:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(
                        """
                        INSERT INTO uploaded_files
                            (guid, user_id, file_name, extension, mime_type, file_size,
                             content_hash, category, status, remote_original_path)
                        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, 'pending', %s)
                        RETURNING id
                        """,
                        (
                            guid,
                            user_id,
                            file_name,
                            extension,
                            mime_type,
                            file_size,
                            content_hash,
                            category,
                            remote_original_path,
                        ),
                    )
                    row = cur.fetchone()
                conn.commit()
            except psycopg.errors.UniqueViolation:
                conn.rollback()
                existing = self.find_duplicate_by_hash(user_id, content_hash)
                if existing is None:
                    raise
                raise DuplicateSignal(existing.id, content_hash) from None

        if row is None:
            raise RuntimeError(f"Failed to insert uploaded file {guid}")
        return self.find_by_id(row["id"])

    def mark_processing(self, file_id: int) -> None:
        """Move a file to processing and clear its previous error."""
        self._update_status(file_id, FileStatus.PROCESSING, clear_error=True)

    def mark_completed(self, file_id: int) -> bool:
        """Mark a file completed.

        Returns:
            True if this call performed the transition, False if it was
            already completed or the row is gone.
        """
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE uploaded_files
                    SET status = 'completed', last_error = NULL, updated_at = NOW()
                    WHERE id = %s AND status <> 'completed'
                    """,
                    (file_id,),
                )
                changed = cur.rowcount > 0
            conn.commit()
        return changed

    def mark_failed(self, file_id: int, error: str) -> None:
        """Mark a file failed, keeping the last human-readable error."""
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE uploaded_files
                SET status = 'failed',
                    last_error = %s,
                    meta = meta || jsonb_build_object('last_processing_error', %s::text),
                    updated_at = NOW()
                WHERE id = %s
                """,
                (error, error, file_id),
            )
            conn.commit()

    def merge_meta(self, file_id: int, values: dict[str, Any]) -> None:
        """Shallow-merge keys into the file's meta JSON."""
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE uploaded_files
                SET meta = meta || %s, updated_at = NOW()
                WHERE id = %s
                """,
                (Jsonb(values), file_id),
            )
            conn.commit()

    def apply_tags(self, file_id: int, tag_ids: list[int], note: str | None) -> None:
        """Attach tags (idempotent) and set the note if one is given."""
        with get_connection() as conn:
            with conn.transaction():
                with conn.cursor() as cur:
                    for tag_id in tag_ids:
                        cur.execute(
                            """
                            INSERT INTO file_tags (file_id, tag_id)
                            VALUES (%s, %s)
                            ON CONFLICT DO NOTHING
                            """,
                            (file_id, tag_id),
                        )
                    if note:
                        cur.execute(
                            """
                            UPDATE uploaded_files
                            SET note = %s, updated_at = NOW()
                            WHERE id = %s
                            """,
                            (note, file_id),
                        )

    def _update_status(self, file_id: int, status: FileStatus, *, clear_error: bool) -> None:
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    UPDATE uploaded_files
                    SET status = %s,
                        {"last_error = NULL," if clear_error else ""}
                        updated_at = NOW()
                    WHERE id = %s
                    """,
                    (status.value, file_id),
                )
                if cur.rowcount == 0:
                    raise FileRecordNotFoundError(
                        f"File {file_id} not found", file_id=file_id
                    )
            conn.commit()
