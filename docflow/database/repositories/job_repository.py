from typing import Any

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from docflow.database.connection import get_connection
from docflow.database.models import JobRecord

_JOB_COLUMNS = """
    id, chain_id, task_id, file_id, stage, position, status, attempts,
    progress, payload, error_message, available_at, locked_at,
    created_at, updated_at
"""


def _to_record(row: dict[str, Any]) -> JobRecord:
    return JobRecord(
        id=row["id"],
        chain_id=str(row["chain_id"]),
        task_id=str(row["task_id"]),
        file_id=row["file_id"],
        stage=row["stage"],
        position=row["position"],
        status=row["status"],
        attempts=row["attempts"],
        progress=row.get("progress", 0),
        payload=row.get("payload") or {},
        error_message=row.get("error_message"),
        available_at=row.get("available_at"),
        locked_at=row.get("locked_at"),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


class JobRepository:
    """Database operations for the stage_jobs table."""

    def __init__(self, max_attempts: int, stage_timeout_seconds: int) -> None:
        self._max_attempts = max_attempts
        self._stage_timeout_seconds = stage_timeout_seconds

    def claim_next_job(self, conn: psycopg.Connection[Any]) -> JobRecord | None:
        """Claim the next runnable job using SELECT FOR UPDATE SKIP LOCKED.

        Pending jobs whose backoff has elapsed are eligible, as are jobs stuck in
        'processing' longer than the stage timeout. Reclaiming a stuck job counts
        as a spent attempt.
        """
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                f"""
                SELECT {_JOB_COLUMNS}
                FROM stage_jobs
                WHERE (
                    (status = 'pending' AND attempts < %s AND available_at <= NOW())
                    OR (status = 'processing'
                        AND locked_at < NOW() - %s * INTERVAL '1 second')
                )
                ORDER BY available_at, id
                LIMIT 1
                FOR UPDATE SKIP LOCKED
                """,
                (self._max_attempts, self._stage_timeout_seconds),
            )
            row = cur.fetchone()

        if row is None:
            conn.commit()
            return None

        attempts = row["attempts"] + (1 if row["status"] == "processing" else 0)
        conn.execute(
            """
            UPDATE stage_jobs
            SET status = 'processing', attempts = %s,
                locked_at = NOW(), updated_at = NOW()
            WHERE id = %s
            """,
            (attempts, row["id"]),
        )
        conn.commit()

        row["status"] = "processing"
        row["attempts"] = attempts
        return _to_record(row)

    def enqueue(
        self,
        *,
        chain_id: str,
        task_id: str,
        file_id: int,
        stage: str,
        position: int,
        payload: dict[str, Any],
    ) -> int:
        """Insert a new pending stage job and return its id."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO stage_jobs
                        (chain_id, task_id, file_id, stage, position, status, payload)
                    VALUES (%s, %s, %s, %s, %s, 'pending', %s)
                    RETURNING id
                    """,
                    (chain_id, task_id, file_id, stage, position, Jsonb(payload)),
                )
                row = cur.fetchone()
            conn.commit()
        if row is None:
            raise RuntimeError(f"Failed to enqueue stage '{stage}' for chain {chain_id}")
        return int(row[0])

    def update_progress(self, job_id: int, progress: int) -> None:
        """Raise job progress; never lowers it."""
        value = max(0, min(100, progress))
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE stage_jobs
                SET progress = GREATEST(progress, %s), updated_at = NOW()
                WHERE id = %s
                """,
                (value, job_id),
            )
            conn.commit()

    def mark_done(self, job_id: int, payload: dict[str, Any]) -> None:
        """Mark a job as done and store the message it produced."""
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE stage_jobs
                SET status = 'done', progress = 100, payload = %s,
                    error_message = NULL, updated_at = NOW()
                WHERE id = %s
                """,
                (Jsonb(payload), job_id),
            )
            conn.commit()

    def mark_failed(self, job_id: int, error: str) -> None:
        """Mark a job as permanently failed."""
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE stage_jobs
                SET status = 'failed', error_message = %s,
                    locked_at = NULL, updated_at = NOW()
                WHERE id = %s
                """,
                (error, job_id),
            )
            conn.commit()

    def mark_expired(self, job_id: int) -> None:
        """Dead-letter a job whose chain message outlived its TTL."""
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE stage_jobs
                SET status = 'expired', locked_at = NULL, updated_at = NOW()
                WHERE id = %s
                """,
                (job_id,),
            )
            conn.commit()

    def schedule_retry(self, job_id: int, error: str, backoff_seconds: int) -> None:
        """Increment attempt count and return job to pending after a backoff."""
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE stage_jobs
                SET attempts = attempts + 1, status = 'pending', error_message = %s,
                    available_at = NOW() + %s * INTERVAL '1 second',
                    locked_at = NULL, updated_at = NOW()
                WHERE id = %s
                """,
                (error, backoff_seconds, job_id),
            )
            conn.commit()

    def find_by_id(self, job_id: int) -> JobRecord | None:
        """Find a job by ID."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {_JOB_COLUMNS} FROM stage_jobs WHERE id = %s",
                    (job_id,),
                )
                row = cur.fetchone()
        return _to_record(row) if row is not None else None

    def find_latest_for_chain(self, chain_id: str) -> JobRecord | None:
        """Return the most recently created job of a chain."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_JOB_COLUMNS}
                    FROM stage_jobs
                    WHERE chain_id = %s
                    ORDER BY id DESC
                    LIMIT 1
                    """,
                    (chain_id,),
                )
                row = cur.fetchone()
        return _to_record(row) if row is not None else None

    def find_task_jobs(self, task_id: str) -> list[JobRecord]:
        """Return all jobs of one dispatch (task id), in chain order."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_JOB_COLUMNS}
                    FROM stage_jobs
                    WHERE task_id = %s
                    ORDER BY position, id
                    """,
                    (task_id,),
                )
                rows = cur.fetchall()
        return [_to_record(row) for row in rows]

    def find_latest_for_file(self, file_id: int) -> JobRecord | None:
        """Return the most recently created job for an uploaded file."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_JOB_COLUMNS}
                    FROM stage_jobs
                    WHERE file_id = %s
                    ORDER BY id DESC
                    LIMIT 1
                    """,
                    (file_id,),
                )
                row = cur.fetchone()
        return _to_record(row) if row is not None else None
