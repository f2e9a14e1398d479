from typing import Any
from unittest.mock import MagicMock, patch

from docflow.database.models import JobRecord
from docflow.database.repositories.job_repository import JobRepository

_GET_CONN = "docflow.database.repositories.job_repository.get_connection"


def _make_row(**overrides: Any) -> dict[str, Any]:
    row: dict[str, Any] = {
        "id": 5,
        "chain_id": "chain-1",
        "task_id": "task-1",
        "file_id": 7,
        "stage": "analyze_file",
        "position": 0,
        "status": "pending",
        "attempts": 0,
        "progress": 0,
        "payload": {"chain_id": "chain-1"},
    }
    row.update(overrides)
    return row


def _mock_connection(mock_get_conn: MagicMock) -> tuple[MagicMock, MagicMock]:
    """Wire up a mock connection + cursor and return (mock_conn, mock_cursor)."""
    mock_cursor = MagicMock()
    mock_conn = MagicMock()
    mock_conn.cursor.return_value.__enter__ = MagicMock(return_value=mock_cursor)
    mock_conn.cursor.return_value.__exit__ = MagicMock(return_value=False)
    mock_get_conn.return_value.__enter__ = MagicMock(return_value=mock_conn)
    mock_get_conn.return_value.__exit__ = MagicMock(return_value=False)
    return mock_conn, mock_cursor


def _mock_claim_conn(row: dict[str, Any] | None) -> MagicMock:
    cursor = MagicMock()
    cursor.fetchone.return_value = row
    conn = MagicMock()
    conn.cursor.return_value.__enter__ = MagicMock(return_value=cursor)
    conn.cursor.return_value.__exit__ = MagicMock(return_value=False)
    return conn


class TestClaimNextJob:
    def test_claims_pending_job(self) -> None:
        conn = _mock_claim_conn(_make_row())

        job = JobRepository(5, 3600).claim_next_job(conn)

        assert isinstance(job, JobRecord)
        assert job.status == "processing"
        assert job.attempts == 0
        assert conn.execute.call_args.args[1] == (0, 5)
        conn.commit.assert_called_once()

    def test_reclaiming_stuck_job_spends_an_attempt(self) -> None:
        conn = _mock_claim_conn(_make_row(status="processing", attempts=2))

        job = JobRepository(5, 3600).claim_next_job(conn)

        assert job is not None
        assert job.attempts == 3

    def test_empty_queue(self) -> None:
        conn = _mock_claim_conn(None)

        assert JobRepository(5, 3600).claim_next_job(conn) is None
        conn.execute.assert_not_called()
        conn.commit.assert_called_once()


class TestEnqueue:
    @patch(_GET_CONN)
    def test_returns_new_id(self, mock_get_conn: MagicMock) -> None:
        mock_conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = (42,)

        job_id = JobRepository(5, 3600).enqueue(
            chain_id="chain-1",
            task_id="task-1",
            file_id=7,
            stage="persist_entity",
            position=1,
            payload={"a": 1},
        )

        assert job_id == 42
        mock_conn.commit.assert_called_once()


class TestUpdates:
    @patch(_GET_CONN)
    def test_update_progress_clamps(self, mock_get_conn: MagicMock) -> None:
        mock_conn, _cursor = _mock_connection(mock_get_conn)

        JobRepository(5, 3600).update_progress(5, 140)

        sql, params = mock_conn.execute.call_args.args
        assert "GREATEST" in sql
        assert params == (100, 5)

    @patch(_GET_CONN)
    def test_schedule_retry(self, mock_get_conn: MagicMock) -> None:
        mock_conn, _cursor = _mock_connection(mock_get_conn)

        JobRepository(5, 3600).schedule_retry(5, "timeout", 10)

        sql, params = mock_conn.execute.call_args.args
        assert "attempts = attempts + 1" in sql
        assert params == ("timeout", 10, 5)

    @patch(_GET_CONN)
    def test_mark_expired(self, mock_get_conn: MagicMock) -> None:
        mock_conn, _cursor = _mock_connection(mock_get_conn)

        JobRepository(5, 3600).mark_expired(5)

        assert "status = 'expired'" in mock_conn.execute.call_args.args[0]


class TestFinders:
    @patch(_GET_CONN)
    def test_find_task_jobs(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchall.return_value = [_make_row(), _make_row(id=6, stage="persist_entity")]

        jobs = JobRepository(5, 3600).find_task_jobs("task-1")

        assert [job.stage for job in jobs] == ["analyze_file", "persist_entity"]

    @patch(_GET_CONN)
    def test_find_latest_for_chain_none(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = None

        assert JobRepository(5, 3600).find_latest_for_chain("missing") is None
