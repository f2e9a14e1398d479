from typing import Any
from unittest.mock import MagicMock, patch

import psycopg
import pytest

from docflow.database.models import UploadedFile
from docflow.database.repositories.uploaded_files_repository import UploadedFilesRepository
from docflow.pipeline.exceptions import DuplicateSignal, FileRecordNotFoundError

_GET_CONN = "docflow.database.repositories.uploaded_files_repository.get_connection"


def _make_row(**overrides: Any) -> dict[str, Any]:
    row: dict[str, Any] = {
        "id": 1,
        "guid": "550e8400-e29b-41d4-a716-446655440000",
        "user_id": 10,
        "file_name": "scan.pdf",
        "extension": "pdf",
        "mime_type": "application/pdf",
        "file_size": 2048,
        "content_hash": "a" * 64,
        "category": "document",
        "status": "pending",
        "remote_original_path": "files/10/550e/original.pdf",
        "meta": None,
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


class TestFindById:
    @patch(_GET_CONN)
    def test_returns_file_when_found(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = _make_row()

        result = UploadedFilesRepository().find_by_id(1)

        assert isinstance(result, UploadedFile)
        assert result.guid == "550e8400-e29b-41d4-a716-446655440000"
        assert result.remote_path == "files/10/550e/original.pdf"
        assert result.meta == {}

    @patch(_GET_CONN)
    def test_prefers_archive_copy(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = _make_row(remote_archive_path="archive/1.pdf")

        assert UploadedFilesRepository().find_by_id(1).remote_path == "archive/1.pdf"

    @patch(_GET_CONN)
    def test_raises_when_missing(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = None

        with pytest.raises(FileRecordNotFoundError, match="File 999 not found"):
            UploadedFilesRepository().find_by_id(999)


class TestCreate:
    @patch(_GET_CONN)
    def test_unique_violation_becomes_duplicate_signal(self, mock_get_conn: MagicMock) -> None:
        mock_conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.execute.side_effect = [psycopg.errors.UniqueViolation("dup"), None]
        mock_cursor.fetchone.return_value = _make_row(id=4)

        with pytest.raises(DuplicateSignal) as excinfo:
            UploadedFilesRepository().create(
                guid="g",
                user_id=10,
                file_name="scan.pdf",
                extension="pdf",
                mime_type="application/pdf",
                file_size=1,
                content_hash="a" * 64,
                category="document",
                remote_original_path="files/10/g/original.pdf",
            )

        assert excinfo.value.existing_file_id == 4
        mock_conn.rollback.assert_called_once()


class TestStatusTransitions:
    @patch(_GET_CONN)
    def test_mark_completed_reports_transition(self, mock_get_conn: MagicMock) -> None:
        mock_conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.rowcount = 1

        assert UploadedFilesRepository().mark_completed(1) is True
        sql = mock_cursor.execute.call_args.args[0]
        assert "status <> 'completed'" in sql
        mock_conn.commit.assert_called_once()

    @patch(_GET_CONN)
    def test_mark_completed_twice_is_noop(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.rowcount = 0

        assert UploadedFilesRepository().mark_completed(1) is False

    @patch(_GET_CONN)
    def test_mark_processing_missing_file(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.rowcount = 0

        with pytest.raises(FileRecordNotFoundError):
            UploadedFilesRepository().mark_processing(5)

    @patch(_GET_CONN)
    def test_mark_failed_stores_error(self, mock_get_conn: MagicMock) -> None:
        mock_conn, _cursor = _mock_connection(mock_get_conn)

        UploadedFilesRepository().mark_failed(1, "bad scan")

        params = mock_conn.execute.call_args.args[1]
        assert params == ("bad scan", "bad scan", 1)


class TestApplyTags:
    @patch(_GET_CONN)
    def test_inserts_each_tag_and_note(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)

        UploadedFilesRepository().apply_tags(1, [3, 4], "lunch")

        assert mock_cursor.execute.call_count == 3
        assert "ON CONFLICT DO NOTHING" in mock_cursor.execute.call_args_list[0].args[0]

    @patch(_GET_CONN)
    def test_no_note_leaves_note_alone(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)

        UploadedFilesRepository().apply_tags(1, [3], None)

        assert mock_cursor.execute.call_count == 1
