from typing import Any
from unittest.mock import MagicMock

import psycopg
import pytest

from docflow.database.models import UploadedFile
from docflow.deduplication.hashing import content_hash
from docflow.pipeline.exceptions import DuplicateSignal
from docflow.pipeline.upload import UploadService
from docflow.storage.exceptions import StorageError


def _make_file(**overrides: Any) -> UploadedFile:
    fields: dict[str, Any] = {
        "id": 7,
        "guid": "guid-7",
        "user_id": 3,
        "file_name": "receipt.JPG",
        "extension": "jpg",
        "mime_type": "image/jpeg",
        "file_size": 5,
        "content_hash": content_hash(b"bytes"),
        "category": "receipt",
        "status": "pending",
    }
    fields.update(overrides)
    return UploadedFile(**fields)


def _make_service() -> tuple[UploadService, MagicMock, MagicMock, MagicMock, MagicMock]:
    storage = MagicMock()
    files_repo = MagicMock()
    files_repo.create.return_value = _make_file()
    deduplicator = MagicMock()
    orchestrator = MagicMock()
    orchestrator.dispatch.return_value = "chain-1"
    service = UploadService(storage, files_repo, deduplicator, orchestrator)
    return service, storage, files_repo, deduplicator, orchestrator


def _ingest(service: UploadService, **overrides: Any) -> Any:
    kwargs: dict[str, Any] = {
        "user_id": 3,
        "file_name": "receipt.JPG",
        "data": b"bytes",
        "mime_type": "image/jpeg",
        "category": "receipt",
    }
    kwargs.update(overrides)
    return service.ingest(**kwargs)


class TestIngest:
    def test_stores_records_and_dispatches(self) -> None:
        service, storage, files_repo, deduplicator, orchestrator = _make_service()

        result = _ingest(service, tag_ids=[2], note="fuel")

        deduplicator.check_upload.assert_called_once_with(3, content_hash(b"bytes"))
        remote_path = storage.put.call_args.args[0]
        assert remote_path.startswith("files/3/")
        assert remote_path.endswith("/original.jpg")
        create_kwargs = files_repo.create.call_args.kwargs
        assert create_kwargs["extension"] == "jpg"
        assert create_kwargs["remote_original_path"] == remote_path
        assert create_kwargs["file_size"] == 5
        orchestrator.dispatch.assert_called_once_with(7, tag_ids=[2], note="fuel")
        assert result.chain_id == "chain-1"
        assert result.duplicate is False

    def test_duplicate_resolves_to_existing_file(self) -> None:
        service, storage, files_repo, deduplicator, orchestrator = _make_service()
        existing = _make_file(id=4, status="completed")
        deduplicator.check_upload.side_effect = DuplicateSignal(4, content_hash(b"bytes"))
        files_repo.find_by_id.return_value = existing

        result = _ingest(service)

        assert result.file == existing
        assert result.duplicate is True
        assert result.chain_id is None
        storage.put.assert_not_called()
        files_repo.create.assert_not_called()
        orchestrator.dispatch.assert_not_called()

    def test_concurrent_duplicate_discards_stored_object(self) -> None:
        service, storage, files_repo, _dedup, orchestrator = _make_service()
        files_repo.create.side_effect = DuplicateSignal(4, content_hash(b"bytes"))
        files_repo.find_by_id.return_value = _make_file(id=4)
        storage.delete.side_effect = StorageError("gone")

        result = _ingest(service)

        storage.delete.assert_called_once_with(storage.put.call_args.args[0])
        assert result.duplicate is True
        orchestrator.dispatch.assert_not_called()

    def test_failed_insert_removes_stored_object(self) -> None:
        service, storage, files_repo, _dedup, orchestrator = _make_service()
        files_repo.create.side_effect = psycopg.OperationalError("connection lost")

        with pytest.raises(psycopg.OperationalError):
            _ingest(service)

        storage.delete.assert_called_once_with(storage.put.call_args.args[0])
        orchestrator.dispatch.assert_not_called()

    def test_file_without_extension(self) -> None:
        service, storage, _files, _dedup, _orch = _make_service()

        _ingest(service, file_name="scan")

        assert storage.put.call_args.args[0].endswith("/original.bin")

    def test_unknown_category(self) -> None:
        service, *_ = _make_service()

        with pytest.raises(ValueError, match="Unknown upload category"):
            _ingest(service, category="invoice")

    def test_empty_upload(self) -> None:
        service, *_ = _make_service()

        with pytest.raises(ValueError, match="empty"):
            _ingest(service, data=b"")
