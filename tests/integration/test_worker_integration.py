from pathlib import Path
from typing import Any

import psycopg
import pytest

from docflow.config.settings import Settings
from docflow.database.repositories.entity_repository import EntityRepository
from docflow.database.repositories.uploaded_files_repository import UploadedFilesRepository
from docflow.deduplication.file_deduplicator import FileDeduplicator
from docflow.main import build_worker
from docflow.pipeline.orchestrator import build_orchestrator
from docflow.pipeline.upload import UploadService
from docflow.storage.factory import ObjectStorageFactory


def _local_settings(test_settings: Settings, tmp_path: Path) -> Settings:
    return test_settings.model_copy(
        update={
            "ai_provider": "example",
            "storage_driver": "local",
            "storage_local_root": str(tmp_path / "storage"),
            "working_dir": str(tmp_path / "work"),
            "notification_driver": "log",
            "job_poll_interval_seconds": 0,
        }
    )


def _upload(settings: Settings, owner_id: int, data: bytes, tag_ids: list[int] | None = None) -> Any:
    files_repo = UploadedFilesRepository()
    service = UploadService(
        ObjectStorageFactory.create(settings),
        files_repo,
        FileDeduplicator(files_repo),
        build_orchestrator(settings),
    )
    return service.ingest(
        user_id=owner_id,
        file_name="notes.pdf",
        data=data,
        mime_type="application/pdf",
        category="document",
        tag_ids=tag_ids,
    )


@pytest.mark.integration
@pytest.mark.usefixtures("empty_queue", "integration_cleanup")
class TestWorkerIntegration:
    def test_chain_runs_to_completion(
        self,
        test_settings: Settings,
        tmp_path: Path,
        owner_id: int,
        sample_pdf_bytes: bytes,
        db_conn: psycopg.Connection[Any],
    ) -> None:
        settings = _local_settings(test_settings, tmp_path)
        result = _upload(settings, owner_id, sample_pdf_bytes, tag_ids=[7])

        build_worker(settings).run(max_jobs=4)

        file = UploadedFilesRepository().find_by_id(result.file.id)
        assert file.status == "completed"
        assert file.meta["document_type"] == "document"
        entity = EntityRepository().find_primary_for_file(file.id)
        assert entity is not None
        assert entity.data["metadata"]["fallback_date_used"] is True
        assert list((tmp_path / "work").glob("*")) == []

        with db_conn.cursor() as cur:
            cur.execute(
                "SELECT stage, status FROM stage_jobs WHERE chain_id = %s ORDER BY position",
                (result.chain_id,),
            )
            rows = cur.fetchall()
        assert rows == [
            ("analyze_file", "done"),
            ("persist_entity", "done"),
            ("apply_tags", "done"),
            ("delete_working_files", "done"),
        ]

    def test_reupload_resolves_to_existing_file(
        self,
        test_settings: Settings,
        tmp_path: Path,
        owner_id: int,
        sample_pdf_bytes: bytes,
    ) -> None:
        settings = _local_settings(test_settings, tmp_path)
        first = _upload(settings, owner_id, sample_pdf_bytes)
        build_worker(settings).run(max_jobs=3)

        second = _upload(settings, owner_id, sample_pdf_bytes)

        assert second.duplicate is True
        assert second.file.id == first.file.id
        assert second.chain_id is None

    def test_restart_does_not_create_second_entity(
        self,
        test_settings: Settings,
        tmp_path: Path,
        owner_id: int,
        sample_pdf_bytes: bytes,
    ) -> None:
        settings = _local_settings(test_settings, tmp_path)
        first = _upload(settings, owner_id, sample_pdf_bytes)
        build_worker(settings).run(max_jobs=3)

        build_orchestrator(settings).restart(first.chain_id)
        build_worker(settings).run(max_jobs=3)

        entities = EntityRepository().find_for_file(first.file.id)
        assert len(entities) == 1
        assert UploadedFilesRepository().find_by_id(first.file.id).status == "completed"
