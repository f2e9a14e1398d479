"""End-to-end chain runs with real stages, an in-memory queue and mocked repositories."""

from dataclasses import replace
from datetime import timedelta
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from docflow.ai.conversation import Conversation
from docflow.ai.example_client_adapter import ExampleClientAdapter
from docflow.ai.exceptions import ProviderError
from docflow.ai.models import AnalysisResponse, FileReference
from docflow.classification.classifier import TypeClassifier
from docflow.database.models import EntityRecord, JobRecord, NewEntity, UploadedFile
from docflow.deduplication.entity_guard import EntityGuard
from docflow.extraction.registry import build_extractor_registry
from docflow.pipeline.exceptions import StructuralValidationError
from docflow.pipeline.models import utcnow
from docflow.pipeline.orchestrator import ChainOrchestrator
from docflow.pipeline.stages import AnalyzeFileStage, DeleteWorkingFilesStage, PersistEntityStage
from docflow.storage.local_adapter import LocalStorageAdapter
from docflow.worker.file_manager import WorkerFileManager
from docflow.worker.job_runner import JobRunner

_RECEIPT_RESPONSES: dict[str, dict[str, Any]] = {
    "document_classification": {
        "document_type": "receipt",
        "confidence": 0.92,
        "reasoning": "Itemised purchase with total",
    },
    "receipt_extraction": {
        "merchant_name": "Rema 1000",
        "total_amount": 129.5,
        "currency": "NOK",
        "receipt_date": "2026-02-27",
        "items": [{"name": "Milk", "total_price": 24.9}],
        "confidence_score": 0.91,
    },
}

_WARRANTY_WITHOUT_END_DATE: dict[str, dict[str, Any]] = {
    "document_classification": {
        "document_type": "warranty",
        "confidence": 0.9,
        "reasoning": "Warranty certificate",
    },
    "warranty_extraction": {
        "provider_name": "Elkjop",
        "product_name": "Dishwasher",
        "purchase_date": "2026-01-10",
        "confidence_score": 0.88,
    },
}


class _TimeoutThenAnswer(ExampleClientAdapter):
    """Times out on the first ``failures`` classification calls."""

    def __init__(self, responses: dict[str, dict[str, Any]], failures: int) -> None:
        super().__init__(responses)
        self._failures = failures
        self.classification_calls = 0

    def analyze_file(
        self,
        file_ref: FileReference,
        *,
        schema_name: str,
        schema: dict[str, Any],
        prompt: str,
        history: Conversation | None = None,
    ) -> AnalysisResponse:
        if schema_name == "document_classification":
            self.classification_calls += 1
            if self.classification_calls <= self._failures:
                raise ProviderError(
                    "timeout",
                    "Provider request timed out",
                    retryable=True,
                    context={"operation": "generate"},
                )
        return super().analyze_file(
            file_ref, schema_name=schema_name, schema=schema, prompt=prompt, history=history
        )


class _InMemoryQueue:
    """Stands in for JobRepository: enqueue and schedule_retry feed a FIFO."""

    def __init__(self) -> None:
        self.jobs: dict[int, JobRecord] = {}
        self.pending: list[int] = []
        self.repo = MagicMock()
        self.repo.enqueue.side_effect = self._enqueue
        self.repo.schedule_retry.side_effect = self._schedule_retry

    def _enqueue(
        self,
        *,
        chain_id: str,
        task_id: str,
        file_id: int,
        stage: str,
        position: int,
        payload: dict[str, Any],
    ) -> int:
        job_id = len(self.jobs) + 1
        self.jobs[job_id] = JobRecord(
            id=job_id,
            chain_id=chain_id,
            task_id=task_id,
            file_id=file_id,
            stage=stage,
            position=position,
            status="processing",
            attempts=0,
            payload=payload,
        )
        self.pending.append(job_id)
        return job_id

    def _schedule_retry(self, job_id: int, error: str, backoff_seconds: int) -> None:
        job = self.jobs[job_id]
        self.jobs[job_id] = replace(job, attempts=job.attempts + 1, error_message=error)
        self.pending.append(job_id)

    def drain(self, runner: JobRunner) -> list[JobRecord]:
        ran: list[JobRecord] = []
        while self.pending:
            job = self.jobs[self.pending.pop(0)]
            ran.append(job)
            runner.run(job)
        return ran


def _make_file(category: str) -> UploadedFile:
    return UploadedFile(
        id=7,
        guid="guid-7",
        user_id=3,
        file_name="scan.jpg",
        extension="jpg",
        mime_type="image/jpeg",
        file_size=15,
        content_hash="a" * 64,
        category=category,
        status="pending",
        remote_original_path="files/3/guid-7/original.jpg",
    )


class _Harness:
    def __init__(
        self,
        tmp_path: Path,
        client: ExampleClientAdapter,
        category: str = "receipt",
    ) -> None:
        storage = LocalStorageAdapter(tmp_path / "storage")
        storage.put("files/3/guid-7/original.jpg", b"fake-jpeg-bytes", "image/jpeg")
        self.working_dir = tmp_path / "work"
        file_manager = WorkerFileManager(storage, self.working_dir)

        self.file = _make_file(category)
        self.files_repo = MagicMock()
        self.files_repo.find_by_id.return_value = self.file
        self.files_repo.find_optional.return_value = self.file
        self.files_repo.mark_completed.return_value = True

        self.entity_repo = MagicMock()
        self.entity_repo.find_primary_for_file.return_value = None
        self.entity_repo.insert_primary.side_effect = self._insert_primary

        self.metadata_repo = MagicMock()
        self.metadata_repo.expiry_from_now.return_value = utcnow() + timedelta(hours=4)
        self.metadata_repo.get.return_value = {"chain_id": "known"}

        self.notifier = MagicMock()
        self.analytics_repo = MagicMock()
        self.queue = _InMemoryQueue()
        self.client = client

        self.orchestrator = ChainOrchestrator(
            job_repo=self.queue.repo,
            files_repo=self.files_repo,
            metadata_repo=self.metadata_repo,
            analytics_repo=self.analytics_repo,
            notifier=self.notifier,
            stages=[
                AnalyzeFileStage(
                    file_manager,
                    client,
                    TypeClassifier(client),
                    build_extractor_registry(client),
                    classification_threshold=0.7,
                ),
                PersistEntityStage(self.files_repo, EntityGuard(self.entity_repo)),
                DeleteWorkingFilesStage(file_manager, client, self.metadata_repo, 3600),
            ],
        )
        settings = MagicMock(
            max_stage_attempts=5,
            stage_retry_backoff_seconds=10,
            stage_timeout_seconds=3600,
        )
        self.runner = JobRunner(self.orchestrator, self.queue.repo, settings)

    @staticmethod
    def _insert_primary(entity: NewEntity) -> tuple[EntityRecord, bool]:
        record = EntityRecord(
            id=21,
            file_id=entity.file_id,
            user_id=entity.user_id,
            entity_type=entity.entity_type,
            is_primary=True,
            confidence=entity.confidence,
            data=entity.data,
            entity_date=entity.entity_date,
        )
        return record, True

    def run(self) -> list[JobRecord]:
        self.orchestrator.dispatch(self.file.id)
        return self.queue.drain(self.runner)


class TestConfidentReceipt:
    def test_produces_one_entity_and_completes(self, tmp_path: Path) -> None:
        harness = _Harness(tmp_path, ExampleClientAdapter(_RECEIPT_RESPONSES))

        ran = harness.run()

        assert [job.stage for job in ran] == ["analyze_file", "persist_entity", "delete_working_files"]
        harness.entity_repo.insert_primary.assert_called_once()
        entity = harness.entity_repo.insert_primary.call_args.args[0]
        assert entity.entity_type == "receipt"
        assert entity.data["merchant"]["name"] == "Rema 1000"
        harness.files_repo.mark_completed.assert_called_once_with(7)
        harness.files_repo.mark_failed.assert_not_called()
        harness.notifier.notify_completed.assert_called_once()
        assert harness.notifier.notify_completed.call_args.kwargs["summary"].entity_id == 21

    def test_analytics_record_the_classification(self, tmp_path: Path) -> None:
        harness = _Harness(tmp_path, ExampleClientAdapter(_RECEIPT_RESPONSES))

        harness.run()

        record = harness.analytics_repo.record.call_args.args[0]
        assert record.status == "completed"
        assert record.document_type == "receipt"
        assert record.classification_confidence == 0.92

    def test_leaves_no_working_or_provider_files(self, tmp_path: Path) -> None:
        client = ExampleClientAdapter(_RECEIPT_RESPONSES)
        harness = _Harness(tmp_path, client)

        harness.run()

        assert client.deleted == client.uploaded
        assert not list(harness.working_dir.glob("guid-7*"))


class TestWarrantyMissingEndDate:
    def test_fails_without_creating_an_entity(self, tmp_path: Path) -> None:
        harness = _Harness(tmp_path, ExampleClientAdapter(_WARRANTY_WITHOUT_END_DATE), "document")

        ran = harness.run()

        assert [job.stage for job in ran] == ["analyze_file"]
        harness.queue.repo.schedule_retry.assert_not_called()
        harness.entity_repo.insert_primary.assert_not_called()
        harness.files_repo.mark_completed.assert_not_called()
        harness.files_repo.mark_failed.assert_called_once()
        assert "warranty_end_date" in harness.files_repo.mark_failed.call_args.args[1]

    def test_failure_is_recorded_as_validation_error(self, tmp_path: Path) -> None:
        harness = _Harness(tmp_path, ExampleClientAdapter(_WARRANTY_WITHOUT_END_DATE), "document")

        harness.run()

        record = harness.analytics_repo.record.call_args.args[0]
        assert record.status == "failed"
        assert record.failure_category == "extraction_validation_failed"
        assert record.document_type == "warranty"
        assert record.is_retryable is False
        harness.notifier.notify_failed.assert_called_once()
        assert harness.notifier.notify_failed.call_args.kwargs["category"] == (
            "extraction_validation_failed"
        )

    def test_missing_field_raises_structural_error(self, tmp_path: Path) -> None:
        harness = _Harness(tmp_path, ExampleClientAdapter(_WARRANTY_WITHOUT_END_DATE), "document")
        harness.orchestrator.dispatch(7)
        job = harness.queue.jobs[harness.queue.pending.pop(0)]

        with pytest.raises(StructuralValidationError) as excinfo:
            harness.orchestrator.run_job(job)

        assert excinfo.value.context["missing_fields"] == ["warranty_end_date"]


class TestTimeoutsThenSuccess:
    def test_fifth_attempt_completes_the_chain(self, tmp_path: Path) -> None:
        client = _TimeoutThenAnswer(_RECEIPT_RESPONSES, failures=4)
        harness = _Harness(tmp_path, client)

        ran = harness.run()

        analyze_runs = [job for job in ran if job.stage == "analyze_file"]
        assert [job.attempts for job in analyze_runs] == [0, 1, 2, 3, 4]
        assert harness.queue.repo.schedule_retry.call_count == 4
        assert client.classification_calls == 5
        harness.entity_repo.insert_primary.assert_called_once()
        harness.files_repo.mark_completed.assert_called_once_with(7)
        harness.files_repo.mark_failed.assert_not_called()

    def test_every_timed_out_upload_is_released(self, tmp_path: Path) -> None:
        client = _TimeoutThenAnswer(_RECEIPT_RESPONSES, failures=4)
        harness = _Harness(tmp_path, client)

        harness.run()

        assert len(client.uploaded) == 5
        assert client.deleted == client.uploaded

    def test_fifth_timeout_fails_the_chain(self, tmp_path: Path) -> None:
        client = _TimeoutThenAnswer(_RECEIPT_RESPONSES, failures=5)
        harness = _Harness(tmp_path, client)

        ran = harness.run()

        assert len(ran) == 5
        assert harness.queue.repo.schedule_retry.call_count == 4
        harness.entity_repo.insert_primary.assert_not_called()
        harness.files_repo.mark_failed.assert_called_once()
        record = harness.analytics_repo.record.call_args.args[0]
        assert record.failure_category == "api_timeout"
