from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any
from uuid import uuid4

import psycopg

from docflow.ai.factory import AIClientFactory
from docflow.classification.classifier import TypeClassifier
from docflow.config.settings import Settings
from docflow.database.models import (
    FileStatus,
    JobRecord,
    JobStatus,
    ProcessingAnalyticsRecord,
    UploadedFile,
)
from docflow.database.repositories.analytics_repository import AnalyticsRepository
from docflow.database.repositories.chain_metadata_repository import ChainMetadataRepository
from docflow.database.repositories.duplicate_flag_repository import DuplicateFlagRepository
from docflow.database.repositories.entity_repository import EntityRepository
from docflow.database.repositories.job_repository import JobRepository
from docflow.database.repositories.uploaded_files_repository import UploadedFilesRepository
from docflow.deduplication.duplicate_flagger import DuplicateFlagger
from docflow.deduplication.entity_guard import EntityGuard
from docflow.extraction.registry import build_extractor_registry
from docflow.logging.logger import Log
from docflow.notifications.base import BaseNotifier
from docflow.notifications.exceptions import NotificationError
from docflow.notifications.factory import NotifierFactory
from docflow.notifications.summary import summarize_extraction
from docflow.pipeline.chain import build_stage_list
from docflow.pipeline.exceptions import (
    PipelineError,
    ProcessingExpiredError,
    SourceNotFoundError,
)
from docflow.pipeline.failures import FailureDecision, classify_failure
from docflow.pipeline.models import ChainMessage, FileProgress, StageName, utcnow
from docflow.pipeline.stages import (
    AnalyzeFileStage,
    ApplyTagsStage,
    DeleteWorkingFilesStage,
    PersistEntityStage,
    ProgressReporter,
    Stage,
)
from docflow.storage.factory import ObjectStorageFactory
from docflow.worker.file_manager import WorkerFileManager


class ChainOrchestrator:
    """Drives a file through its fixed stage list, one queued job per stage.

    Stages only transform the message; enqueueing the next stage, completing
    the file and failing it are decided here.
    """

    def __init__(
        self,
        *,
        job_repo: JobRepository,
        files_repo: UploadedFilesRepository,
        metadata_repo: ChainMetadataRepository,
        analytics_repo: AnalyticsRepository,
        notifier: BaseNotifier,
        stages: Iterable[Stage],
    ) -> None:
        self._job_repo = job_repo
        self._files_repo = files_repo
        self._metadata_repo = metadata_repo
        self._analytics_repo = analytics_repo
        self._notifier = notifier
        self._stages: dict[str, Stage] = {stage.name.value: stage for stage in stages}

    def dispatch(
        self,
        file_id: int,
        *,
        tag_ids: list[int] | None = None,
        note: str | None = None,
        category: str | None = None,
    ) -> str:
        """Start a new chain for a file and return its chain id."""
        file = self._files_repo.find_by_id(file_id)
        message = self._new_message(
            file,
            chain_id=str(uuid4()),
            tag_ids=list(tag_ids or []),
            note=note,
            category=category or file.category,
        )
        self._start(message)
        Log.info(
            "Dispatched chain",
            chain_id=message.chain_id,
            file_id=file_id,
            stages=",".join(message.stages),
        )
        return message.chain_id

    def restart(self, chain_id: str) -> str:
        """Re-run a chain from its first stage under a new task id.

        Returns:
            The new task id.

        Raises:
            ValueError: if the chain is unknown.
            FileRecordNotFoundError: if the file was deleted.
        """
        payload = self._metadata_repo.get(chain_id)
        if payload is not None:
            previous = ChainMessage.from_payload(payload)
            file = self._files_repo.find_by_id(previous.file_id)
            tag_ids, note, category = previous.tag_ids, previous.note, previous.category
        else:
            latest = self._job_repo.find_latest_for_chain(chain_id)
            if latest is None:
                raise ValueError(f"Unknown chain {chain_id}")
            file = self._files_repo.find_by_id(latest.file_id)
            tag_ids = [int(tag_id) for tag_id in latest.payload.get("tag_ids") or []]
            note = latest.payload.get("note")
            category = str(latest.payload.get("category") or file.category)

        message = self._new_message(
            file, chain_id=chain_id, tag_ids=tag_ids, note=note, category=category
        )
        self._start(message)
        Log.info(
            "Restarted chain",
            chain_id=chain_id,
            task_id=message.task_id,
            file_id=file.id,
            from_metadata=payload is not None,
        )
        return message.task_id

    def run_job(self, job: JobRecord) -> None:
        """Execute one claimed stage job and advance the chain on success.

        Raises:
            Exception: whatever the stage raised; the job runner decides
                between retry and terminal failure.
        """
        message = self._load_message(job)
        if message.is_expired():
            self._expire(job, message)
            return

        stage = self._stages.get(job.stage)
        if stage is None:
            raise PipelineError(f"No stage registered under '{job.stage}'", stage=job.stage)

        result = stage.run(message, self._progress_reporter(job))
        self._advance(job, result)

    def fail_chain(
        self,
        job: JobRecord,
        exc: BaseException,
        decision: FailureDecision | None = None,
    ) -> None:
        """Terminal failure: fail the job and the file, record it, tell the owner."""
        decision = decision or classify_failure(exc)
        self._job_repo.mark_failed(job.id, decision.message)
        try:
            message: ChainMessage | None = self._load_message(job)
        except PipelineError:
            message = None
        self._finish_failed(job, message, exc, decision)

    def get_status(self, file_id: int) -> FileProgress:
        """Status and chain progress (average of per-stage progress) for a file."""
        file = self._files_repo.find_by_id(file_id)
        latest = self._job_repo.find_latest_for_file(file_id)
        if latest is None:
            progress = 100 if file.status == FileStatus.COMPLETED.value else 0
            return FileProgress(
                file_id=file_id,
                status=file.status,
                progress=progress,
                last_error=file.last_error,
            )

        jobs = self._job_repo.find_task_jobs(latest.task_id)
        stages = [str(stage) for stage in latest.payload.get("stages") or []]
        if not stages:
            stages = [job.stage for job in jobs]
        per_stage: dict[str, int] = {}
        for job in jobs:
            done = job.status in (JobStatus.DONE.value, JobStatus.EXPIRED.value)
            per_stage[job.stage] = 100 if done else job.progress
        progress = round(sum(per_stage.get(stage, 0) for stage in stages) / len(stages))
        if file.status == FileStatus.COMPLETED.value:
            progress = 100

        current = None
        if latest.status in (JobStatus.PENDING.value, JobStatus.PROCESSING.value):
            current = latest.stage
        return FileProgress(
            file_id=file_id,
            status=file.status,
            progress=progress,
            chain_id=latest.chain_id,
            current_stage=current,
            last_error=file.last_error,
        )

    def _new_message(
        self,
        file: UploadedFile,
        *,
        chain_id: str,
        tag_ids: list[int],
        note: str | None,
        category: str,
    ) -> ChainMessage:
        if not file.remote_path:
            raise SourceNotFoundError(
                "File has no stored original. Please re-upload the file.", file_id=file.id
            )
        return ChainMessage(
            chain_id=chain_id,
            task_id=str(uuid4()),
            file_id=file.id,
            user_id=file.user_id,
            file_guid=file.guid,
            file_name=file.file_name,
            extension=file.extension,
            mime_type=file.mime_type,
            remote_path=file.remote_path,
            category=category,
            stages=build_stage_list(category, tag_ids=tag_ids, note=note),
            started_at=utcnow(),
            expires_at=self._metadata_repo.expiry_from_now(),
            tag_ids=tag_ids,
            note=note,
        )

    def _start(self, message: ChainMessage) -> None:
        payload = message.to_payload()
        self._files_repo.mark_processing(message.file_id)
        self._metadata_repo.put(message.chain_id, payload)
        self._job_repo.enqueue(
            chain_id=message.chain_id,
            task_id=message.task_id,
            file_id=message.file_id,
            stage=message.stages[0],
            position=0,
            payload=payload,
        )

    def _load_message(self, job: JobRecord) -> ChainMessage:
        try:
            return ChainMessage.from_payload(job.payload)
        except ValueError as exc:
            raise PipelineError(str(exc), chain_id=job.chain_id, job_id=job.id) from exc

    def _progress_reporter(self, job: JobRecord) -> ProgressReporter:
        last = job.progress

        def report(value: int) -> None:
            nonlocal last
            value = max(0, min(100, value))
            if value <= last:
                return
            last = value
            self._job_repo.update_progress(job.id, value)

        return report

    def _advance(self, job: JobRecord, message: ChainMessage) -> None:
        payload = message.to_payload()
        next_stage = message.next_stage(job.stage)
        if next_stage is not None:
            self._metadata_repo.put(message.chain_id, payload)
            self._job_repo.enqueue(
                chain_id=message.chain_id,
                task_id=message.task_id,
                file_id=message.file_id,
                stage=next_stage,
                position=job.position + 1,
                payload=payload,
            )
        self._job_repo.mark_done(job.id, payload)
        if next_stage is None:
            self._complete(message)

    def _complete(self, message: ChainMessage) -> None:
        changed = self._files_repo.mark_completed(message.file_id)
        file = self._files_repo.find_optional(message.file_id)
        summary = summarize_extraction(message.extraction, message.entity_id)

        if file is not None:
            self._record(self._success_record(message))
            if changed:
                self._notify(
                    lambda: self._notifier.notify_completed(
                        file,
                        chain_id=message.chain_id,
                        summary=summary,
                    ),
                    message.chain_id,
                    message.file_id,
                )
        self._metadata_repo.forget(message.chain_id)
        Log.info(
            "Chain completed",
            chain_id=message.chain_id,
            file_id=message.file_id,
            entity_id=message.entity_id,
            transitioned=changed,
        )

    def _expire(self, job: JobRecord, message: ChainMessage) -> None:
        self._job_repo.mark_expired(job.id)
        Log.warning(
            "Chain message expired before the stage ran",
            chain_id=job.chain_id,
            file_id=job.file_id,
            stage=job.stage,
        )
        if job.stage == StageName.DELETE_WORKING_FILES.value:
            cleanup = self._stages.get(job.stage)
            if isinstance(cleanup, DeleteWorkingFilesStage):
                cleanup.sweep()
            self._complete(message)
            return

        exc = ProcessingExpiredError(
            f"Processing window expired before stage '{job.stage}' ran",
            chain_id=job.chain_id,
            stage=job.stage,
        )
        self._finish_failed(job, message, exc, classify_failure(exc))

    def _finish_failed(
        self,
        job: JobRecord,
        message: ChainMessage | None,
        exc: BaseException,
        decision: FailureDecision,
    ) -> None:
        Log.error(
            f"Chain failed: {decision.message}",
            chain_id=job.chain_id,
            file_id=job.file_id,
            stage=job.stage,
            category=decision.category,
        )
        file = self._files_repo.find_optional(job.file_id)
        if file is None:
            Log.info(
                "File no longer exists, dropping chain",
                chain_id=job.chain_id,
                file_id=job.file_id,
            )
            self._metadata_repo.forget(job.chain_id)
            return

        self._files_repo.mark_failed(file.id, decision.message)
        self._record(self._failure_record(job, file, message, exc, decision))
        self._notify(
            lambda: self._notifier.notify_failed(
                file,
                chain_id=job.chain_id,
                error=decision.message,
                category=decision.category,
            ),
            job.chain_id,
            file.id,
        )

    def _success_record(self, message: ChainMessage) -> ProcessingAnalyticsRecord:
        classification = message.classification
        extraction = message.extraction
        return ProcessingAnalyticsRecord(
            file_id=message.file_id,
            user_id=message.user_id,
            chain_id=message.chain_id,
            status="completed",
            document_type=classification.type.value if classification else None,
            classification_confidence=classification.confidence if classification else None,
            classification_reasoning=classification.reasoning if classification else None,
            extraction_confidence=extraction.confidence if extraction else None,
            validation_warnings=list(extraction.warnings) if extraction else [],
            duration_ms=_duration_ms(message),
            model_used=message.model_used,
        )

    def _failure_record(
        self,
        job: JobRecord,
        file: UploadedFile,
        message: ChainMessage | None,
        exc: BaseException,
        decision: FailureDecision,
    ) -> ProcessingAnalyticsRecord:
        context: dict[str, Any] = dict(getattr(exc, "context", None) or {})
        classification = message.classification if message else None
        if classification is not None:
            document_type: Any = classification.type.value
            confidence: Any = classification.confidence
            reasoning: Any = classification.reasoning
        else:
            document_type = context.get("document_type")
            confidence = context.get("classification_confidence")
            reasoning = context.get("classification_reasoning")
        return ProcessingAnalyticsRecord(
            file_id=file.id,
            user_id=file.user_id,
            chain_id=job.chain_id,
            status="failed",
            document_type=document_type,
            classification_confidence=confidence,
            classification_reasoning=reasoning,
            failure_category=decision.category,
            error_message=decision.message,
            is_retryable=decision.retryable,
            duration_ms=_duration_ms(message) if message else None,
            model_used=message.model_used if message else None,
        )

    def _record(self, record: ProcessingAnalyticsRecord) -> None:
        try:
            self._analytics_repo.record(record)
        except psycopg.Error as exc:
            Log.warning(
                f"Failed to record processing analytics: {exc}",
                chain_id=record.chain_id,
                file_id=record.file_id,
            )

    @staticmethod
    def _notify(send: Callable[[], None], chain_id: str, file_id: int) -> None:
        try:
            send()
        except NotificationError as exc:
            Log.warning(f"Owner notification failed: {exc}", chain_id=chain_id, file_id=file_id)


def _duration_ms(message: ChainMessage) -> int:
    return max(0, int((utcnow() - message.started_at).total_seconds() * 1000))


def build_orchestrator(settings: Settings) -> ChainOrchestrator:
    """Build a ChainOrchestrator with all stages and adapters wired in."""
    storage = ObjectStorageFactory.create(settings)
    client = AIClientFactory.create(settings)
    file_manager = WorkerFileManager(storage, Path(settings.working_dir))
    files_repo = UploadedFilesRepository()
    metadata_repo = ChainMetadataRepository(settings.chain_metadata_ttl_hours)
    entity_repo = EntityRepository()
    stages: list[Stage] = [
        AnalyzeFileStage(
            file_manager,
            client,
            TypeClassifier(client),
            build_extractor_registry(client),
            classification_threshold=settings.classification_threshold,
        ),
        PersistEntityStage(
            files_repo,
            EntityGuard(entity_repo),
            DuplicateFlagger(entity_repo, DuplicateFlagRepository()),
        ),
        ApplyTagsStage(files_repo),
        DeleteWorkingFilesStage(
            file_manager,
            client,
            metadata_repo,
            settings.stale_file_max_age_seconds,
        ),
    ]
    return ChainOrchestrator(
        job_repo=JobRepository(settings.max_stage_attempts, settings.stage_timeout_seconds),
        files_repo=files_repo,
        metadata_repo=metadata_repo,
        analytics_repo=AnalyticsRepository(),
        notifier=NotifierFactory.create(settings),
        stages=stages,
    )
