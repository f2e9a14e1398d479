from abc import ABC, abstractmethod
from collections.abc import Callable
from pathlib import Path
from typing import ClassVar

from docflow.ai.client_base import BaseFileAnalysisClient
from docflow.ai.exceptions import ProviderError
from docflow.ai.models import FileReference
from docflow.classification.classifier import TypeClassifier
from docflow.classification.models import ClassificationHints, ClassificationResult, DocumentType
from docflow.database.repositories.chain_metadata_repository import ChainMetadataRepository
from docflow.database.repositories.uploaded_files_repository import UploadedFilesRepository
from docflow.deduplication.duplicate_flagger import DuplicateFlagger
from docflow.deduplication.entity_guard import EntityGuard
from docflow.extraction.models import ExtractionContext
from docflow.extraction.registry import ExtractorRegistry
from docflow.logging.logger import Log
from docflow.pipeline.exceptions import (
    ClassificationRejectedError,
    PipelineError,
    StructuralValidationError,
    TransientProviderError,
    UnsupportedTypeError,
)
from docflow.pipeline.models import ChainMessage, StageName
from docflow.worker.file_manager import WorkerFileManager

ProgressReporter = Callable[[int], None]


class Stage(ABC):
    """One step of a chain. Receives the typed message and returns the updated one."""

    name: ClassVar[StageName]

    @abstractmethod
    def run(self, message: ChainMessage, progress: ProgressReporter) -> ChainMessage:
        raise NotImplementedError


class AnalyzeFileStage(Stage):
    """Classify (Pass 1) and extract (Pass 2) against a local copy of the file."""

    name = StageName.ANALYZE_FILE

    def __init__(
        self,
        file_manager: WorkerFileManager,
        client: BaseFileAnalysisClient,
        classifier: TypeClassifier,
        registry: ExtractorRegistry,
        classification_threshold: float = ClassificationResult.DEFAULT_THRESHOLD,
    ) -> None:
        self._file_manager = file_manager
        self._client = client
        self._classifier = classifier
        self._registry = registry
        self._threshold = classification_threshold

    def run(self, message: ChainMessage, progress: ProgressReporter) -> ChainMessage:
        progress(5)
        try:
            return self._file_manager.process_with_cleanup(
                message.remote_path,
                message.file_guid,
                message.extension,
                lambda path: self._analyze(path, message, progress),
            )
        except ProviderError as exc:
            if exc.retryable:
                raise TransientProviderError(
                    str(exc), provider_code=exc.code, **exc.context
                ) from exc
            raise

    def _analyze(
        self,
        path: Path,
        message: ChainMessage,
        progress: ProgressReporter,
    ) -> ChainMessage:
        file_ref = self._client.upload_file(
            path,
            mime_type=message.mime_type,
            display_name=message.file_name,
        )
        progress(20)
        try:
            hints = ClassificationHints(
                filename=message.file_name,
                extension=message.extension,
                category=message.category,
            )
            classification = self._classifier.classify(file_ref, hints)
            progress(45)
            try:
                self._check_classification(classification)
                extractor = self._registry.resolve(classification.type)
                context = ExtractionContext(
                    file_name=message.file_name,
                    classification=classification,
                    conversation=self._classifier.context_for(file_ref, hints, classification),
                )
                extraction = extractor.extract(file_ref, context)
            except (PipelineError, ProviderError) as exc:
                _annotate(exc, classification)
                raise
            progress(90)
        finally:
            released = self._release(file_ref, message)

        Log.info(
            f"Analyzed file as {extraction.type.value}",
            chain_id=message.chain_id,
            file_id=message.file_id,
            confidence=extraction.confidence,
            warnings=len(extraction.warnings),
        )
        return message.evolve(
            classification=classification,
            extraction=extraction,
            model_used=self._client.model_name,
            # The cleanup stage retries a delete that failed here.
            provider_file=None if released else file_ref,
        )

    def _check_classification(self, classification: ClassificationResult) -> None:
        if classification.type is DocumentType.UNKNOWN:
            raise UnsupportedTypeError(DocumentType.UNKNOWN.value)
        if not classification.is_valid(self._threshold):
            raise ClassificationRejectedError(
                f"Classification confidence {classification.confidence:.2f} is below "
                f"threshold {self._threshold:.2f} for type '{classification.type.value}'"
            )

    def _release(self, file_ref: FileReference, message: ChainMessage) -> bool:
        try:
            self._client.delete_file(file_ref)
        except ProviderError as exc:
            Log.warning(
                f"Failed to delete provider file, leaving it to cleanup: {exc}",
                chain_id=message.chain_id,
                file_id=message.file_id,
                provider_file=file_ref.name,
            )
            return False
        return True


class PersistEntityStage(Stage):
    """Turn the extraction into the file's single primary entity."""

    name = StageName.PERSIST_ENTITY

    def __init__(
        self,
        files_repo: UploadedFilesRepository,
        entity_guard: EntityGuard,
        flagger: DuplicateFlagger | None = None,
    ) -> None:
        self._files_repo = files_repo
        self._entity_guard = entity_guard
        self._flagger = flagger

    def run(self, message: ChainMessage, progress: ProgressReporter) -> ChainMessage:
        if message.extraction is None:
            raise StructuralValidationError(
                "No extraction result to persist",
                chain_id=message.chain_id,
                file_id=message.file_id,
            )
        file = self._files_repo.find_by_id(message.file_id)
        progress(30)

        entity, created = self._entity_guard.get_or_create(file, message.extraction)
        progress(80)

        meta: dict[str, object] = {
            "document_type": message.extraction.type.value,
            "entity_id": entity.id,
            "extraction_confidence": message.extraction.confidence,
            "validation_warnings": list(message.extraction.warnings),
        }
        if message.classification is not None:
            meta["classification_confidence"] = message.classification.confidence
        if created and self._flagger is not None:
            duplicates = self._flagger.flag(entity)
            if duplicates:
                meta["possible_duplicate_file_ids"] = duplicates
        self._files_repo.merge_meta(file.id, meta)
        return message.evolve(entity_id=entity.id, entity_created=created)


class ApplyTagsStage(Stage):
    name = StageName.APPLY_TAGS

    def __init__(self, files_repo: UploadedFilesRepository) -> None:
        self._files_repo = files_repo

    def run(self, message: ChainMessage, progress: ProgressReporter) -> ChainMessage:
        self._files_repo.find_by_id(message.file_id)
        self._files_repo.apply_tags(message.file_id, message.tag_ids, message.note)
        progress(100)
        Log.info(
            f"Applied {len(message.tag_ids)} tags",
            chain_id=message.chain_id,
            file_id=message.file_id,
            note=bool(message.note),
        )
        return message


class DeleteWorkingFilesStage(Stage):
    """Reclaim local working copies. Never fails the chain."""

    name = StageName.DELETE_WORKING_FILES

    def __init__(
        self,
        file_manager: WorkerFileManager,
        client: BaseFileAnalysisClient,
        metadata_repo: ChainMetadataRepository,
        stale_file_max_age_seconds: int,
    ) -> None:
        self._file_manager = file_manager
        self._client = client
        self._metadata_repo = metadata_repo
        self._stale_file_max_age_seconds = stale_file_max_age_seconds

    def run(self, message: ChainMessage, progress: ProgressReporter) -> ChainMessage:
        if self._metadata_repo.get(message.chain_id) is None:
            Log.warning(
                "Chain metadata missing, sweeping stale working files",
                chain_id=message.chain_id,
                file_id=message.file_id,
            )
            self.sweep()
        else:
            removed = self._file_manager.cleanup_file(message.file_guid)
            Log.debug(
                f"Removed {removed} working files",
                chain_id=message.chain_id,
                file_id=message.file_id,
            )
        progress(60)

        if message.provider_file is not None:
            try:
                self._client.delete_file(message.provider_file)
            except ProviderError as exc:
                Log.warning(
                    f"Failed to delete provider file: {exc}",
                    chain_id=message.chain_id,
                    file_id=message.file_id,
                )
        progress(100)
        return message.evolve(provider_file=None)

    def sweep(self) -> int:
        """Age-based fallback when we no longer know which file to reclaim."""
        try:
            return self._file_manager.sweep_stale_files(self._stale_file_max_age_seconds)
        except OSError as exc:
            Log.warning(
                f"Stale file sweep failed: {exc}",
                working_dir=str(self._file_manager.working_dir),
            )
            return 0


def _annotate(exc: PipelineError | ProviderError, classification: ClassificationResult) -> None:
    exc.context.setdefault("document_type", classification.type.value)
    exc.context.setdefault("classification_confidence", classification.confidence)
    exc.context.setdefault("classification_reasoning", classification.reasoning)
