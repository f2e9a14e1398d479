from dataclasses import dataclass
from pathlib import PurePath
from uuid import uuid4

from docflow.database.models import UploadedFile
from docflow.database.repositories.uploaded_files_repository import UploadedFilesRepository
from docflow.deduplication.file_deduplicator import FileDeduplicator
from docflow.deduplication.hashing import content_hash
from docflow.logging.logger import Log
from docflow.pipeline.chain import CATEGORIES
from docflow.pipeline.exceptions import DuplicateSignal
from docflow.pipeline.orchestrator import ChainOrchestrator
from docflow.storage.base import BaseObjectStorage
from docflow.storage.exceptions import StorageError


@dataclass(frozen=True)
class UploadResult:
    file: UploadedFile
    chain_id: str | None
    duplicate: bool = False


class UploadService:
    """Entry point for new uploads: dedup, store, record, dispatch."""

    def __init__(
        self,
        storage: BaseObjectStorage,
        files_repo: UploadedFilesRepository,
        deduplicator: FileDeduplicator,
        orchestrator: ChainOrchestrator,
    ) -> None:
        self._storage = storage
        self._files_repo = files_repo
        self._deduplicator = deduplicator
        self._orchestrator = orchestrator

    def ingest(
        self,
        *,
        user_id: int,
        file_name: str,
        data: bytes,
        mime_type: str,
        category: str,
        tag_ids: list[int] | None = None,
        note: str | None = None,
    ) -> UploadResult:
        """Accept an upload and start processing it.

        A same-owner duplicate resolves to the existing file: no new row, no
        stored object and no chain.

        Raises:
            ValueError: if the category is unknown or the file is empty.
            StorageError: if the bytes cannot be stored.
            psycopg.Error: if the file row cannot be inserted. The stored
                object is removed first.
        """
        if category not in CATEGORIES:
            raise ValueError(f"Unknown upload category '{category}'. Choose from: {list(CATEGORIES)}")
        if not data:
            raise ValueError("Uploaded file is empty")

        digest = content_hash(data)
        try:
            self._deduplicator.check_upload(user_id, digest)
        except DuplicateSignal as signal:
            return self._resolve_duplicate(signal)

        guid = str(uuid4())
        extension = PurePath(file_name).suffix.lstrip(".").lower() or "bin"
        remote_path = f"files/{user_id}/{guid}/original.{extension}"
        self._storage.put(remote_path, data, mime_type)

        try:
            file = self._files_repo.create(
                guid=guid,
                user_id=user_id,
                file_name=file_name,
                extension=extension,
                mime_type=mime_type,
                file_size=len(data),
                content_hash=digest,
                category=category,
                remote_original_path=remote_path,
            )
        except DuplicateSignal as signal:
            self._discard(remote_path)
            return self._resolve_duplicate(signal)
        except Exception:
            self._discard(remote_path)
            raise

        chain_id = self._orchestrator.dispatch(file.id, tag_ids=tag_ids, note=note)
        Log.info("Accepted upload", user_id=user_id, file_id=file.id, chain_id=chain_id)
        return UploadResult(file=file, chain_id=chain_id)

    def _resolve_duplicate(self, signal: DuplicateSignal) -> UploadResult:
        existing = self._files_repo.find_by_id(signal.existing_file_id)
        Log.info(
            "Upload resolved to existing file",
            user_id=existing.user_id,
            file_id=existing.id,
            status=existing.status,
        )
        return UploadResult(file=existing, chain_id=None, duplicate=True)

    def _discard(self, remote_path: str) -> None:
        try:
            self._storage.delete(remote_path)
        except StorageError as exc:
            Log.warning(f"Failed to remove orphaned upload: {exc}", remote_path=remote_path)
