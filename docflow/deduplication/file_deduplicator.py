from docflow.database.repositories.uploaded_files_repository import UploadedFilesRepository
from docflow.logging.logger import Log
from docflow.pipeline.exceptions import DuplicateSignal


class FileDeduplicator:
    """Upload-time duplicate detection on the per-owner content hash."""

    def __init__(self, files_repo: UploadedFilesRepository) -> None:
        self._files_repo = files_repo

    def check_upload(self, user_id: int, content_hash: str) -> None:
        """Raise DuplicateSignal if this owner already uploaded these bytes.

        Raises:
            DuplicateSignal: carrying the existing file id and the hash.
        """
        existing = self._files_repo.find_duplicate_by_hash(user_id, content_hash)
        if existing is None:
            return
        Log.info(
            "Duplicate upload detected",
            user_id=user_id,
            existing_file_id=existing.id,
            content_hash=content_hash,
        )
        raise DuplicateSignal(existing.id, content_hash)
