import os
from datetime import datetime, timezone
from pathlib import Path

from docflow.storage.base import BaseObjectStorage
from docflow.storage.exceptions import ObjectNotFoundError, StorageError


class LocalStorageAdapter(BaseObjectStorage):
    """Filesystem-backed object storage for development and tests."""

    def __init__(self, root: Path) -> None:
        self._root = root

    def get(self, path: str) -> bytes:
        target = self._resolve(path)
        if not target.is_file():
            raise ObjectNotFoundError(f"Object not found: {path}")
        try:
            return target.read_bytes()
        except OSError as exc:
            raise StorageError(f"Failed to read {path}: {exc}") from exc

    def put(self, path: str, data: bytes, content_type: str | None = None) -> None:
        _ = content_type
        target = self._resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            raise StorageError(f"Failed to write {path}: {exc}") from exc

    def delete(self, path: str) -> None:
        try:
            self._resolve(path).unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"Failed to delete {path}: {exc}") from exc

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()

    def size(self, path: str) -> int:
        return self._stat(path).st_size

    def last_modified(self, path: str) -> datetime:
        return datetime.fromtimestamp(self._stat(path).st_mtime, tz=timezone.utc)

    def _stat(self, path: str) -> os.stat_result:
        target = self._resolve(path)
        if not target.is_file():
            raise ObjectNotFoundError(f"Object not found: {path}")
        return target.stat()

    def _resolve(self, path: str) -> Path:
        target = (self._root / path.lstrip("/")).resolve()
        if not target.is_relative_to(self._root.resolve()):
            raise StorageError(f"Path escapes storage root: {path}")
        return target
