"""Local working copies of files whose source of truth is object storage."""

import os
import tempfile
import time
from collections.abc import Callable, Generator, Iterable
from contextlib import contextmanager
from pathlib import Path
from typing import TypeVar

from docflow.logging.logger import Log
from docflow.pipeline.exceptions import SourceNotFoundError
from docflow.storage.base import BaseObjectStorage
from docflow.storage.exceptions import StorageError

T = TypeVar("T")

STALE_FILE_EXTENSIONS: tuple[str, ...] = (".jpg", ".jpeg", ".pdf")


class WorkerFileManager:
    """Materializes and reclaims local working copies for pipeline stages.

    Any stage may run on a different worker than the one that last held the
    bytes, so every stage that needs the file asks for it here.
    """

    def __init__(self, storage: BaseObjectStorage, working_dir: Path) -> None:
        self._storage = storage
        self._working_dir = working_dir

    @property
    def working_dir(self) -> Path:
        return self._working_dir

    def local_path_for(self, file_id: str, extension: str) -> Path:
        return self._working_dir / f"{file_id}.{extension.lstrip('.').lower()}"

    def ensure_local_file(
        self,
        remote_path: str,
        file_id: str,
        extension: str,
        existing_local_path: Path | None = None,
    ) -> Path:
        """Return a non-empty local copy, downloading it when needed.

        Args:
            remote_path: Object storage key of the source file.
            file_id: Stable file identifier (guid) used to name the copy.
            extension: File extension without the dot.
            existing_local_path: A copy a previous step may have left behind.

        Raises:
            SourceNotFoundError: if the file cannot be fetched from storage.
        """
        for candidate in (existing_local_path, self.local_path_for(file_id, extension)):
            if candidate is not None and _is_non_empty_file(candidate):
                return candidate

        try:
            data = self._storage.get(remote_path)
        except StorageError as exc:
            raise SourceNotFoundError(
                "The original file is no longer available in storage. "
                "Please re-upload the file.",
                remote_path=remote_path,
                file_id=file_id,
            ) from exc

        target = self.local_path_for(file_id, extension)
        self._write_atomically(target, data)
        Log.debug(
            f"Downloaded {len(data)} bytes to working copy",
            file_id=file_id,
            path=str(target),
        )
        return target

    @contextmanager
    def local_copy(
        self,
        remote_path: str,
        file_id: str,
        extension: str,
        existing_local_path: Path | None = None,
    ) -> Generator[Path, None, None]:
        """Yield a local copy and remove it on every exit path."""
        path = self.ensure_local_file(remote_path, file_id, extension, existing_local_path)
        try:
            yield path
        finally:
            self.remove_local_file(path)

    def process_with_cleanup(
        self,
        remote_path: str,
        file_id: str,
        extension: str,
        callback: Callable[[Path], T],
    ) -> T:
        """Run callback against a local copy; the copy is removed afterwards."""
        with self.local_copy(remote_path, file_id, extension) as path:
            return callback(path)

    def remove_local_file(self, path: Path) -> bool:
        """Best-effort delete. Failures are logged, never raised."""
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            Log.warning(f"Failed to remove working file: {exc}", path=str(path))
            return False
        return True

    def cleanup_file(self, file_id: str) -> int:
        """Remove every working copy left for a file. Returns files removed."""
        if not self._working_dir.is_dir():
            return 0
        removed = 0
        for path in self._working_dir.glob(f"{file_id}.*"):
            if path.is_file() and self.remove_local_file(path):
                removed += 1
        return removed

    def sweep_stale_files(
        self,
        max_age_seconds: int,
        extensions: Iterable[str] = STALE_FILE_EXTENSIONS,
    ) -> int:
        """Remove working files older than max_age_seconds.

        Idempotent. Used when no chain metadata tells us which file to reclaim.
        """
        if not self._working_dir.is_dir():
            return 0
        allowed = {ext.lower() for ext in extensions}
        cutoff = time.time() - max_age_seconds
        removed = 0
        for path in self._working_dir.iterdir():
            if not path.is_file() or path.suffix.lower() not in allowed:
                continue
            try:
                if path.stat().st_mtime >= cutoff:
                    continue
            except FileNotFoundError:
                continue
            if self.remove_local_file(path):
                removed += 1
        if removed:
            Log.info(f"Swept {removed} stale working files", working_dir=str(self._working_dir))
        return removed

    def _write_atomically(self, target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


def _is_non_empty_file(path: Path) -> bool:
    try:
        return path.is_file() and path.stat().st_size > 0
    except OSError:
        return False
