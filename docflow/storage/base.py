from abc import ABC, abstractmethod
from datetime import datetime


class BaseObjectStorage(ABC):
    """Contract for object storage adapters. Object storage is authoritative."""

    @abstractmethod
    def get(self, path: str) -> bytes:
        """Return the object's bytes.

        Raises:
            ObjectNotFoundError: if the object does not exist.
            StorageError: on any other failure.
        """

    @abstractmethod
    def put(self, path: str, data: bytes, content_type: str | None = None) -> None:
        """Write bytes under path, replacing any existing object."""

    @abstractmethod
    def delete(self, path: str) -> None:
        """Delete an object. Deleting a missing object is not an error."""

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Return True if the object exists."""

    @abstractmethod
    def size(self, path: str) -> int:
        """Return the object size in bytes."""

    @abstractmethod
    def last_modified(self, path: str) -> datetime:
        """Return the object's last modification time (UTC)."""
