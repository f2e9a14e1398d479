from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any


class FileStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"
    EXPIRED = "expired"


@dataclass
class JobRecord:
    """Represents a row from the stage_jobs table."""

    id: int
    chain_id: str
    task_id: str
    file_id: int
    stage: str
    position: int
    status: str
    attempts: int
    progress: int = 0
    payload: dict[str, Any] = field(default_factory=dict)
    error_message: str | None = None
    available_at: datetime | None = None
    locked_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class UploadedFile:
    """Represents a row from the uploaded_files table."""

    id: int
    guid: str
    user_id: int
    file_name: str
    extension: str
    mime_type: str
    file_size: int
    content_hash: str | None
    category: str
    status: str
    remote_original_path: str | None = None
    remote_archive_path: str | None = None
    remote_preview_path: str | None = None
    note: str | None = None
    last_error: str | None = None
    meta: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def remote_path(self) -> str | None:
        """Path of the copy the pipeline should read, archive first."""
        return self.remote_archive_path or self.remote_original_path


@dataclass(frozen=True)
class EntityRecord:
    """Represents a row from the entities table."""

    id: int
    file_id: int
    user_id: int
    entity_type: str
    is_primary: bool
    confidence: float
    data: dict[str, Any]
    entity_date: date | None = None
    created_at: datetime | None = None
    deleted_at: datetime | None = None

    @property
    def uses_fallback_date(self) -> bool:
        metadata = self.data.get("metadata")
        if not isinstance(metadata, dict):
            return False
        return metadata.get("fallback_date_used") is True


@dataclass(frozen=True)
class NewEntity:
    """Entity payload ready for insertion, children split out by kind."""

    file_id: int
    user_id: int
    entity_type: str
    confidence: float
    data: dict[str, Any]
    entity_date: date | None
    children: dict[str, list[dict[str, Any]]] = field(default_factory=dict)


@dataclass(frozen=True)
class ProcessingAnalyticsRecord:
    """One chain outcome for the processing_analytics table."""

    file_id: int
    user_id: int
    chain_id: str
    status: str
    document_type: str | None = None
    classification_confidence: float | None = None
    classification_reasoning: str | None = None
    extraction_confidence: float | None = None
    validation_warnings: list[str] = field(default_factory=list)
    failure_category: str | None = None
    error_message: str | None = None
    is_retryable: bool | None = None
    duration_ms: int | None = None
    model_used: str | None = None


@dataclass(frozen=True)
class RateStat:
    """Share of analytics rows matching a condition."""

    total: int
    matching: int

    @property
    def rate(self) -> float:
        return self.matching / self.total if self.total else 0.0


@dataclass(frozen=True)
class TypeFailureRate:
    document_type: str
    total: int
    failures: int

    @property
    def rate(self) -> float:
        return self.failures / self.total if self.total else 0.0


@dataclass(frozen=True)
class DuplicateFlag:
    """Represents a row from the duplicate_flags table."""

    id: int
    user_id: int
    file_id: int
    duplicate_file_id: int
    reason: str
    status: str = "open"
    created_at: datetime | None = None
