from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from docflow.ai.models import FileReference
from docflow.classification.models import ClassificationResult
from docflow.extraction.models import ExtractionResult


class StageName(str, Enum):
    ANALYZE_FILE = "analyze_file"
    PERSIST_ENTITY = "persist_entity"
    APPLY_TAGS = "apply_tags"
    DELETE_WORKING_FILES = "delete_working_files"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class ChainMessage:
    """Typed message handed from stage to stage.

    Stages never share process memory; everything a later stage needs
    travels here and is stored as JSON on the job row and in chain metadata.
    """

    chain_id: str
    task_id: str
    file_id: int
    user_id: int
    file_guid: str
    file_name: str
    extension: str
    mime_type: str
    remote_path: str
    category: str
    stages: list[str]
    started_at: datetime
    expires_at: datetime
    tag_ids: list[int] = field(default_factory=list)
    note: str | None = None
    classification: ClassificationResult | None = None
    extraction: ExtractionResult | None = None
    entity_id: int | None = None
    entity_created: bool | None = None
    provider_file: FileReference | None = None
    model_used: str | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) >= self.expires_at

    def evolve(self, **changes: Any) -> "ChainMessage":
        return replace(self, **changes)

    def next_stage(self, current: str) -> str | None:
        position = self.stages.index(current)
        if position + 1 < len(self.stages):
            return self.stages[position + 1]
        return None

    def to_payload(self) -> dict[str, Any]:
        return {
            "chain_id": self.chain_id,
            "task_id": self.task_id,
            "file_id": self.file_id,
            "user_id": self.user_id,
            "file_guid": self.file_guid,
            "file_name": self.file_name,
            "extension": self.extension,
            "mime_type": self.mime_type,
            "remote_path": self.remote_path,
            "category": self.category,
            "stages": list(self.stages),
            "started_at": self.started_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "tag_ids": list(self.tag_ids),
            "note": self.note,
            "classification": self.classification.to_payload() if self.classification else None,
            "extraction": self.extraction.to_payload() if self.extraction else None,
            "entity_id": self.entity_id,
            "entity_created": self.entity_created,
            "provider_file": self.provider_file.to_payload() if self.provider_file else None,
            "model_used": self.model_used,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "ChainMessage":
        """Rebuild a message from its JSON form.

        Raises:
            ValueError: if a required key is missing or malformed.
        """
        try:
            classification = payload.get("classification")
            extraction = payload.get("extraction")
            provider_file = payload.get("provider_file")
            return cls(
                chain_id=str(payload["chain_id"]),
                task_id=str(payload["task_id"]),
                file_id=int(payload["file_id"]),
                user_id=int(payload["user_id"]),
                file_guid=str(payload["file_guid"]),
                file_name=str(payload["file_name"]),
                extension=str(payload["extension"]),
                mime_type=str(payload["mime_type"]),
                remote_path=str(payload["remote_path"]),
                category=str(payload["category"]),
                stages=[str(stage) for stage in payload["stages"]],
                started_at=_parse_datetime(payload["started_at"]),
                expires_at=_parse_datetime(payload["expires_at"]),
                tag_ids=[int(tag_id) for tag_id in payload.get("tag_ids") or []],
                note=payload.get("note"),
                classification=(
                    ClassificationResult.from_payload(classification) if classification else None
                ),
                extraction=ExtractionResult.from_payload(extraction) if extraction else None,
                entity_id=payload.get("entity_id"),
                entity_created=payload.get("entity_created"),
                provider_file=FileReference.from_payload(provider_file) if provider_file else None,
                model_used=payload.get("model_used"),
            )
        except (KeyError, TypeError) as exc:
            raise ValueError(f"Malformed chain message: {exc}") from exc


@dataclass(frozen=True)
class FileProgress:
    """Pollable processing state of one uploaded file."""

    file_id: int
    status: str
    progress: int
    chain_id: str | None = None
    current_stage: str | None = None
    last_error: str | None = None
