from dataclasses import dataclass, field
from typing import Any

from docflow.ai.conversation import Conversation
from docflow.classification.models import ClassificationResult, DocumentType


@dataclass(frozen=True)
class ExtractionContext:
    """What Pass 2 may know beyond the file itself."""

    file_name: str = ""
    classification: ClassificationResult | None = None
    conversation: Conversation | None = None


@dataclass(frozen=True)
class ExtractionResult:
    """Normalized Pass 2 output with non-fatal warnings."""

    type: DocumentType
    confidence: float
    data: dict[str, Any]
    warnings: list[str] = field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "confidence": self.confidence,
            "data": self.data,
            "warnings": list(self.warnings),
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "ExtractionResult":
        return cls(
            type=DocumentType.parse(payload.get("type")),
            confidence=float(payload.get("confidence", 0.0)),
            data=dict(payload.get("data") or {}),
            warnings=[str(w) for w in payload.get("warnings") or []],
        )
