from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar


class DocumentType(str, Enum):
    RECEIPT = "receipt"
    INVOICE = "invoice"
    VOUCHER = "voucher"
    WARRANTY = "warranty"
    RETURN_POLICY = "return_policy"
    CONTRACT = "contract"
    BANK_STATEMENT = "bank_statement"
    DOCUMENT = "document"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: object) -> "DocumentType":
        """Map any provider value onto the enum; anything unrecognised is UNKNOWN."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return cls.UNKNOWN
        normalized = value.strip().lower().replace("-", "_").replace(" ", "_")
        try:
            return cls(normalized)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class ClassificationHints:
    filename: str = "unknown"
    extension: str = "unknown"
    category: str = "unknown"


@dataclass(frozen=True)
class ClassificationResult:
    """Outcome of Pass 1. Confidence is always clamped to [0, 1]."""

    HIGH_CONFIDENCE: ClassVar[float] = 0.9
    LOW_CONFIDENCE: ClassVar[float] = 0.5
    DEFAULT_THRESHOLD: ClassVar[float] = 0.7

    type: DocumentType
    confidence: float
    reasoning: str = ""
    raw: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", DocumentType.parse(self.type))
        object.__setattr__(self, "confidence", _clamp_confidence(self.confidence))

    @classmethod
    def from_provider_payload(cls, data: dict[str, Any]) -> "ClassificationResult":
        """Build a result from whatever shape the provider returned."""
        reasoning = data.get("reasoning")
        return cls(
            type=DocumentType.parse(data.get("document_type")),
            confidence=data.get("confidence", 0.0),  # type: ignore[arg-type]
            reasoning=reasoning if isinstance(reasoning, str) else "",
            raw=dict(data),
        )

    def is_valid(self, threshold: float = DEFAULT_THRESHOLD) -> bool:
        return self.type is not DocumentType.UNKNOWN and self.confidence >= threshold

    def is_high_confidence(self) -> bool:
        return self.confidence >= self.HIGH_CONFIDENCE

    def is_low_confidence(self) -> bool:
        return self.confidence < self.LOW_CONFIDENCE

    def confidence_level(self) -> str:
        if self.confidence >= 0.95:
            return "very_high"
        if self.confidence >= 0.8:
            return "high"
        if self.confidence >= 0.6:
            return "moderate"
        if self.confidence >= 0.4:
            return "low"
        return "very_low"

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "raw": self.raw,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "ClassificationResult":
        return cls(
            type=DocumentType.parse(payload.get("type")),
            confidence=payload.get("confidence", 0.0),
            reasoning=str(payload.get("reasoning", "")),
            raw=dict(payload.get("raw") or {}),
        )


def _clamp_confidence(value: object) -> float:
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0
    if number != number:  # NaN
        return 0.0
    return max(0.0, min(1.0, number))
