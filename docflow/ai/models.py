from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class FileReference:
    """A file uploaded to the AI provider, addressable in later calls."""

    uri: str
    name: str
    mime_type: str
    size_bytes: int = 0

    def to_payload(self) -> dict[str, Any]:
        return {
            "uri": self.uri,
            "name": self.name,
            "mime_type": self.mime_type,
            "size_bytes": self.size_bytes,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "FileReference":
        return cls(
            uri=str(payload["uri"]),
            name=str(payload["name"]),
            mime_type=str(payload.get("mime_type", "application/octet-stream")),
            size_bytes=int(payload.get("size_bytes", 0)),
        )


@dataclass(frozen=True)
class ConversationTurn:
    role: str
    text: str
    file_ref: FileReference | None = None


@dataclass(frozen=True)
class AnalysisResponse:
    """Parsed provider answer; `data` is the JSON object the model returned."""

    data: dict[str, Any]
    raw_text: str
    model: str
    usage: dict[str, Any] = field(default_factory=dict)
