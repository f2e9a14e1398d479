from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, ClassVar

from docflow.ai.client_base import BaseFileAnalysisClient
from docflow.ai.models import FileReference
from docflow.ai.prompt_loader import load_json_schema, load_prompt_template
from docflow.classification.models import DocumentType
from docflow.extraction.models import ExtractionContext, ExtractionResult
from docflow.extraction.validation import (
    confidence_warning,
    date_format_warnings,
    require_fields,
    to_number,
)
from docflow.logging.logger import Log


class BaseEntityExtractor(ABC):
    """Pass 2 contract: one subclass per document type.

    ``extract`` asks the provider for the type's flat schema, enforces the
    required fields, gathers warnings and hands back the nested shape the
    persistence layer stores.
    """

    DEFAULT_CONFIDENCE: ClassVar[float] = 0.85

    document_type: ClassVar[DocumentType]
    required_fields: ClassVar[tuple[str, ...]] = ()
    date_fields: ClassVar[tuple[str, ...]] = ()

    def __init__(
        self,
        client: BaseFileAnalysisClient,
        prompt_dir: Path | None = None,
    ) -> None:
        self._client = client
        self._schema = load_json_schema(self.document_type.value, prompt_dir)
        self._prompt = load_prompt_template(self.document_type.value, prompt_dir)

    @property
    def schema_name(self) -> str:
        return f"{self.document_type.value}_extraction"

    def get_schema(self) -> dict[str, Any]:
        return self._schema

    def get_prompt(self) -> str:
        return self._prompt

    def extract(
        self,
        file_ref: FileReference,
        context: ExtractionContext | None = None,
    ) -> ExtractionResult:
        """Run Pass 2 for one uploaded file.

        Raises:
            ProviderError: if the provider call fails.
            StructuralValidationError: if a required field is missing or malformed.
        """
        history = context.conversation if context is not None else None
        response = self._client.analyze_file(
            file_ref,
            schema_name=self.schema_name,
            schema=self._schema,
            prompt=self._prompt,
            history=history,
        )
        return self.build_result(response.data)

    def build_result(self, raw: dict[str, Any]) -> ExtractionResult:
        """Validate, collect warnings and normalize a raw provider payload."""
        self.validate(raw)
        confidence = self.resolve_confidence(raw)
        warnings = [
            *date_format_warnings(raw, self.date_fields),
            *self.collect_warnings(raw),
            *confidence_warning(confidence),
        ]
        data = self.normalize(raw)
        data.setdefault("metadata", {})["confidence_score"] = confidence

        if warnings:
            Log.warning(
                f"{self.document_type.value} extraction produced {len(warnings)} warning(s)",
                warnings=warnings,
            )
        return ExtractionResult(
            type=self.document_type,
            confidence=confidence,
            data=data,
            warnings=warnings,
        )

    def validate(self, raw: dict[str, Any]) -> None:
        require_fields(raw, self.required_fields, self.document_type.value)

    def collect_warnings(self, raw: dict[str, Any]) -> list[str]:
        """Type-specific non-fatal issues. Override as needed."""
        _ = raw
        return []

    def resolve_confidence(self, raw: dict[str, Any]) -> float:
        value = to_number(raw.get("confidence_score", raw.get("confidence")))
        if value is None:
            return self.DEFAULT_CONFIDENCE
        return max(0.0, min(1.0, value))

    @abstractmethod
    def normalize(self, raw: dict[str, Any]) -> dict[str, Any]:
        """Convert the flat provider payload into the nested persistence shape."""
