"""Example file analysis client adapter.

Use this module as a reference when implementing new provider adapters.
Implement BaseFileAnalysisClient and register the provider in AIClientFactory.
"""

import json
from pathlib import Path
from typing import Any, ClassVar

from docflow.ai.client_base import BaseFileAnalysisClient
from docflow.ai.conversation import Conversation
from docflow.ai.models import AnalysisResponse, FileReference


class ExampleClientAdapter(BaseFileAnalysisClient):
    """Offline adapter returning fixed answers keyed by schema name.

    No network calls. Useful for local development and tests.
    """

    DEFAULT_RESPONSES: ClassVar[dict[str, dict[str, Any]]] = {
        "document_classification": {
            "document_type": "document",
            "confidence": 0.95,
            "reasoning": "Example adapter always answers with a generic document.",
        },
        "document_extraction": {
            "document_title": "Example document",
            "document_type": "note",
            "summary": "Fixed response from the example adapter.",
            "confidence": 0.9,
        },
    }

    def __init__(self, responses: dict[str, dict[str, Any]] | None = None) -> None:
        self._responses = {**self.DEFAULT_RESPONSES, **(responses or {})}
        self.uploaded: list[FileReference] = []
        self.deleted: list[FileReference] = []

    @property
    def model_name(self) -> str:
        return "example"

    def upload_file(self, path: Path, *, mime_type: str, display_name: str) -> FileReference:
        ref = FileReference(
            uri=f"example://files/{display_name}",
            name=f"files/{path.stem}",
            mime_type=mime_type,
            size_bytes=path.stat().st_size,
        )
        self.uploaded.append(ref)
        return ref

    def analyze_file(
        self,
        file_ref: FileReference,
        *,
        schema_name: str,
        schema: dict[str, Any],
        prompt: str,
        history: Conversation | None = None,
    ) -> AnalysisResponse:
        _ = file_ref, schema, prompt, history
        data = dict(self._responses.get(schema_name, {}))
        return AnalysisResponse(data=data, raw_text=json.dumps(data), model=self.model_name)

    def delete_file(self, file_ref: FileReference) -> None:
        self.deleted.append(file_ref)
