import json
from pathlib import Path

from docflow.ai.client_base import BaseFileAnalysisClient
from docflow.ai.conversation import Conversation
from docflow.ai.models import FileReference
from docflow.ai.prompt_loader import load_json_schema, load_prompt_template
from docflow.classification.models import ClassificationHints, ClassificationResult
from docflow.logging.logger import Log


class TypeClassifier:
    """Pass 1: ask the provider once for a coarse document type."""

    SCHEMA_NAME = "document_classification"

    def __init__(
        self,
        client: BaseFileAnalysisClient,
        prompt_dir: Path | None = None,
    ) -> None:
        self._client = client
        self._prompt_template = load_prompt_template("classification", prompt_dir)
        self._schema = load_json_schema("classification", prompt_dir)

    def build_prompt(self, hints: ClassificationHints) -> str:
        return self._prompt_template.format(
            filename=hints.filename or "unknown",
            extension=hints.extension or "unknown",
            category=hints.category or "unknown",
        )

    def classify(
        self,
        file_ref: FileReference,
        hints: ClassificationHints | None = None,
    ) -> ClassificationResult:
        """Classify an uploaded file.

        Raises:
            ProviderError: if the provider call fails.
        """
        hints = hints or ClassificationHints()
        Log.info("Classifying document", file_uri=file_ref.uri, file_name=hints.filename)

        response = self._client.analyze_file(
            file_ref,
            schema_name=self.SCHEMA_NAME,
            schema=self._schema,
            prompt=self.build_prompt(hints),
        )
        result = ClassificationResult.from_provider_payload(response.data)

        Log.info(
            "Classification complete",
            document_type=result.type.value,
            confidence=result.confidence,
            level=result.confidence_level(),
        )
        return result

    def context_for(
        self,
        file_ref: FileReference,
        hints: ClassificationHints,
        result: ClassificationResult,
    ) -> Conversation:
        """Rebuild the Pass 1 exchange so Pass 2 can carry it as history."""
        conversation = Conversation()
        conversation.add_user(self.build_prompt(hints), file_ref)
        conversation.add_model(json.dumps(result.raw or result.to_payload()))
        return conversation
