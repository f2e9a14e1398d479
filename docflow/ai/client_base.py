from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from docflow.ai.conversation import Conversation
from docflow.ai.models import AnalysisResponse, FileReference


class BaseFileAnalysisClient(ABC):
    """Contract for provider-specific file analysis clients."""

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Model identifier recorded in analytics."""

    @abstractmethod
    def upload_file(self, path: Path, *, mime_type: str, display_name: str) -> FileReference:
        """Upload a local file and return a reference usable in analyze calls.

        Raises:
            ProviderError: on any failure.
        """

    @abstractmethod
    def analyze_file(
        self,
        file_ref: FileReference,
        *,
        schema_name: str,
        schema: dict[str, Any],
        prompt: str,
        history: Conversation | None = None,
    ) -> AnalysisResponse:
        """Ask the model about an uploaded file and return its JSON answer.

        Raises:
            ProviderError: on any failure, including unparsable output.
        """

    @abstractmethod
    def delete_file(self, file_ref: FileReference) -> None:
        """Delete an uploaded file. A missing file counts as deleted.

        Raises:
            ProviderError: on any other failure.
        """
