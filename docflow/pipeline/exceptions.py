from typing import Any, ClassVar


class PipelineError(Exception):
    """Base exception for all pipeline errors.

    Subclasses declare whether the queue may retry the failing stage.
    """

    code: ClassVar[str] = "pipeline_error"
    retryable: ClassVar[bool] = False

    def __init__(self, message: str, /, **context: Any) -> None:
        super().__init__(message)
        self.context = context


class TransientProviderError(PipelineError):
    """Raised on provider timeouts, rate limits and 5xx responses."""

    code = "transient_provider_error"
    retryable = True


class StructuralValidationError(PipelineError):
    """Raised when an extracted payload misses a required field or breaks its schema."""

    code = "structural_validation_error"


class SourceNotFoundError(PipelineError):
    """Raised when the source file is missing from object storage."""

    code = "source_not_found"


class UnsupportedTypeError(PipelineError):
    """Raised when a classified document type has no registered extractor."""

    code = "unsupported_type"

    def __init__(self, document_type: str, /, **context: Any) -> None:
        super().__init__(
            f"No extractor registered for document type '{document_type}'",
            **{**context, "document_type": document_type},
        )
        self.document_type = document_type


class ClassificationRejectedError(PipelineError):
    """Raised when Pass 1 confidence is below the acceptance threshold."""

    code = "classification_rejected"


class ProcessingExpiredError(PipelineError):
    """Raised when a chain message outlived its time-to-live."""

    code = "processing_expired"


class FileRecordNotFoundError(PipelineError):
    """Raised when the uploaded file row no longer exists."""

    code = "file_record_not_found"


class DuplicateSignal(Exception):  # noqa: N818
    """Control-flow signal: the same owner already uploaded identical bytes.

    Not an error. Callers resolve it to success against the existing file.
    """

    def __init__(self, existing_file_id: int, content_hash: str) -> None:
        super().__init__(
            f"Duplicate of file {existing_file_id} (hash {content_hash[:12]})"
        )
        self.existing_file_id = existing_file_id
        self.content_hash = content_hash


class StageTimeoutError(PipelineError):
    """Raised when a stage kept timing out until its attempt budget ran out."""

    code = "stage_timeout"
