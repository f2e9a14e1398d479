import re
from dataclasses import dataclass

from docflow.ai.exceptions import ProviderError
from docflow.pipeline.exceptions import (
    ClassificationRejectedError,
    FileRecordNotFoundError,
    PipelineError,
    ProcessingExpiredError,
    SourceNotFoundError,
    StructuralValidationError,
    TransientProviderError,
    UnsupportedTypeError,
)

MAX_ERROR_LENGTH = 2000

_SECRET_PATTERNS = (
    re.compile(r"([?&]key=)[^&\s]+"),
    re.compile(r"(Bearer\s+)\S+", re.IGNORECASE),
    re.compile(r"\bsk-[A-Za-z0-9_\-]{8,}"),
)


@dataclass(frozen=True)
class FailureDecision:
    category: str
    retryable: bool
    message: str


def sanitize_error(message: str, limit: int = MAX_ERROR_LENGTH) -> str:
    """Mask credentials, collapse whitespace and cap the length."""
    cleaned = message
    for pattern in _SECRET_PATTERNS:
        cleaned = pattern.sub(lambda m: (m.group(1) if m.groups() else "") + "***", cleaned)
    cleaned = " ".join(cleaned.split())
    if len(cleaned) > limit:
        cleaned = cleaned[: limit - 3] + "..."
    return cleaned


def _provider_category(code: str, operation: str) -> str:
    if code == "upload_failed" or operation.startswith("upload"):
        return "api_upload_failed"
    if code == "timeout":
        return "api_timeout"
    if code == "rate_limit":
        return "api_rate_limited"
    return "api_error"


def classify_failure(exc: BaseException) -> FailureDecision:
    """Map any exception raised by a stage to an analytics category and retry verdict.

    Unexpected exceptions are treated as retryable; the attempt budget still
    bounds them.
    """
    message = sanitize_error(str(exc) or exc.__class__.__name__)

    if isinstance(exc, ClassificationRejectedError):
        return FailureDecision("classification_low_confidence", False, message)
    if isinstance(exc, UnsupportedTypeError):
        category = (
            "classification_unknown_type"
            if exc.document_type == "unknown"
            else "extraction_no_extractor"
        )
        return FailureDecision(category, False, message)
    if isinstance(exc, StructuralValidationError):
        return FailureDecision("extraction_validation_failed", False, message)
    if isinstance(exc, TransientProviderError):
        category = _provider_category(
            str(exc.context.get("provider_code", "")),
            str(exc.context.get("operation", "")),
        )
        return FailureDecision(category, True, message)
    if isinstance(exc, ProviderError):
        category = _provider_category(exc.code, str(exc.context.get("operation", "")))
        return FailureDecision(category, exc.retryable, message)
    if isinstance(exc, (SourceNotFoundError, FileRecordNotFoundError)):
        return FailureDecision("file_missing", False, message)
    if isinstance(exc, ProcessingExpiredError):
        return FailureDecision("processing_expired", False, message)
    if isinstance(exc, PipelineError):
        return FailureDecision("unknown_error", exc.retryable, message)
    return FailureDecision("unknown_error", True, message)
