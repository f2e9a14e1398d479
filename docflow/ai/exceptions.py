from typing import Any


class ProviderError(Exception):
    """Single tagged error for every AI provider failure.

    Attributes:
        code: Short machine-readable tag (timeout, rate_limit, server_error,
            network, upload_failed, client_error, invalid_response).
        retryable: Whether repeating the same call may succeed.
        context: Extra details for logs (status code, operation, model).
    """

    def __init__(
        self,
        code: str,
        message: str,
        *,
        retryable: bool,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.retryable = retryable
        self.context = context or {}

    def __repr__(self) -> str:
        return f"ProviderError(code={self.code!r}, retryable={self.retryable}, message={str(self)!r})"


class PromptConfigError(Exception):
    """Raised when a bundled prompt or schema cannot be loaded or is malformed."""
