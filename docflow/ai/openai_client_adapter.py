from pathlib import Path
from typing import Any

import httpx
import openai

from docflow.ai.client_base import BaseFileAnalysisClient
from docflow.ai.conversation import Conversation
from docflow.ai.exceptions import ProviderError
from docflow.ai.models import AnalysisResponse, FileReference
from docflow.ai.response_parser import parse_json_object


class OpenAIClientAdapter(BaseFileAnalysisClient):
    """File analysis adapter built on the OpenAI Files and Responses APIs."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        timeout_seconds: int,
        upload_timeout_seconds: int = 120,
        temperature: float = 0.2,
        base_url: str | None = None,
    ) -> None:
        self._client = openai.OpenAI(
            api_key=api_key,
            timeout=timeout_seconds,
            base_url=base_url,
        )
        self._upload_timeout = httpx.Timeout(upload_timeout_seconds)
        self._model = model
        self._temperature = temperature

    @property
    def model_name(self) -> str:
        return self._model

    def upload_file(self, path: Path, *, mime_type: str, display_name: str) -> FileReference:
        try:
            with path.open("rb") as handle:
                uploaded = self._client.files.create(
                    file=(display_name, handle, mime_type),
                    purpose="user_data",
                    timeout=self._upload_timeout,
                )
        except OSError as exc:
            raise ProviderError(
                "upload_failed",
                f"Cannot read file for upload: {exc}",
                retryable=False,
                context={"operation": "upload"},
            ) from exc
        except (openai.APIError, httpx.HTTPError) as exc:
            raise self._translate(exc, "upload") from exc
        return FileReference(
            uri=uploaded.id,
            name=uploaded.id,
            mime_type=mime_type,
            size_bytes=int(getattr(uploaded, "bytes", 0) or 0),
        )

    def analyze_file(
        self,
        file_ref: FileReference,
        *,
        schema_name: str,
        schema: dict[str, Any],
        prompt: str,
        history: Conversation | None = None,
    ) -> AnalysisResponse:
        messages = [
            *self._history_messages(history),
            {"role": "user", "content": self._user_content(prompt, file_ref)},
        ]
        try:
            response = self._client.responses.create(
                model=self._model,
                temperature=self._temperature,
                input=messages,
                text={
                    "format": {
                        "type": "json_schema",
                        "name": schema_name,
                        "schema": schema,
                        "strict": False,
                    }
                },
            )
        except (openai.APIError, httpx.HTTPError) as exc:
            raise self._translate(exc, f"analyze:{schema_name}") from exc

        content = response.output_text
        if not content:
            raise ProviderError(
                "invalid_response",
                "AI returned empty response",
                retryable=False,
                context={"operation": f"analyze:{schema_name}"},
            )
        usage = response.usage.model_dump() if getattr(response, "usage", None) else {}
        return AnalysisResponse(
            data=parse_json_object(content),
            raw_text=content,
            model=self._model,
            usage=usage,
        )

    def delete_file(self, file_ref: FileReference) -> None:
        try:
            self._client.files.delete(file_ref.name)
        except openai.NotFoundError:
            return
        except (openai.APIError, httpx.HTTPError) as exc:
            raise self._translate(exc, "delete") from exc

    @staticmethod
    def _user_content(prompt: str, file_ref: FileReference) -> list[dict[str, Any]]:
        file_part: dict[str, Any]
        if file_ref.mime_type.startswith("image/"):
            file_part = {"type": "input_image", "file_id": file_ref.name}
        else:
            file_part = {"type": "input_file", "file_id": file_ref.name}
        return [{"type": "input_text", "text": prompt}, file_part]

    def _history_messages(self, history: Conversation | None) -> list[dict[str, Any]]:
        if not history:
            return []
        messages: list[dict[str, Any]] = []
        for turn in history.turns:
            if turn.role == "model":
                messages.append({"role": "assistant", "content": turn.text})
            elif turn.file_ref is not None:
                messages.append(
                    {"role": "user", "content": self._user_content(turn.text, turn.file_ref)}
                )
            else:
                messages.append({"role": "user", "content": turn.text})
        return messages

    @staticmethod
    def _translate(exc: openai.APIError | httpx.HTTPError, operation: str) -> ProviderError:
        context: dict[str, Any] = {"operation": operation}
        if isinstance(exc, (openai.APITimeoutError, httpx.TimeoutException)):
            return ProviderError(
                "timeout", f"AI provider timeout: {exc}", retryable=True, context=context
            )
        if isinstance(exc, (openai.APIConnectionError, httpx.ConnectError)):
            return ProviderError(
                "network", f"AI provider network error: {exc}", retryable=True, context=context
            )
        if isinstance(exc, openai.APIStatusError):
            status = exc.status_code
            context["status_code"] = status
            if status == 429:
                return ProviderError(
                    "rate_limit", f"AI provider rate limited: {exc}", retryable=True, context=context
                )
            if status >= 500:
                return ProviderError(
                    "server_error", f"AI provider API error: {exc}", retryable=True, context=context
                )
            return ProviderError(
                "client_error", f"AI provider API error: {exc}", retryable=False, context=context
            )
        return ProviderError(
            "server_error", f"AI provider API error: {exc}", retryable=True, context=context
        )
