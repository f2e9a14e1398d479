"""Gemini file analysis over the public REST API."""

from pathlib import Path
from typing import Any, ClassVar

import httpx

from docflow.ai.client_base import BaseFileAnalysisClient
from docflow.ai.conversation import Conversation
from docflow.ai.exceptions import ProviderError
from docflow.ai.models import AnalysisResponse, FileReference
from docflow.ai.response_parser import parse_json_object
from docflow.logging.logger import Log


class GeminiClientAdapter(BaseFileAnalysisClient):
    """Uploads files with the resumable Files API and analyzes them by URI."""

    BASE_URL: ClassVar[str] = "https://generativelanguage.googleapis.com"
    RETRYABLE_STATUS: ClassVar[frozenset[int]] = frozenset({408, 429, 500, 502, 503, 504})

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        temperature: float = 0.2,
        upload_timeout_seconds: int = 120,
        request_timeout_seconds: int = 300,
        http_client: httpx.Client | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("gemini_api_key is required for ai_provider=gemini")
        self._api_key = api_key
        self._model = model
        self._temperature = max(0.0, min(1.0, temperature))
        self._upload_timeout = httpx.Timeout(upload_timeout_seconds)
        self._request_timeout = httpx.Timeout(request_timeout_seconds)
        self._http = http_client or httpx.Client()

    @property
    def model_name(self) -> str:
        return self._model

    def upload_file(self, path: Path, *, mime_type: str, display_name: str) -> FileReference:
        data = path.read_bytes()
        start = self._send(
            "POST",
            f"{self.BASE_URL}/upload/v1beta/files",
            operation="upload_start",
            timeout=self._upload_timeout,
            headers={
                "X-Goog-Upload-Protocol": "resumable",
                "X-Goog-Upload-Command": "start",
                "X-Goog-Upload-Header-Content-Length": str(len(data)),
                "X-Goog-Upload-Header-Content-Type": mime_type,
            },
            json={"file": {"display_name": display_name}},
        )
        upload_url = start.headers.get("X-Goog-Upload-URL")
        if not upload_url:
            raise ProviderError(
                "upload_failed",
                "Gemini did not return an upload URL",
                retryable=True,
                context={"operation": "upload_start"},
            )

        finalized = self._send(
            "POST",
            upload_url,
            operation="upload_finalize",
            timeout=self._upload_timeout,
            with_key=False,
            headers={
                "Content-Length": str(len(data)),
                "X-Goog-Upload-Offset": "0",
                "X-Goog-Upload-Command": "upload, finalize",
            },
            content=data,
        )
        file_info = self._json(finalized, "upload_finalize").get("file")
        if not isinstance(file_info, dict) or not file_info.get("uri"):
            raise ProviderError(
                "upload_failed",
                "Gemini upload response did not contain a file URI",
                retryable=True,
                context={"operation": "upload_finalize"},
            )

        ref = FileReference(
            uri=str(file_info["uri"]),
            name=str(file_info.get("name", "")),
            mime_type=str(file_info.get("mimeType", mime_type)),
            size_bytes=int(file_info.get("sizeBytes", len(data))),
        )
        Log.info("Uploaded file to Gemini", file_name=ref.name, size_bytes=ref.size_bytes)
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
        body = {
            "contents": [
                *self._history_contents(history),
                {
                    "role": "user",
                    "parts": [
                        {"text": prompt},
                        {"fileData": {"fileUri": file_ref.uri, "mimeType": file_ref.mime_type}},
                    ],
                },
            ],
            "generationConfig": {
                "temperature": self._temperature,
                "responseMimeType": "application/json",
                "responseJsonSchema": schema,
            },
        }
        response = self._send(
            "POST",
            f"{self.BASE_URL}/v1beta/models/{self._model}:generateContent",
            operation=f"analyze:{schema_name}",
            timeout=self._request_timeout,
            json=body,
        )
        payload = self._json(response, schema_name)
        text = self._candidate_text(payload, schema_name)
        return AnalysisResponse(
            data=parse_json_object(text),
            raw_text=text,
            model=self._model,
            usage=payload.get("usageMetadata") or {},
        )

    def delete_file(self, file_ref: FileReference) -> None:
        if not file_ref.name:
            return
        try:
            self._send(
                "DELETE",
                f"{self.BASE_URL}/v1beta/{file_ref.name}",
                operation="delete",
                timeout=self._request_timeout,
            )
        except ProviderError as exc:
            if exc.context.get("status_code") == 404:
                return
            raise

    def _send(
        self,
        method: str,
        url: str,
        *,
        operation: str,
        timeout: httpx.Timeout,
        with_key: bool = True,
        **kwargs: Any,
    ) -> httpx.Response:
        params = {"key": self._api_key} if with_key else None
        try:
            response = self._http.request(method, url, params=params, timeout=timeout, **kwargs)
        except httpx.TimeoutException as exc:
            raise ProviderError(
                "timeout",
                f"Gemini {operation} timed out: {exc}",
                retryable=True,
                context={"operation": operation},
            ) from exc
        except httpx.TransportError as exc:
            raise ProviderError(
                "network",
                f"Gemini {operation} network error: {exc}",
                retryable=True,
                context={"operation": operation},
            ) from exc

        if response.status_code >= 400:
            raise self._status_error(response, operation)
        return response

    def _status_error(self, response: httpx.Response, operation: str) -> ProviderError:
        status = response.status_code
        if status == 429:
            code = "rate_limit"
        elif status == 408:
            code = "timeout"
        elif status >= 500:
            code = "server_error"
        else:
            code = "client_error"
        return ProviderError(
            code,
            f"Gemini {operation} failed with HTTP {status}: {response.text[:500]}",
            retryable=status in self.RETRYABLE_STATUS,
            context={"operation": operation, "status_code": status},
        )

    @staticmethod
    def _json(response: httpx.Response, operation: str) -> dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as exc:
            raise ProviderError(
                "invalid_response",
                f"Gemini {operation} returned non-JSON body",
                retryable=False,
                context={"operation": operation},
            ) from exc
        if not isinstance(payload, dict):
            raise ProviderError(
                "invalid_response",
                f"Gemini {operation} returned unexpected body",
                retryable=False,
                context={"operation": operation},
            )
        return payload

    @staticmethod
    def _candidate_text(payload: dict[str, Any], operation: str) -> str:
        try:
            parts = payload["candidates"][0]["content"]["parts"]
            text = "".join(str(part.get("text", "")) for part in parts)
        except (KeyError, IndexError, TypeError) as exc:
            finish = None
            candidates = payload.get("candidates")
            if isinstance(candidates, list) and candidates:
                finish = candidates[0].get("finishReason")
            raise ProviderError(
                "invalid_response",
                f"Gemini {operation} returned no content",
                retryable=False,
                context={"operation": operation, "finish_reason": finish},
            ) from exc
        if not text.strip():
            raise ProviderError(
                "invalid_response",
                f"Gemini {operation} returned empty text",
                retryable=False,
                context={"operation": operation},
            )
        return text

    @staticmethod
    def _history_contents(history: Conversation | None) -> list[dict[str, Any]]:
        if not history:
            return []
        contents: list[dict[str, Any]] = []
        for turn in history.turns:
            parts: list[dict[str, Any]] = [{"text": turn.text}]
            if turn.file_ref is not None:
                parts.append(
                    {"fileData": {"fileUri": turn.file_ref.uri, "mimeType": turn.file_ref.mime_type}}
                )
            contents.append({"role": turn.role, "parts": parts})
        return contents
