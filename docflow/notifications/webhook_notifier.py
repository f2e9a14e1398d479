from typing import Any

import httpx

from docflow.database.models import UploadedFile
from docflow.logging.logger import Log
from docflow.notifications.base import BaseNotifier
from docflow.notifications.exceptions import NotificationError
from docflow.notifications.summary import EntitySummary


class WebhookNotifier(BaseNotifier):
    """POSTs a JSON event per outcome to a configured URL."""

    def __init__(
        self,
        url: str,
        timeout_seconds: int = 10,
        http_client: httpx.Client | None = None,
    ) -> None:
        if not url:
            raise ValueError("notification_webhook_url is required for notification_driver=webhook")
        self._url = url
        self._http = http_client or httpx.Client(timeout=timeout_seconds)

    def notify_completed(
        self,
        file: UploadedFile,
        *,
        chain_id: str,
        summary: EntitySummary,
    ) -> None:
        self._post(
            {
                "event": "file.completed",
                **self._file_fields(file),
                "chain_id": chain_id,
                **summary.to_payload(),
            }
        )

    def notify_failed(
        self,
        file: UploadedFile,
        *,
        chain_id: str,
        error: str,
        category: str,
    ) -> None:
        self._post(
            {
                "event": "file.failed",
                **self._file_fields(file),
                "chain_id": chain_id,
                "error": error,
                "failure_category": category,
            }
        )

    @staticmethod
    def _file_fields(file: UploadedFile) -> dict[str, Any]:
        return {
            "user_id": file.user_id,
            "file_id": file.id,
            "file_guid": file.guid,
            "file_name": file.file_name,
        }

    def _post(self, body: dict[str, Any]) -> None:
        try:
            response = self._http.post(self._url, json=body)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise NotificationError(f"Webhook delivery failed: {exc}") from exc
        Log.debug(f"Delivered {body['event']} webhook", file_id=body["file_id"])
