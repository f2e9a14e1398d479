from docflow.database.models import UploadedFile
from docflow.logging.logger import Log
from docflow.notifications.base import BaseNotifier
from docflow.notifications.summary import EntitySummary


class LogNotifier(BaseNotifier):
    """Writes notifications to the application log. Default driver."""

    def notify_completed(
        self,
        file: UploadedFile,
        *,
        chain_id: str,
        summary: EntitySummary,
    ) -> None:
        Log.info(
            f"File '{file.file_name}' processed: {summary.describe()}",
            user_id=file.user_id,
            file_id=file.id,
            chain_id=chain_id,
            document_type=summary.document_type,
            entity_id=summary.entity_id,
        )

    def notify_failed(
        self,
        file: UploadedFile,
        *,
        chain_id: str,
        error: str,
        category: str,
    ) -> None:
        Log.warning(
            f"File '{file.file_name}' failed to process: {error}",
            user_id=file.user_id,
            file_id=file.id,
            chain_id=chain_id,
            category=category,
        )
