from abc import ABC, abstractmethod

from docflow.database.models import UploadedFile
from docflow.notifications.summary import EntitySummary


class BaseNotifier(ABC):
    """Tells a file's owner how processing ended."""

    @abstractmethod
    def notify_completed(
        self,
        file: UploadedFile,
        *,
        chain_id: str,
        summary: EntitySummary,
    ) -> None:
        """Notify that a file was processed, summarizing the extracted entity.

        Raises:
            NotificationError: if delivery fails.
        """

    @abstractmethod
    def notify_failed(
        self,
        file: UploadedFile,
        *,
        chain_id: str,
        error: str,
        category: str,
    ) -> None:
        """Notify that processing failed for good.

        Raises:
            NotificationError: if delivery fails.
        """
