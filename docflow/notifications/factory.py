from docflow.config.settings import Settings
from docflow.notifications.base import BaseNotifier
from docflow.notifications.log_notifier import LogNotifier
from docflow.notifications.webhook_notifier import WebhookNotifier


class NotifierFactory:
    """Creates the configured owner notifier."""

    DRIVERS: tuple[str, ...] = ("log", "webhook")

    @classmethod
    def create(cls, settings: Settings) -> BaseNotifier:
        driver = settings.notification_driver.lower()
        if driver == "log":
            return LogNotifier()
        if driver == "webhook":
            return WebhookNotifier(
                settings.notification_webhook_url,
                timeout_seconds=settings.notification_webhook_timeout_seconds,
            )
        raise ValueError(
            f"Unknown notification driver '{driver}'. Choose from: {list(cls.DRIVERS)}"
        )
