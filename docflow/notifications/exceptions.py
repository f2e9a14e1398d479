class NotificationError(Exception):
    """Raised when an owner notification could not be delivered."""
