import logging
import sys


class Log:
    """Centralized logging with structured format.

    Keyword arguments are appended to the message and attached to the record
    as ``record.context`` so handlers can pick up chain_id, file_id and stage.
    """

    _logger: logging.Logger = logging.getLogger("docflow")

    @classmethod
    def configure(cls, log_level: str) -> None:
        """Configure the logger with the specified level and stdout handler."""
        cls._logger.setLevel(log_level.upper())
        if not cls._logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(
                logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")
            )
            cls._logger.addHandler(handler)

    @classmethod
    def info(cls, message: str, /, **kwargs: object) -> None:
        """Log an info message."""
        cls._logger.info(cls._format(message, kwargs), extra={"context": kwargs})

    @classmethod
    def error(cls, message: str, /, **kwargs: object) -> None:
        """Log an error message."""
        cls._logger.error(cls._format(message, kwargs), extra={"context": kwargs})

    @classmethod
    def warning(cls, message: str, /, **kwargs: object) -> None:
        """Log a warning message."""
        cls._logger.warning(cls._format(message, kwargs), extra={"context": kwargs})

    @classmethod
    def debug(cls, message: str, /, **kwargs: object) -> None:
        """Log a debug message."""
        cls._logger.debug(cls._format(message, kwargs), extra={"context": kwargs})

    @staticmethod
    def _format(message: str, context: dict[str, object]) -> str:
        if not context:
            return message
        pairs = " ".join(f"{key}={value}" for key, value in context.items())
        return f"{message} [{pairs}]"
