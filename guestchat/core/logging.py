"""
Logging configuration for the client.
Structured logging with environment-aware settings.
"""

import logging
import sys
from typing import Any, Dict

from guestchat.core.config import settings


class StructuredFormatter(logging.Formatter):
    """
    Formatter that outputs key=value records.
    Used outside development so log shippers can parse lines.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured data."""
        log_data: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "environment": settings.environment,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Correlation fields attached via `extra=`
        if hasattr(record, "session_id"):
            log_data["session_id"] = record.session_id

        if hasattr(record, "chat_id"):
            log_data["chat_id"] = record.chat_id

        if hasattr(record, "batch_id"):
            log_data["batch_id"] = record.batch_id

        return " ".join(f"{k}={v}" for k, v in log_data.items())


def setup_logging() -> None:
    """
    Configure logging based on environment settings.

    Safe to call more than once; existing root handlers are replaced.
    """
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)

    if settings.is_production or settings.is_uat:
        formatter = StructuredFormatter(
            fmt="%(message)s", datefmt="%Y-%m-%d %H:%M:%S"
        )
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # Request-level noise from the HTTP stack
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    client_logger = logging.getLogger("guestchat")
    client_logger.setLevel(log_level)

    client_logger.info(
        f"Logging configured for {settings.app_name} {settings.app_version}: environment={settings.environment}, level={settings.log_level}"
    )


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a specific module.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)
