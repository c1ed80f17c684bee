"""Shared dependencies: structured logger and exception hierarchy."""

import json
import logging
from typing import Any

from notevault.config import get_settings

# Attributes present on every LogRecord; anything else came from `extra=`.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None)).keys()
) | {"message", "asctime", "taskName"}


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        data: dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "message": record.getMessage(),
            "module": record.module,
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                data[key] = value
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)
        return json.dumps(data, default=str)


def setup_logging() -> logging.Logger:
    """Configure and return the application logger."""
    settings = get_settings()
    logger = logging.getLogger("notevault")
    logger.setLevel(getattr(logging, settings.log_level.upper()))
    logger.handlers.clear()
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    return logger


logger = setup_logging()


class NotevaultError(Exception):
    """Base exception for notevault operations."""

    pass


class ExportFormatError(NotevaultError):
    """Raised when an export document is malformed beyond recovery."""

    pass


class StorageError(NotevaultError):
    """Base exception for storage failures raised by this package."""

    pass


class StorageConfigError(StorageError):
    """Raised when the selected storage backend is missing settings."""

    pass


class StorageSecurityError(StorageError):
    """Raised when a storage key would escape the storage root."""

    pass
