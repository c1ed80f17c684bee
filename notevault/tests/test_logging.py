"""Tests for structured JSON logging."""

import json
import logging
import sys

from notevault.dependencies import JsonFormatter, logger


class TestJsonFormatter:
    """Tests for the JSON log formatter."""

    def test_includes_extra_fields(self) -> None:
        """Test that values passed via extra= appear as top-level keys."""
        record = logging.LogRecord("notevault", logging.INFO, __file__, 1, "storage_upload", None, None)
        record.backend = "local"
        record.size = 12

        data = json.loads(JsonFormatter().format(record))

        assert data["message"] == "storage_upload"
        assert data["level"] == "INFO"
        assert data["backend"] == "local"
        assert data["size"] == 12
        assert "msg" not in data
        assert "args" not in data

    def test_includes_exception(self) -> None:
        """Test that exception tracebacks are serialized."""
        try:
            raise ValueError("boom")
        except ValueError:
            record = logger.makeRecord(
                "notevault", logging.ERROR, __file__, 1, "failed", None, exc_info=sys.exc_info()
            )

        data = json.loads(JsonFormatter().format(record))

        assert "ValueError: boom" in data["exception"]

    def test_non_serializable_values(self) -> None:
        """Test that arbitrary objects are stringified."""
        record = logging.LogRecord("notevault", logging.INFO, __file__, 1, "event", None, None)
        record.path = object()

        data = json.loads(JsonFormatter().format(record))

        assert data["path"].startswith("<object object")
