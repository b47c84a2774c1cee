"""Log formatters for JSON and console output."""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict

from rangefetch.logging.context import get_log_context
from rangefetch.security.url_validation import sanitize_url


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter with context injection.

    Produces one JSON object per line for easy parsing with jq/grep.
    Sanitizes URLs to remove sensitive tokens before logging.
    """

    # Fields to extract from LogRecord extras
    EXTRA_FIELDS = [
        "download_url",
        "duration_ms",
        "http_status",
        "error_category",
        "error_message",
        # Range tracking
        "part_index",
        "range_start",
        "range_end",
        "expected_bytes",
        "bytes_written",
        "attempt",
        "max_retries",
        "retry_delay",
        # Resource tracking
        "total_size",
        "parts",
        "content_type",
        "content_disposition",
        "destination",
        "store",
    ]

    # Fields that contain URLs and should be sanitized
    URL_FIELDS = ["download_url", "url"]

    def _sanitize_value(self, key: str, value: Any) -> Any:
        """Sanitize value if it's a URL field."""
        if key in self.URL_FIELDS and isinstance(value, str):
            return sanitize_url(value)
        return value

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON with sanitized URLs."""
        log_entry: Dict[str, Any] = {
            "ts": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3]
            + "Z",
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        # Inject context variables
        ctx = get_log_context()
        if ctx["run_id"]:
            log_entry["run_id"] = ctx["run_id"]
        if ctx["stage"]:
            log_entry["stage"] = ctx["stage"]
        if ctx["part_index"] is not None:
            log_entry["part_index"] = ctx["part_index"]

        # Add source location for DEBUG/ERROR
        if record.levelno in (logging.DEBUG, logging.ERROR, logging.CRITICAL):
            log_entry["file"] = f"{record.filename}:{record.lineno}"

        # Extract extra fields with sanitization
        for field in self.EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_entry[field] = self._sanitize_value(field, value)

        # Include exception info
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """
    Human-readable console formatter.

    Includes context when available.
    """

    def format(self, record: logging.LogRecord) -> str:
        ctx = get_log_context()

        # Build prefix
        parts = [
            datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            record.levelname,
        ]

        if ctx["stage"]:
            parts.append(f"[{ctx['stage']}]")

        part_index = ctx["part_index"]
        if part_index is None:
            part_index = getattr(record, "part_index", None)
        if part_index is not None:
            parts.append(f"[part {part_index}]")

        prefix = " - ".join(parts)

        run_id = ctx["run_id"]
        if run_id:
            return f"{prefix} - [{run_id[-8:]}] {record.getMessage()}"

        return f"{prefix} - {record.getMessage()}"
