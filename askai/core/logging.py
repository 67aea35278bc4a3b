"""Centralized logging configuration.

Every record passes through ``RedactingFilter``, which masks any run of 20+
key-like characters. UUID-style identities match that pattern too, so they
appear as ``***`` in log lines; correlate by a shorter caller id if needed.
"""

import json
import logging
import sys
from datetime import datetime, timezone

from askai.core.config import Settings, settings
from askai.core.redaction import redact


class RedactingFilter(logging.Filter):
    """Scrub key-like substrings from every record before it is emitted."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = redact(record.getMessage())
        record.args = None
        return True


class PlainFormatter(logging.Formatter):
    """Human-readable formatter whose tracebacks are redacted."""

    def formatException(self, ei) -> str:
        return redact(super().formatException(ei))


class JSONFormatter(logging.Formatter):
    """Structured JSON log formatter for production."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1]:
            log_data["exception"] = redact(self.formatException(record.exc_info))
        if hasattr(record, "identity"):
            log_data["identity"] = record.identity
        return json.dumps(log_data, ensure_ascii=False)


def setup_logging(config: Settings | None = None) -> None:
    """Configure logging for the entire application."""
    config = config or settings
    level = getattr(logging, config.log_level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)

    # Remove existing handlers
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(RedactingFilter())

    if config.log_json:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            PlainFormatter(
                "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )

    root.addHandler(handler)

    # Suppress noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING if not config.database_echo else level)
