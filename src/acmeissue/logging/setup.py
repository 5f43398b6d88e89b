"""Structured logging configuration for acmeissue.

Provides JSON and text formatters, a context filter that injects the
domain / order currently being worked on (see
:mod:`acmeissue.logging.context`) into every log record, and a one-call
``configure_logging`` function driven by config settings.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from typing import TYPE_CHECKING

from acmeissue.logging.context import CONTEXT_FIELDS, current_context

if TYPE_CHECKING:
    from acmeissue.config.settings import LoggingSettings

# Attributes that are part of the standard LogRecord; everything
# else is considered "extra" and gets included in structured output.
_STANDARD_ATTRS = frozenset(
    {
        "args",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "message",
        "module",
        "msecs",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "taskName",
        "thread",
        "threadName",
        *CONTEXT_FIELDS,
    }
)

_FILE_MAX_BYTES = 10 * 1024 * 1024
_FILE_BACKUPS = 5


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------


class StructuredFormatter(logging.Formatter):
    """JSON-lines formatter.

    Every record becomes a single JSON object on one line containing
    the standard fields, the bound context and any *extra* attributes
    passed by the caller.
    """

    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()

        data: dict = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.message,
        }

        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value not in (None, "-"):
                data[field] = value

        # Caller-supplied extra fields
        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and not key.startswith("_"):
                data.setdefault(key, value)

        if record.exc_info and record.exc_info[0] is not None:
            data["exception"] = self.formatException(record.exc_info)

        if record.stack_info:
            data["stack_info"] = self.formatStack(record.stack_info)

        return json.dumps(data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable formatter for console use."""

    _FMT = "%(asctime)s %(levelname)-8s [%(domain)s] %(name)s: %(message)s"

    def __init__(self) -> None:
        super().__init__(fmt=self._FMT, datefmt="%Y-%m-%d %H:%M:%S")


# ---------------------------------------------------------------------------
# Filter
# ---------------------------------------------------------------------------


class ContextFilter(logging.Filter):
    """Inject the thread's bound logging context into every record.

    Fields that are not bound fall back to ``"-"`` so the text format
    string always resolves.
    """

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        bound = current_context()
        for field in CONTEXT_FIELDS:
            if not hasattr(record, field):
                setattr(record, field, bound.get(field, "-"))
        return True


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def configure_logging(settings: LoggingSettings) -> logging.Logger:
    """Configure the ``acmeissue`` logger hierarchy from settings.

    Replaces any bootstrap handlers with properly formatted output on
    stderr, plus a rotating file handler when ``settings.file`` is set.

    Returns the root ``acmeissue`` logger.
    """
    level = getattr(logging, settings.level.upper(), logging.INFO)

    root = logging.getLogger("acmeissue")
    root.setLevel(level)
    root.handlers.clear()
    root.propagate = False

    formatter: logging.Formatter
    formatter = StructuredFormatter() if settings.format == "json" else TextFormatter()

    ctx_filter = ContextFilter()

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    console.addFilter(ctx_filter)
    root.addHandler(console)

    if settings.file:
        try:
            fh = RotatingFileHandler(
                settings.file,
                maxBytes=_FILE_MAX_BYTES,
                backupCount=_FILE_BACKUPS,
            )
        except OSError as exc:
            root.warning("Could not open log file %s: %s", settings.file, exc)
        else:
            # Files are always structured JSON
            fh.setFormatter(StructuredFormatter())
            fh.addFilter(ctx_filter)
            root.addHandler(fh)

    # Quieten noisy third-party loggers
    for lib in ("werkzeug", "urllib3"):
        logging.getLogger(lib).setLevel(logging.WARNING)

    return root
