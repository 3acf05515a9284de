"""
Log formatters.

``StructuredFormatter`` writes one JSON object per record for log shippers;
``ConsoleFormatter`` writes a line per record for people. Both surface the
keyword context ``TandemLogger`` attaches as ``extra_context``.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from rich.console import Console
from rich.logging import RichHandler

# Record attributes stamped by CorrelationLogFilter
CORRELATION_FIELDS = ("correlation_id", "trace_id", "span_id")


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def __init__(
        self,
        service_name: str = "tandem",
        version: str = "unknown",
        environment: Optional[str] = None,
    ):
        super().__init__()
        self.service_name = service_name
        self.version = version
        self.environment = environment

    def formatTime(self, record: logging.LogRecord, datefmt=None) -> str:
        return datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
            "version": self.version,
            "source": {
                "module": record.module,
                "function": record.funcName,
                "line": record.lineno,
            },
        }
        if self.environment:
            entry["environment"] = self.environment

        for name in CORRELATION_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value

        entry.update(getattr(record, "extra_context", None) or {})

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc_value),
                "traceback": self.formatException(record.exc_info),
            }

        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Human-readable formatter that appends structured context as key=value pairs."""

    def __init__(self):
        super().__init__(
            "%(asctime)s [%(levelname)8s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = getattr(record, "extra_context", None) or {}
        parts = [f"{k}={v}" for k, v in context.items() if v is not None]
        return f"{line} ({', '.join(parts)})" if parts else line


def create_rich_handler() -> logging.Handler:
    """Rich handler writing to stderr, so command output on stdout stays clean."""
    return RichHandler(
        console=Console(stderr=True),
        show_time=True,
        show_level=True,
        show_path=True,
        markup=False,
        rich_tracebacks=True,
    )
