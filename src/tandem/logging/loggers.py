"""
Logger wrapper with keyword-argument structured context.

``logger.info("Circuit opened", breaker="payments", failures=3)`` keeps the
message short and ships the keyword arguments as ``extra_context``, which the
JSON formatter merges into the entry and the console formatter appends.
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Optional


class TandemLogger:
    """Logger with structured logging and persistent context."""

    def __init__(self, name: str, correlation_id: Optional[str] = None):
        self.logger = logging.getLogger(name)
        self.correlation_id = correlation_id
        self.extra_context: Dict[str, Any] = {}

    @property
    def name(self) -> str:
        return self.logger.name

    def _log(self, level: int, msg: str, exc_info: bool = False, **kwargs):
        """Internal logging method with correlation ID and context."""
        if not self.logger.isEnabledFor(level):
            return

        extra: Dict[str, Any] = {}
        if self.correlation_id:
            extra["correlation_id"] = self.correlation_id

        context = self.extra_context.copy()
        context.update(kwargs)
        if context:
            extra["extra_context"] = context

        self.logger.log(level, msg, extra=extra, exc_info=exc_info, stacklevel=3)

    def debug(self, msg: str, **kwargs):
        self._log(logging.DEBUG, msg, **kwargs)

    def info(self, msg: str, **kwargs):
        self._log(logging.INFO, msg, **kwargs)

    def warning(self, msg: str, **kwargs):
        self._log(logging.WARNING, msg, **kwargs)

    def error(self, msg: str, **kwargs):
        self._log(logging.ERROR, msg, **kwargs)

    def exception(self, msg: str, **kwargs):
        """Log exception with traceback."""
        self._log(logging.ERROR, msg, exc_info=True, **kwargs)

    def critical(self, msg: str, **kwargs):
        self._log(logging.CRITICAL, msg, **kwargs)

    def add_context(self, **kwargs):
        """Add persistent context to this logger."""
        self.extra_context.update(kwargs)

    def clear_context(self):
        self.extra_context.clear()

    def with_context(self, **kwargs) -> "TandemLogger":
        """Create a copy of this logger with additional context."""
        new_logger = TandemLogger(self.logger.name, self.correlation_id)
        new_logger.extra_context = self.extra_context.copy()
        new_logger.extra_context.update(kwargs)
        return new_logger

    @contextmanager
    def temp_context(self, **kwargs):
        """Context manager for temporary context."""
        original_context = self.extra_context.copy()
        self.extra_context.update(kwargs)
        try:
            yield self
        finally:
            self.extra_context = original_context


def get_logger(name: str, correlation_id: Optional[str] = None) -> TandemLogger:
    """Get a TandemLogger instance."""
    return TandemLogger(name, correlation_id)
