"""
Process-wide logging setup.

``LoggingManager`` owns the handlers it installs on the root logger, so
reconfiguring replaces exactly those and leaves handlers added by other code
(test capture, an embedding application) in place.
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import List, Optional

from .config import LoggingConfig
from .filters import CorrelationLogFilter
from .formatters import ConsoleFormatter, StructuredFormatter, create_rich_handler
from .loggers import TandemLogger

DEFAULT_LOG_FILE = Path("logs/tandem.log")
LOGGER_NAMESPACE = "tandem"


class LoggingManager:
    """Singleton that installs, replaces and removes Tandem's log handlers."""

    _instance = None

    config: Optional[LoggingConfig]
    handlers: List[logging.Handler]
    correlation_filter: Optional[CorrelationLogFilter]

    def __new__(cls):
        if cls._instance is None:
            instance = super().__new__(cls)
            instance.config = None
            instance.handlers = []
            instance.correlation_filter = None
            cls._instance = instance
        return cls._instance

    def configure(self, config: LoggingConfig, tracker=None) -> None:
        """Install handlers for ``config``, replacing any installed earlier.

        Args:
            config: Logging configuration
            tracker: Correlation tracker whose active identifiers are stamped
                on every record (None disables stamping)
        """
        self.reset()
        self.config = config
        if tracker is not None:
            self.correlation_filter = CorrelationLogFilter(tracker)

        root = logging.getLogger()
        root.setLevel(config.level)

        for output in config.output:
            handler = self._build_handler(output, config)
            handler.setLevel(config.level)
            if self.correlation_filter is not None:
                handler.addFilter(self.correlation_filter)
            root.addHandler(handler)
            self.handlers.append(handler)

        # Loggers that already exist may carry their own level
        for name in list(logging.Logger.manager.loggerDict):
            if name == LOGGER_NAMESPACE or name.startswith(LOGGER_NAMESPACE + "."):
                logging.getLogger(name).setLevel(config.level)

    def reset(self) -> None:
        """Remove and close every handler this manager installed."""
        root = logging.getLogger()
        for handler in self.handlers:
            root.removeHandler(handler)
            handler.close()
        self.handlers = []
        self.correlation_filter = None

    def _build_handler(self, output: str, config: LoggingConfig) -> logging.Handler:
        if output == "console":
            if config.format_type == "rich":
                handler = create_rich_handler()
                handler.setFormatter(logging.Formatter("%(message)s"))
                return handler
            handler = logging.StreamHandler(sys.stderr)
        elif output == "file":
            path = config.file_path or DEFAULT_LOG_FILE
            path.parent.mkdir(parents=True, exist_ok=True)
            handler = logging.handlers.RotatingFileHandler(
                path,
                maxBytes=config.max_file_size,
                backupCount=config.backup_count,
                encoding="utf-8",
            )
        else:
            raise ValueError(f"Unknown log output: {output}")

        handler.setFormatter(self._formatter_for(config))
        return handler

    @staticmethod
    def _formatter_for(config: LoggingConfig) -> logging.Formatter:
        if config.format_type == "json":
            return StructuredFormatter(config.service_name, config.version, config.environment)
        return ConsoleFormatter()

    def get_logger(self, name: str, correlation_id: Optional[str] = None) -> TandemLogger:
        """Get a Tandem logger instance."""
        return TandemLogger(name, correlation_id)


# Global logging manager instance
logging_manager = LoggingManager()


def configure_logging(config: LoggingConfig, tracker=None) -> None:
    """Configure the global logging system."""
    logging_manager.configure(config, tracker)
