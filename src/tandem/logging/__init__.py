"""
Tandem Logging Package

Structured logging with correlation stamping:
- formatters: Log formatting (JSON, console, rich)
- loggers: TandemLogger with keyword-argument context
- filters: CorrelationLogFilter stamping active trace identifiers
- config: Logging configuration
- manager: Centralized logging setup and management
"""

from .config import LoggingConfig
from .filters import CorrelationLogFilter
from .formatters import ConsoleFormatter, StructuredFormatter
from .loggers import TandemLogger
from .manager import LoggingManager, configure_logging, logging_manager

get_logger = logging_manager.get_logger

__all__ = [
    "LoggingConfig",
    "LoggingManager",
    "configure_logging",
    "TandemLogger",
    "get_logger",
    "CorrelationLogFilter",
    "StructuredFormatter",
    "ConsoleFormatter",
]
