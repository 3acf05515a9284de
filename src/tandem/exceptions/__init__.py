"""
Tandem Exception Hierarchy

Exception Hierarchy:
    TandemError (base)
    ├── CircuitOpenError
    ├── OperationTimeoutError
    ├── StateStoreError
    ├── MetricsSinkError
    ├── ResponseExtractionError
    └── ConfigurationError
        ├── InvalidConfigurationError
        └── ConfigurationValidationError

Only CircuitOpenError and OperationTimeoutError (plus whatever the guarded
operation itself raises) reach callers. State store and metrics sink errors
are logged by the component that hit them and never propagated.
"""

from .base import ExceptionContext, TandemError
from .config import (
    ConfigurationError,
    ConfigurationValidationError,
    InvalidConfigurationError,
)
from .metrics import MetricsSinkError
from .normalization import ResponseExtractionError
from .resilience import CircuitOpenError, OperationTimeoutError
from .storage import StateStoreError
from .templates import ErrorCodes, ErrorMessageTemplates

__all__ = [
    "TandemError",
    "ExceptionContext",
    "CircuitOpenError",
    "OperationTimeoutError",
    "StateStoreError",
    "MetricsSinkError",
    "ResponseExtractionError",
    "ConfigurationError",
    "InvalidConfigurationError",
    "ConfigurationValidationError",
    "ErrorCodes",
    "ErrorMessageTemplates",
]
