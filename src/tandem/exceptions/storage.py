"""
Persistence exceptions.

Raised by state stores; the circuit breaker logs and absorbs them.
"""

from typing import Optional

from .base import ExceptionContext, TandemError
from .templates import ErrorCodes, ErrorMessageTemplates


class StateStoreError(TandemError):
    """Raised when a breaker state record cannot be read or written."""

    default_error_code = ErrorCodes.STATE_STORE_ERROR

    def __init__(self, operation: str, name: str, details: Optional[str] = None):
        self.operation = operation
        self.name = name
        context = ExceptionContext(
            help_text="Check that the state store location exists and is writable",
            error_code=ErrorCodes.STATE_STORE_ERROR,
            context={"operation": operation, "breaker": name},
            technical_details=details,
        )
        super().__init__(
            ErrorMessageTemplates.STATE_STORE_ERROR.format(
                operation=operation, name=name, details=details or "unknown error"
            ),
            context,
        )
