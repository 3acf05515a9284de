"""
Circuit breaker exceptions.

These are the two user-visible failure kinds: a rejection by an open breaker
and a guarded call that exceeded its deadline.
"""

from .base import ExceptionContext, TandemError
from .templates import ErrorCodes, ErrorMessageTemplates


class CircuitOpenError(TandemError):
    """Raised when a breaker refuses to attempt a call and no fallback exists."""

    default_error_code = ErrorCodes.CIRCUIT_OPEN

    def __init__(self, name: str, correlation_id=None):
        self.name = name
        context = ExceptionContext(
            help_text="The dependency is failing; the breaker will probe it again after its reset timeout",
            error_code=ErrorCodes.CIRCUIT_OPEN,
            context={"breaker": name},
            correlation_id=correlation_id,
        )
        super().__init__(ErrorMessageTemplates.CIRCUIT_OPEN.format(name=name), context)


class OperationTimeoutError(TandemError):
    """Raised when a guarded call does not finish within the breaker timeout."""

    default_error_code = ErrorCodes.TIMEOUT

    def __init__(self, name: str, timeout: float, correlation_id=None):
        self.name = name
        self.timeout = timeout
        context = ExceptionContext(
            error_code=ErrorCodes.TIMEOUT,
            context={"breaker": name, "timeout_seconds": timeout},
            correlation_id=correlation_id,
        )
        super().__init__(
            ErrorMessageTemplates.OPERATION_TIMEOUT.format(timeout=timeout, name=name),
            context,
        )
