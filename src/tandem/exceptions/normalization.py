"""Response normalization exceptions."""

from typing import Optional

from .base import ExceptionContext, TandemError
from .templates import ErrorCodes


class ResponseExtractionError(TandemError):
    """Raised by ``extract_data`` when an envelope carries no usable data."""

    default_error_code = ErrorCodes.OPERATION_FAILED

    def __init__(self, message: str, error_code: Optional[str] = None, details=None):
        self.details = details
        context = ExceptionContext(error_code=error_code or ErrorCodes.OPERATION_FAILED)
        super().__init__(message, context)
