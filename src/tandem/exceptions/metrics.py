"""Metrics sink exceptions."""

from typing import Optional

from .base import ExceptionContext, TandemError
from .templates import ErrorCodes, ErrorMessageTemplates


class MetricsSinkError(TandemError):
    """Raised by a metrics sink that could not accept a batch."""

    default_error_code = ErrorCodes.METRICS_SINK_ERROR

    def __init__(self, count: int, details: Optional[str] = None):
        self.count = count
        context = ExceptionContext(
            error_code=ErrorCodes.METRICS_SINK_ERROR,
            context={"batch_size": count},
            technical_details=details,
        )
        super().__init__(
            ErrorMessageTemplates.METRICS_SINK_ERROR.format(
                count=count, details=details or "unknown error"
            ),
            context,
        )
