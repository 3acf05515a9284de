"""
Correlation tracking for Tandem.

Usage:
    from tandem.core.correlation import CorrelationTracker, with_correlation

    tracker = CorrelationTracker(service_name="checkout")

    # Async call chains
    result = await tracker.run_with_correlation("create_payment", do_work)

    # Sync code
    with tracker.correlation_scope("refund") as context:
        headers = tracker.inject_into_headers({"content-type": "application/json"})

    # Decorator usage
    @with_correlation(operation="process_payment", tracker=tracker)
    async def process_payment():
        pass
"""

from .context import (
    HEADER_AMZN_TRACE_ID,
    HEADER_CORRELATION_ID,
    HEADER_PARENT_ID,
    HEADER_SERVICE,
    HEADER_SPAN_ID,
    HEADER_TRACE_ID,
    CorrelationContext,
    generate_id,
    generate_trace_id,
)
from .decorators import with_correlation
from .tracker import (
    CorrelationTracker,
    get_correlation_tracker,
    set_correlation_tracker,
)

__all__ = [
    "CorrelationContext",
    "CorrelationTracker",
    "get_correlation_tracker",
    "set_correlation_tracker",
    "with_correlation",
    "generate_id",
    "generate_trace_id",
    "HEADER_CORRELATION_ID",
    "HEADER_TRACE_ID",
    "HEADER_AMZN_TRACE_ID",
    "HEADER_SPAN_ID",
    "HEADER_PARENT_ID",
    "HEADER_SERVICE",
]
