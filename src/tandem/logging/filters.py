"""
Logging filter that stamps the active correlation identifiers onto records.
"""

import logging


class CorrelationLogFilter(logging.Filter):
    """
    Attach correlation_id/trace_id/span_id from a tracker to every record.

    Values already set explicitly on a record (via ``extra``) win. The
    tracker is any object with ``get_current_context()``; this module does
    not import the correlation package so logging stays a leaf dependency.
    """

    def __init__(self, tracker):
        super().__init__()
        self.tracker = tracker

    def filter(self, record: logging.LogRecord) -> bool:
        context = self.tracker.get_current_context()
        if context is not None:
            if getattr(record, "correlation_id", None) is None:
                record.correlation_id = context.correlation_id
            if getattr(record, "trace_id", None) is None:
                record.trace_id = context.trace_id
            if getattr(record, "span_id", None) is None:
                record.span_id = context.span_id
        return True
