"""
Correlation context data and identifier generation.

A CorrelationContext describes one hop (span) of a traced operation. Contexts
are frozen: anything that "changes" the active context derives a new one
with ``dataclasses.replace`` and swaps it in.
"""

import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional

# Header names used for propagation across process boundaries
HEADER_CORRELATION_ID = "x-correlation-id"
HEADER_TRACE_ID = "x-trace-id"
HEADER_AMZN_TRACE_ID = "x-amzn-trace-id"
HEADER_SPAN_ID = "x-span-id"
HEADER_PARENT_ID = "x-parent-id"
HEADER_SERVICE = "x-service"

TRACE_ID_VERSION = "1"
TRACE_ID_LENGTH = 35


def generate_id() -> str:
    """Generate a correlation or span identifier (UUID4)."""
    return str(uuid.uuid4())


def generate_trace_id(now: Optional[float] = None) -> str:
    """Generate a trace ID of the form ``1-<epoch hex>-<24 hex random>``.

    The epoch component is 8 hex digits of POSIX seconds, so IDs sort roughly
    by creation time; the random component is 96 bits from a UUID4.
    """
    epoch = int(now if now is not None else time.time())
    random_part = uuid.uuid4().hex[:24]
    return f"{TRACE_ID_VERSION}-{epoch:08x}-{random_part}"


@dataclass(frozen=True)
class CorrelationContext:
    """
    Identity and trace record for one hop of a logical operation.

    ``correlation_id`` is shared by every hop of one logical request,
    ``trace_id`` by the whole trace tree, ``span_id`` is unique to this hop
    and ``parent_id`` points at the enclosing hop's span.
    """

    correlation_id: str
    trace_id: str
    span_id: str
    service: str
    operation: Optional[str] = None
    parent_id: Optional[str] = None
    user_id: Optional[str] = None
    timestamp: float = field(default_factory=time.time)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    def elapsed_seconds(self) -> float:
        """Get elapsed time since the context was created."""
        return time.time() - self.timestamp

    def with_user_id(self, user_id: str) -> "CorrelationContext":
        return replace(self, user_id=user_id)

    def with_metadata(self, **metadata) -> "CorrelationContext":
        merged = dict(self.metadata)
        merged.update(metadata)
        return replace(self, metadata=merged)

    def to_headers(self) -> Dict[str, str]:
        """Serialize identifiers into outgoing transport metadata."""
        return {
            HEADER_CORRELATION_ID: self.correlation_id,
            HEADER_TRACE_ID: self.trace_id,
            HEADER_SPAN_ID: self.span_id,
            HEADER_PARENT_ID: self.parent_id or "",
            HEADER_SERVICE: self.service,
        }

    def to_log_fields(self) -> Dict[str, Any]:
        """Identifiers attached to every log line emitted inside this context."""
        fields = {
            "correlation_id": self.correlation_id,
            "trace_id": self.trace_id,
            "span_id": self.span_id,
            "parent_id": self.parent_id,
            "service": self.service,
            "operation": self.operation,
        }
        if self.user_id:
            fields["user_id"] = self.user_id
        return fields
