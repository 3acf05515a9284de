"""
Canonical response envelope.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass
class ResponseError:
    message: str
    code: Optional[str] = None
    details: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "code": self.code, "details": self.details}


@dataclass
class ResponseMetadata:
    correlation_id: Optional[str] = None
    timestamp: float = field(default_factory=time.time)
    source_variant: Optional[str] = None
    duration_ms: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "correlation_id": self.correlation_id,
            "timestamp": self.timestamp,
            "source_variant": self.source_variant,
            "duration_ms": self.duration_ms,
        }


@dataclass
class NormalizedResponse(Generic[T]):
    """
    One result shape for both variants.

    ``data`` and ``error`` may both be set (partial batch results), but a
    failed response always carries an error with a non-empty message.
    """

    success: bool
    data: Optional[T] = None
    error: Optional[ResponseError] = None
    metadata: ResponseMetadata = field(default_factory=ResponseMetadata)

    def __post_init__(self):
        if not self.success and (self.error is None or not self.error.message):
            raise ValueError("A failed NormalizedResponse needs an error with a message")

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"success": self.success}
        if self.data is not None:
            result["data"] = self.data
        if self.error is not None:
            result["error"] = self.error.to_dict()
        result["metadata"] = self.metadata.to_dict()
        return result
