"""
Base exception classes for Tandem.

Every error Tandem raises derives from ``TandemError``, which carries a stable
error code (reused as ``error.code`` in normalized responses) and the
correlation ID of the call that failed.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


def _short_id() -> str:
    return uuid.uuid4().hex[:8]


@dataclass
class ExceptionContext:
    """Optional details attached to a Tandem exception."""

    help_text: Optional[str] = None
    error_code: Optional[str] = None
    context: Dict[str, Any] = field(default_factory=dict)
    technical_details: Optional[str] = None
    correlation_id: Optional[str] = None


class TandemError(Exception):
    """Base exception for all Tandem errors.

    Attributes:
        message: The error message
        help_text: Optional actionable guidance for the operator
        error_code: Code for programmatic handling; falls back to the
            class's ``default_error_code``
        correlation_id: The failing call's correlation ID, or a short
            random ID when raised outside any correlation
        context: Additional context information
        technical_details: Technical information for debugging
    """

    default_error_code: Optional[str] = None

    def __init__(self, message: str, context: Optional[ExceptionContext] = None):
        details = context or ExceptionContext()

        self.message = message
        self.help_text = details.help_text
        self.error_code = details.error_code or self.default_error_code
        self.context = details.context
        self.technical_details = details.technical_details
        self.correlation_id = details.correlation_id or _short_id()
        self.timestamp = datetime.now()
        super().__init__(message)

    def __str__(self) -> str:
        sections: List[str] = [self.message]
        if self.help_text:
            sections.append(f"Help: {self.help_text}")

        context_items = [f"{k}: {v}" for k, v in self.context.items() if v is not None]
        if context_items:
            sections.append(f"Context: {', '.join(context_items)}")

        return "\n\n".join(sections)

    @property
    def code(self) -> Optional[str]:
        """Alias used when the exception is turned into a response envelope."""
        return self.error_code

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "error_code": self.error_code,
            "correlation_id": self.correlation_id,
            "timestamp": self.timestamp.isoformat(),
            "context": dict(self.context),
            "help_text": self.help_text,
            "technical_details": self.technical_details,
        }

    def add_context(self, **kwargs) -> "TandemError":
        """Merge keyword context into the exception; returns self for chaining."""
        self.context.update(kwargs)
        return self
