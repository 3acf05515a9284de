"""
Response normalization for the two serving variants.

The GraphQL variant answers ``{"data": ..., "errors": [...]}``; the HTTP
variant answers a ``{"statusCode", "body"}`` envelope, a bespoke
``{"success", "data", "error"}`` object or a bare payload. Both become a
``NormalizedResponse`` so callers never branch on the variant.
"""

import json
import traceback
from collections.abc import Mapping
from typing import Any, Dict, List, Optional, Sequence, Union

from tandem.core.correlation import get_correlation_tracker
from tandem.core.models import Variant
from tandem.exceptions import ErrorCodes, ResponseExtractionError, TandemError
from tandem.logging import get_logger

from .models import NormalizedResponse, ResponseError, ResponseMetadata

logger = get_logger(__name__)

GRAPHQL_ENVELOPE_KEYS = frozenset({"data", "errors", "extensions"})

RETRIABLE_CODES = frozenset(
    {
        "HTTP_429",
        "HTTP_502",
        "HTTP_503",
        "HTTP_504",
        "TIMEOUT",
        "NETWORK_ERROR",
        "THROTTLED",
        "SERVICE_UNAVAILABLE",
        "GATEWAY_TIMEOUT",
    }
)

USER_MESSAGES = {
    "HTTP_400": "Invalid request. Please check your input.",
    "HTTP_401": "Authentication required. Please sign in.",
    "HTTP_403": "You do not have permission to perform this action.",
    "HTTP_404": "The requested resource was not found.",
    "HTTP_429": "Too many requests. Please try again later.",
    "HTTP_500": "Server error. Please try again later.",
    "HTTP_502": "Service temporarily unavailable.",
    "HTTP_503": "Service temporarily unavailable.",
    "NETWORK_ERROR": "Network connection issue. Please check your connection.",
    "TIMEOUT": "Request timed out. Please try again.",
    "VALIDATION_ERROR": "Please check your input and try again.",
}

DEFAULT_USER_MESSAGE = "An unexpected error occurred"


def _parse_body(body: Any) -> Any:
    """JSON-decode string bodies, falling back to the raw value."""
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    if isinstance(body, str):
        try:
            return json.loads(body)
        except ValueError:
            return body
    return body


def _error_message(value: Any) -> Optional[str]:
    """Message from an error value that may be a string or an error object."""
    if isinstance(value, str):
        return value or None
    if isinstance(value, Mapping):
        message = value.get("message")
        return str(message) if message else None
    return None


class ResponseNormalizer:
    """Reconciles both variants' result shapes into ``NormalizedResponse``."""

    def __init__(self, tracker=None):
        self.tracker = tracker if tracker is not None else get_correlation_tracker()

    def _metadata(self, variant: Optional[str], duration_ms: Optional[float]) -> ResponseMetadata:
        return ResponseMetadata(
            correlation_id=self.tracker.get_current_correlation_id(),
            source_variant=variant,
            duration_ms=duration_ms,
        )

    def _failure(
        self,
        variant: Optional[str],
        message: str,
        code: Optional[str],
        details: Any = None,
        data: Any = None,
        duration_ms: Optional[float] = None,
    ) -> NormalizedResponse:
        return NormalizedResponse(
            success=False,
            data=data,
            error=ResponseError(message=message, code=code, details=details),
            metadata=self._metadata(variant, duration_ms),
        )

    # ------------------------------------------------------------------
    # Variant shapes
    # ------------------------------------------------------------------

    def normalize_transport_a(self, raw: Any, duration_ms: Optional[float] = None) -> NormalizedResponse:
        """
        Normalize a GraphQL-shaped result.

        A mapping whose keys are all envelope keys (``data``, ``errors``,
        ``extensions``) is unwrapped to its ``data`` member; any other mapping
        is the payload itself. A non-empty ``errors`` list fails with the first
        error, keeping partial ``data``.
        """
        variant = Variant.GRAPHQL.value

        if raw is None:
            return self._failure(variant, "No response received", ErrorCodes.NO_RESPONSE, duration_ms=duration_ms)

        if not isinstance(raw, Mapping):
            logger.warning(
                "Unrecognized GraphQL response shape",
                variant=variant,
                response_type=type(raw).__name__,
            )
            return self._failure(
                variant,
                "Invalid response format",
                ErrorCodes.INVALID_RESPONSE,
                details={"type": type(raw).__name__},
                duration_ms=duration_ms,
            )

        is_envelope = bool(raw) and set(raw.keys()) <= GRAPHQL_ENVELOPE_KEYS
        errors = raw.get("errors") if is_envelope else None
        if isinstance(errors, Mapping):
            errors = [errors]

        if not errors:
            data = raw.get("data") if is_envelope else raw
            return NormalizedResponse(
                success=True, data=data, metadata=self._metadata(variant, duration_ms)
            )

        first = errors[0]
        extensions = first.get("extensions") if isinstance(first, Mapping) else None
        return self._failure(
            variant,
            _error_message(first) or "GraphQL operation failed",
            (extensions or {}).get("code") or ErrorCodes.GRAPHQL_ERROR,
            details=extensions or {},
            data=raw.get("data"),
            duration_ms=duration_ms,
        )

    def normalize_transport_b(self, raw: Any, duration_ms: Optional[float] = None) -> NormalizedResponse:
        """
        Normalize an HTTP-shaped result.

        ``statusCode``/``body`` envelopes succeed on 2xx; other statuses fail
        with code ``HTTP_<status>`` and a message from the body's ``error`` or
        ``message``. ``{"success": ...}`` objects are taken at their word.
        Anything else is a bare payload and counts as success.
        """
        variant = Variant.HTTP.value

        if raw is None:
            return self._failure(variant, "No response received", ErrorCodes.NO_RESPONSE, duration_ms=duration_ms)

        if isinstance(raw, Mapping) and "statusCode" in raw:
            status = raw.get("statusCode")
            if isinstance(status, bool) or not isinstance(status, int):
                try:
                    status = int(status)
                except (TypeError, ValueError):
                    return self._failure(
                        variant,
                        "Invalid response format",
                        ErrorCodes.INVALID_RESPONSE,
                        details={"statusCode": raw.get("statusCode")},
                        duration_ms=duration_ms,
                    )

            body = _parse_body(raw.get("body"))
            if 200 <= status < 300:
                return NormalizedResponse(
                    success=True, data=body, metadata=self._metadata(variant, duration_ms)
                )

            message = None
            if isinstance(body, Mapping):
                message = _error_message(body.get("error")) or _error_message(body.get("message"))
            return self._failure(
                variant,
                message or f"HTTP {status} error",
                f"HTTP_{status}",
                details=body,
                duration_ms=duration_ms,
            )

        if isinstance(raw, Mapping) and "success" in raw:
            if raw["success"]:
                data = raw.get("data")
                return NormalizedResponse(
                    success=True,
                    data=data if data is not None else raw,
                    metadata=self._metadata(variant, duration_ms),
                )

            error = raw.get("error")
            if isinstance(error, Mapping):
                return self._failure(
                    variant,
                    _error_message(error) or "Operation failed",
                    error.get("code") or ErrorCodes.OPERATION_FAILED,
                    details=error.get("details"),
                    data=raw.get("data"),
                    duration_ms=duration_ms,
                )
            return self._failure(
                variant,
                _error_message(error) or "Operation failed",
                ErrorCodes.OPERATION_FAILED,
                data=raw.get("data"),
                duration_ms=duration_ms,
            )

        return NormalizedResponse(success=True, data=raw, metadata=self._metadata(variant, duration_ms))

    def normalize(
        self,
        raw: Any,
        variant: Union[Variant, str],
        duration_ms: Optional[float] = None,
    ) -> NormalizedResponse:
        """Dispatch to the normalizer for ``variant``."""
        if Variant(variant) == Variant.GRAPHQL:
            return self.normalize_transport_a(raw, duration_ms)
        return self.normalize_transport_b(raw, duration_ms)

    # ------------------------------------------------------------------
    # Helpers for callers
    # ------------------------------------------------------------------

    def extract_data(self, response: NormalizedResponse) -> Any:
        """Return ``response.data`` or raise ``ResponseExtractionError``."""
        if not response.success or response.data is None:
            error = response.error
            raise ResponseExtractionError(
                error.message if error else "Operation failed",
                error.code if error else None,
                error.details if error else None,
            )
        return response.data

    def is_retriable(self, response: NormalizedResponse) -> bool:
        """Whether the failure is transient (timeouts, throttling, 429/502/503/504)."""
        if response.error is None:
            return False
        if response.error.code in RETRIABLE_CODES:
            return True
        message = response.error.message.lower()
        return "timeout" in message or "throttl" in message

    def to_user_message(self, response: NormalizedResponse) -> str:
        """Vetted human-readable text for the response's error."""
        if response.error is None:
            return DEFAULT_USER_MESSAGE
        return USER_MESSAGES.get(response.error.code or "", response.error.message)

    def merge_responses(self, responses: Sequence[NormalizedResponse]) -> NormalizedResponse:
        """
        Combine a batch into one response.

        Successful only if every item succeeded. ``data`` lists the successful
        items' data; failures are summarized in one ``BATCH_ERROR`` whose
        details list each item's error.
        """
        data: List[Any] = [r.data for r in responses if r.success and r.data is not None]
        errors = [r.error for r in responses if not r.success]

        error = None
        if errors:
            error = ResponseError(
                message=f"{len(errors)} operations failed",
                code=ErrorCodes.BATCH_ERROR,
                details=[e.to_dict() for e in errors],
            )

        source = responses[0].metadata.source_variant if responses else None
        return NormalizedResponse(
            success=not errors,
            data=data or None,
            error=error,
            metadata=self._metadata(source, None),
        )

    def create_error_response(
        self,
        error: BaseException,
        variant: Union[Variant, str],
        duration_ms: Optional[float] = None,
    ) -> NormalizedResponse:
        """Turn an exception into a failed envelope, keeping its error code."""
        if isinstance(error, TandemError):
            message = error.message
            code = error.error_code
        else:
            message = str(error)
            code = getattr(error, "error_code", None) or getattr(error, "code", None)

        details: Dict[str, Any] = {"name": type(error).__name__}
        if error.__traceback__ is not None:
            details["stack"] = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        if isinstance(error, TandemError) and error.context:
            details["context"] = dict(error.context)

        return self._failure(
            Variant(variant).value,
            message or "Unknown error occurred",
            code if isinstance(code, str) and code else ErrorCodes.UNKNOWN_ERROR,
            details=details,
            duration_ms=duration_ms,
        )
