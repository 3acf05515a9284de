"""
Standardized error codes and message templates.

Codes double as the ``error.code`` of normalized response envelopes, so they
must stay stable once published.
"""


class ErrorCodes:
    """Stable error codes for programmatic handling."""

    # Breaker
    CIRCUIT_OPEN = "CIRCUIT_OPEN"
    TIMEOUT = "TIMEOUT"

    # Operational (never surfaced to callers)
    STATE_STORE_ERROR = "STATE_STORE_ERROR"
    METRICS_SINK_ERROR = "METRICS_SINK_ERROR"

    # Normalization
    INVALID_RESPONSE = "INVALID_RESPONSE"
    NO_RESPONSE = "NO_RESPONSE"
    GRAPHQL_ERROR = "GRAPHQL_ERROR"
    BATCH_ERROR = "BATCH_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    OPERATION_FAILED = "OPERATION_FAILED"

    # Configuration
    CONFIG_INVALID = "CONFIG_INVALID"


class ErrorMessageTemplates:
    """Message templates for consistent formatting."""

    CIRCUIT_OPEN = "Circuit breaker is OPEN for service: {name}"
    OPERATION_TIMEOUT = "Operation timeout after {timeout:.3f}s for service: {name}"
    STATE_STORE_ERROR = "State store {operation} failed for '{name}': {details}"
    METRICS_SINK_ERROR = "Metrics sink rejected batch of {count} data points: {details}"
