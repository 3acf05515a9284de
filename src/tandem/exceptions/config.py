"""
Configuration exceptions.

Raised while loading or validating ``tandem.toml`` and its ``TANDEM_*``
environment overrides.
"""

from typing import Any, List, Optional

from .base import ExceptionContext, TandemError
from .templates import ErrorCodes


class ConfigurationError(TandemError):
    """Base exception for configuration-related errors."""

    default_error_code = ErrorCodes.CONFIG_INVALID

    def __init__(self, message: str, help_text: Optional[str] = None):
        super().__init__(message, ExceptionContext(help_text=help_text))


class InvalidConfigurationError(ConfigurationError):
    """A single setting (or the file itself) has an unusable value."""

    def __init__(self, field: str, value: Any, expected: str):
        self.field = field
        self.value = value
        self.expected = expected
        super().__init__(
            f"Invalid value for '{field}': {value!r} (expected {expected})",
            f"Fix '{field}' in the configuration file or its TANDEM_* environment override",
        )


class ConfigurationValidationError(ConfigurationError):
    """Schema validation failed; ``errors`` lists one ``path: problem`` per issue."""

    def __init__(self, errors: List[str]):
        self.errors = errors
        lines = "".join(f"\n  - {error}" for error in errors)
        super().__init__(
            f"Configuration validation failed:{lines}",
            "Fix the settings listed above; run 'tandem config show' to see the effective values",
        )
