"""
Configuration manager for Tandem.

Loads ``tandem.toml``, layers ``TANDEM_*`` environment overrides on top,
validates the result and writes it back with ``tomli_w``.
"""

import sys
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import tomli_w
from pydantic import ValidationError

from tandem.exceptions import (
    ConfigurationError,
    ConfigurationValidationError,
    InvalidConfigurationError,
)

from .models import BreakerSettings, TandemConfig, TandemSettings

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

# (section, key) <- TandemSettings attribute
ENV_OVERRIDES: Tuple[Tuple[str, str, str], ...] = (
    ("general", "service_name", "tandem_service_name"),
    ("general", "environment", "tandem_environment"),
    ("logging", "level", "tandem_logging_level"),
    ("logging", "format", "tandem_logging_format"),
    ("logging", "output", "tandem_logging_output"),
    ("logging", "file_path", "tandem_logging_file_path"),
    ("metrics", "enabled", "tandem_metrics_enabled"),
    ("metrics", "port", "tandem_metrics_port"),
    ("performance", "max_buffer_size", "tandem_performance_max_buffer_size"),
    ("performance", "flush_interval", "tandem_performance_flush_interval"),
    ("performance", "default_variant", "tandem_performance_default_variant"),
    ("state_store", "backend", "tandem_state_store_backend"),
    ("state_store", "path", "tandem_state_store_path"),
)


def _split_outputs(value: str):
    return [item.strip() for item in value.split(",") if item.strip()]


def strip_none(data):
    """Drop None values recursively; TOML has no null."""
    if isinstance(data, dict):
        return {k: strip_none(v) for k, v in data.items() if v is not None}
    if isinstance(data, list):
        return [strip_none(item) for item in data if item is not None]
    return data


class ConfigManager:
    """Loads, validates, caches and saves the Tandem configuration."""

    def __init__(self, config_file: Optional[Path] = None):
        """
        Args:
            config_file: Path to config file. If None, uses ./tandem.toml
        """
        self.config_file = Path(config_file) if config_file else Path.cwd() / "tandem.toml"
        self._config: Optional[TandemConfig] = None

    def load_config(self) -> TandemConfig:
        """Return the validated configuration, reading it on first use."""
        if self._config is not None:
            return self._config

        raw = self._read_file() if self.config_file.exists() else {}
        self._apply_environment(raw)

        try:
            self._config = TandemConfig(**raw)
        except ValidationError as e:
            problems = [
                f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
                for err in e.errors()
            ]
            raise ConfigurationValidationError(problems) from e

        return self._config

    def _read_file(self) -> Dict[str, Any]:
        try:
            with open(self.config_file, "rb") as f:
                return tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise InvalidConfigurationError(
                str(self.config_file), f"Invalid TOML syntax: {e}", "valid TOML format"
            ) from e
        except OSError as e:
            raise ConfigurationError(
                f"Cannot read configuration file: {self.config_file}",
                help_text="Check file permissions and path",
            ) from e

    @staticmethod
    def _apply_environment(raw: Dict[str, Any]) -> None:
        """Overwrite file values with any TANDEM_* variables that are set."""
        settings = TandemSettings()
        for section, key, attribute in ENV_OVERRIDES:
            value = getattr(settings, attribute)
            if value is None or value == "":
                continue
            if (section, key) == ("logging", "output"):
                value = _split_outputs(value)
            raw.setdefault(section, {})[key] = value

    def save_config(self, config: Optional[TandemConfig] = None) -> None:
        """Write ``config`` (or the loaded one) to the config file."""
        config = config or self.load_config()

        self.config_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_file, "wb") as f:
            tomli_w.dump(self._as_toml_data(config), f)

        self._config = config

    def get_breaker_settings(self, name: str) -> BreakerSettings:
        """Thresholds for breaker ``name``: defaults merged with its overrides."""
        breakers = self.load_config().breakers
        override = breakers.overrides.get(name)
        if override is None:
            return breakers.default

        merged = breakers.default.model_dump()
        merged.update(override.model_dump(exclude_unset=True))
        return BreakerSettings(**merged)

    def dump_toml(self, config: Optional[TandemConfig] = None) -> str:
        """Render configuration as TOML text."""
        return tomli_w.dumps(self._as_toml_data(config or self.load_config()))

    @staticmethod
    def _as_toml_data(config: TandemConfig) -> Dict[str, Any]:
        return strip_none(config.model_dump(mode="json"))
