"""
Runtime logging options.

``LoggingConfig`` is what ``configure_logging`` consumes. It is usually built
from the validated ``[logging]`` section of ``tandem.toml`` through
``from_settings``.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

FORMAT_TYPES = ("console", "json", "rich")


def _resolve_level(level: Union[str, int]) -> int:
    if isinstance(level, int):
        return level
    name = str(getattr(level, "value", level)).upper()
    resolved = logging.getLevelName(name)
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level}")
    return resolved


@dataclass
class LoggingConfig:
    """Configuration for the logging system.

    ``level`` accepts a level name or number; ``output`` accepts a single
    output or a list of ``"console"``/``"file"``.
    """

    level: Union[str, int] = logging.INFO
    format_type: str = "console"
    output: Union[str, List[str]] = "console"
    file_path: Optional[Path] = None
    max_file_size: int = 10 * 1024 * 1024
    backup_count: int = 5
    service_name: str = "tandem"
    version: str = "unknown"
    environment: Optional[str] = None

    def __post_init__(self):
        self.level = _resolve_level(self.level)
        if self.format_type not in FORMAT_TYPES:
            raise ValueError(f"format_type must be one of: {', '.join(FORMAT_TYPES)}")
        self.output = [self.output] if isinstance(self.output, str) else list(self.output)
        if self.file_path is not None:
            self.file_path = Path(self.file_path)

    @classmethod
    def from_settings(cls, settings, **overrides) -> "LoggingConfig":
        """Build from a ``LoggingSettings`` model; keyword overrides win."""
        values = dict(
            level=settings.level,
            format_type=settings.format,
            output=list(settings.output),
            file_path=settings.file_path,
            max_file_size=settings.max_file_size,
            backup_count=settings.backup_count,
        )
        values.update(overrides)
        return cls(**values)
