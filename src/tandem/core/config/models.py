"""
Configuration models for Tandem.

Pydantic models that validate and document every setting the resilience
layer reads: logging, metrics, the performance tracker, the breaker state
store and per-breaker thresholds.
"""

from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from tandem.core.models import Variant

DEFAULT_LOG_FILE_SIZE_BYTES = 10 * 1024 * 1024
MIN_LOG_FILE_SIZE_BYTES = 1024
DEFAULT_LOG_BACKUP_COUNT = 5
MAX_SINK_BATCH_SIZE = 20


class LogLevel(str, Enum):
    """Valid logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class StateStoreBackend(str, Enum):
    """Supported breaker state stores."""

    MEMORY = "memory"
    FILE = "file"


class LoggingSettings(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(LogLevel.INFO, description="Logging level")
    format: str = Field("console", description="Log format: console, json, rich")
    output: List[str] = Field(["console"], description="Log outputs: console, file")
    file_path: Optional[Path] = Field(None, description="Log file path")
    max_file_size: int = Field(
        DEFAULT_LOG_FILE_SIZE_BYTES,
        ge=MIN_LOG_FILE_SIZE_BYTES,
        description="Maximum log file size in bytes",
    )
    backup_count: int = Field(
        DEFAULT_LOG_BACKUP_COUNT,
        ge=1,
        le=20,
        description="Number of backup log files to keep",
    )

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        if v not in ["console", "json", "rich"]:
            raise ValueError("format must be one of: console, json, rich")
        return v

    @field_validator("output")
    @classmethod
    def validate_output(cls, v: List[str]) -> List[str]:
        valid_outputs = {"console", "file"}
        for output in v:
            if output not in valid_outputs:
                raise ValueError(
                    f"output must contain only: {', '.join(sorted(valid_outputs))}"
                )
        return v


class GeneralConfig(BaseModel):
    """General application configuration."""

    service_name: str = Field("tandem", description="Service label stamped on contexts and logs")
    environment: str = Field("development", description="Deployment environment label")


class MetricsConfig(BaseModel):
    """Metrics sink configuration."""

    enabled: bool = Field(False, description="Export aggregates to Prometheus")
    port: int = Field(8000, ge=1024, le=65535, description="Metrics server port")
    namespace: str = Field("tandem", description="Prometheus metric name prefix")
    max_batch_size: int = Field(
        MAX_SINK_BATCH_SIZE,
        ge=1,
        le=MAX_SINK_BATCH_SIZE,
        description="Data points per sink call",
    )


class PerformanceConfig(BaseModel):
    """Performance tracker configuration."""

    max_buffer_size: int = Field(1000, ge=1, description="Metrics buffered before an eager flush")
    flush_interval: float = Field(60.0, gt=0, description="Background flush period (seconds)")
    auto_flush: bool = Field(True, description="Run the background flush thread")
    default_variant: Variant = Field(Variant.HTTP, description="Variant recorded when none is given")
    baseline_variant: Variant = Field(Variant.HTTP, description="Variant A in comparisons")
    candidate_variant: Variant = Field(Variant.GRAPHQL, description="Variant B in comparisons")
    min_samples: int = Field(10, ge=1, description="Candidate samples needed for a recommendation")
    history_size: int = Field(10000, ge=1, description="Recorded metrics kept for statistics")

    @model_validator(mode="after")
    def validate_variants(self) -> "PerformanceConfig":
        if self.baseline_variant == self.candidate_variant:
            raise ValueError("baseline_variant and candidate_variant must differ")
        return self


class StateStoreConfig(BaseModel):
    """Breaker state persistence configuration."""

    backend: StateStoreBackend = Field(StateStoreBackend.MEMORY, description="State store backend")
    path: Path = Field(Path("./.tandem/breakers"), description="Directory for the file backend")
    ttl: int = Field(86400, ge=1, description="Seconds a persisted record stays valid")

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: Path) -> Path:
        if isinstance(v, str):
            v = Path(v)
        return v.expanduser()


class BreakerSettings(BaseModel):
    """Thresholds for one circuit breaker."""

    failure_threshold: int = Field(5, ge=1, description="Consecutive failures that open the circuit")
    success_threshold: int = Field(2, ge=1, description="Consecutive half-open successes that close it")
    timeout: float = Field(10.0, gt=0, description="Per-call deadline (seconds)")
    reset_timeout: float = Field(60.0, gt=0, description="Time spent OPEN before probing (seconds)")
    volume_threshold: int = Field(10, ge=1, description="Requests before the error rate is evaluated")
    error_threshold_percentage: float = Field(
        50.0, gt=0, le=100, description="Error rate (percent) that opens the circuit"
    )
    half_open_max_probes: int = Field(1, ge=1, description="Concurrent probes admitted while HALF_OPEN")


class BreakersConfig(BaseModel):
    """Default breaker thresholds plus per-breaker overrides."""

    default: BreakerSettings = Field(default_factory=BreakerSettings)
    overrides: Dict[str, BreakerSettings] = Field(default_factory=dict)


class TandemConfig(BaseModel):
    """Main Tandem configuration model."""

    general: GeneralConfig = Field(default_factory=GeneralConfig)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    performance: PerformanceConfig = Field(default_factory=PerformanceConfig)
    state_store: StateStoreConfig = Field(default_factory=StateStoreConfig)
    breakers: BreakersConfig = Field(default_factory=BreakersConfig)

    model_config = {
        "extra": "forbid",
        "validate_assignment": True,
        "str_strip_whitespace": True,
    }


class TandemSettings(BaseSettings):
    """Settings that can be overridden by environment variables."""

    # General settings
    tandem_service_name: Optional[str] = Field(None, alias="TANDEM_SERVICE_NAME")
    tandem_environment: Optional[str] = Field(None, alias="TANDEM_ENVIRONMENT")

    # Logging settings
    tandem_logging_level: Optional[str] = Field(None, alias="TANDEM_LOGGING_LEVEL")
    tandem_logging_format: Optional[str] = Field(None, alias="TANDEM_LOGGING_FORMAT")
    tandem_logging_output: Optional[str] = Field(None, alias="TANDEM_LOGGING_OUTPUT")
    tandem_logging_file_path: Optional[str] = Field(None, alias="TANDEM_LOGGING_FILE_PATH")

    # Metrics settings
    tandem_metrics_enabled: Optional[bool] = Field(None, alias="TANDEM_METRICS_ENABLED")
    tandem_metrics_port: Optional[int] = Field(None, alias="TANDEM_METRICS_PORT")

    # Performance tracker settings
    tandem_performance_max_buffer_size: Optional[int] = Field(
        None, alias="TANDEM_PERFORMANCE_MAX_BUFFER_SIZE"
    )
    tandem_performance_flush_interval: Optional[float] = Field(
        None, alias="TANDEM_PERFORMANCE_FLUSH_INTERVAL"
    )
    tandem_performance_default_variant: Optional[str] = Field(
        None, alias="TANDEM_PERFORMANCE_DEFAULT_VARIANT"
    )

    # State store settings
    tandem_state_store_backend: Optional[str] = Field(None, alias="TANDEM_STATE_STORE_BACKEND")
    tandem_state_store_path: Optional[str] = Field(None, alias="TANDEM_STATE_STORE_PATH")

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )
