"""
Component factory driven by ``tandem.toml``.

``TandemFactory`` reads the configuration once and builds the correlation
tracker, metrics sink, performance tracker, breaker state store, circuit
breakers and gateways it describes. Shared components (tracker, sink, store,
performance tracker) are created on first use and reused.
"""

from typing import Optional

from tandem import __version__
from tandem.core.config import ConfigManager, StateStoreBackend, TandemConfig
from tandem.core.correlation import CorrelationTracker
from tandem.infrastructure.metrics import (
    InMemoryMetricsSink,
    MetricsSink,
    PerformanceTracker,
    PrometheusMetricsSink,
)
from tandem.infrastructure.normalization import ResponseNormalizer
from tandem.infrastructure.resilience import (
    CircuitBreaker,
    CircuitBreakerConfig,
    FileStateStore,
    InMemoryStateStore,
    StateStore,
)
from tandem.logging import LoggingConfig, configure_logging, get_logger

from .gateway import VariantBackend, VariantGateway

logger = get_logger(__name__)


class TandemFactory:
    """Builds Tandem components from a configuration manager."""

    def __init__(self, config_manager: Optional[ConfigManager] = None):
        """
        Args:
            config_manager: Source of the configuration (default: ./tandem.toml)
        """
        self.config_manager = config_manager or ConfigManager()
        self._tracker: Optional[CorrelationTracker] = None
        self._sink: Optional[MetricsSink] = None
        self._store: Optional[StateStore] = None
        self._performance: Optional[PerformanceTracker] = None

    @property
    def config(self) -> TandemConfig:
        return self.config_manager.load_config()

    def configure_logging(self, **overrides) -> LoggingConfig:
        """Install log handlers from ``[logging]``, labelled with ``[general]``."""
        general = self.config.general
        values = dict(
            service_name=general.service_name,
            environment=general.environment,
            version=__version__,
        )
        values.update(overrides)

        logging_config = LoggingConfig.from_settings(self.config.logging, **values)
        configure_logging(logging_config, self.tracker)
        return logging_config

    @property
    def tracker(self) -> CorrelationTracker:
        if self._tracker is None:
            self._tracker = CorrelationTracker(service_name=self.config.general.service_name)
        return self._tracker

    @property
    def metrics_sink(self) -> MetricsSink:
        """Prometheus sink (with its HTTP server) when ``[metrics] enabled``."""
        if self._sink is None:
            self._sink = self._build_metrics_sink()
        return self._sink

    def _build_metrics_sink(self) -> MetricsSink:
        settings = self.config.metrics
        if not settings.enabled:
            return InMemoryMetricsSink(max_batch_size=settings.max_batch_size)

        sink = PrometheusMetricsSink(
            namespace=settings.namespace, max_batch_size=settings.max_batch_size
        )
        try:
            sink.start_server(settings.port)
        except OSError as e:
            # Aggregates still reach the registry; only the scrape endpoint is missing
            logger.error(
                "Failed to start metrics server",
                port=settings.port,
                error_type=type(e).__name__,
                error=str(e),
            )
        return sink

    @property
    def state_store(self) -> StateStore:
        if self._store is None:
            settings = self.config.state_store
            if settings.backend == StateStoreBackend.FILE:
                self._store = FileStateStore(settings.path)
            else:
                self._store = InMemoryStateStore()
        return self._store

    @property
    def performance(self) -> PerformanceTracker:
        if self._performance is None:
            self._performance = PerformanceTracker.from_config(
                self.config.performance, sink=self.metrics_sink, tracker=self.tracker
            )
        return self._performance

    def create_breaker(self, name: str) -> CircuitBreaker:
        """Breaker ``name`` with its merged thresholds and the shared store."""
        settings = self.config_manager.get_breaker_settings(name)
        return CircuitBreaker(
            name,
            CircuitBreakerConfig.from_settings(settings, state_ttl=self.config.state_store.ttl),
            self.state_store,
            self.tracker,
        )

    def create_gateway(
        self,
        operation: str,
        primary: VariantBackend,
        fallback: Optional[VariantBackend] = None,
        breaker_name: Optional[str] = None,
    ) -> VariantGateway:
        """Gateway for ``operation``; the breaker is named after it unless given."""
        return VariantGateway(
            operation,
            primary=primary,
            breaker=self.create_breaker(breaker_name or operation),
            performance=self.performance,
            fallback=fallback,
            normalizer=ResponseNormalizer(self.tracker),
            tracker=self.tracker,
        )

    def close(self) -> None:
        """Stop the performance tracker's flush thread and flush what is left."""
        if self._performance is not None:
            self._performance.close()
