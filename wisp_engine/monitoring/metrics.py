"""Prometheus metrics for the wisp engine.

Example:
    >>> metrics = MetricsService(MetricsConfig(port=9090))
    >>> metrics.start_server()
    >>> metrics.record_fill("rsi_reversion", "BTC/USDT", "buy")
    >>> metrics.set_equity(10250.00)
"""

import logging
import threading
from dataclasses import dataclass

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, start_http_server

logger = logging.getLogger(__name__)

# Module-level singleton
_metrics: "MetricsService | None" = None


@dataclass(frozen=True)
class MetricsConfig:
    """Configuration for metrics service.

    Attributes:
        enabled: Whether metrics collection is enabled
        port: HTTP server port for Prometheus scraping
        prefix: Metric name prefix
    """

    enabled: bool = True
    port: int = 9090
    prefix: str = "wisp"


class MetricsService:
    """Prometheus metrics for scheduler ticks, signals, fills and equity."""

    def __init__(
        self,
        config: MetricsConfig | None = None,
        registry: CollectorRegistry | None = None,
    ) -> None:
        """Initialize metrics service.

        Args:
            config: Metrics configuration (uses defaults if not provided)
            registry: Collector registry (the global one by default)
        """
        self.config = config or MetricsConfig()
        self.registry = registry or REGISTRY
        self._server_started = False
        self._lock = threading.Lock()

        self._ticks: Counter | None = None
        self._signals: Counter | None = None
        self._fills: Counter | None = None
        self._rejections: Counter | None = None
        self._strategy_errors: Counter | None = None
        self._equity: Gauge | None = None
        self._open_positions: Gauge | None = None

        if self.config.enabled:
            self._initialize_metrics()

    def _initialize_metrics(self) -> None:
        prefix = self.config.prefix
        registry = self.registry

        self._ticks = Counter(
            f"{prefix}_ticks_total",
            "Scheduler ticks executed",
            registry=registry,
        )
        self._signals = Counter(
            f"{prefix}_signals_total",
            "Signals emitted by strategies",
            ["strategy"],
            registry=registry,
        )
        self._fills = Counter(
            f"{prefix}_fills_total",
            "Executed signal actions",
            ["strategy", "pair", "side"],
            registry=registry,
        )
        self._rejections = Counter(
            f"{prefix}_rejections_total",
            "Signal actions rejected by execution",
            ["strategy", "reason"],
            registry=registry,
        )
        self._strategy_errors = Counter(
            f"{prefix}_strategy_errors_total",
            "Failed strategy evaluations",
            ["strategy"],
            registry=registry,
        )
        self._equity = Gauge(
            f"{prefix}_equity",
            "Current equity in quote currency",
            registry=registry,
        )
        self._open_positions = Gauge(
            f"{prefix}_open_positions",
            "Number of currently open positions",
            registry=registry,
        )
        logger.info("Prometheus metrics initialized")

    def start_server(self) -> bool:
        """Start the Prometheus HTTP server.

        Returns:
            True if server started successfully, False otherwise
        """
        if not self.config.enabled:
            logger.info("Metrics disabled, server not started")
            return False

        with self._lock:
            if self._server_started:
                logger.warning("Metrics server already started")
                return True
            try:
                start_http_server(self.config.port, registry=self.registry)
            except OSError as e:
                logger.error("Failed to start metrics server: %s", e)
                return False
            self._server_started = True
            logger.info("Prometheus metrics server started on port %d", self.config.port)
            return True

    @property
    def is_enabled(self) -> bool:
        return self.config.enabled

    def record_tick(self) -> None:
        if self._ticks is not None:
            self._ticks.inc()

    def record_signal(self, strategy: str) -> None:
        if self._signals is not None:
            self._signals.labels(strategy=strategy).inc()

    def record_fill(self, strategy: str, pair: str, side: str) -> None:
        if self._fills is not None:
            self._fills.labels(strategy=strategy, pair=pair, side=side.lower()).inc()

    def record_rejection(self, strategy: str, reason: str) -> None:
        if self._rejections is not None:
            self._rejections.labels(strategy=strategy, reason=reason).inc()

    def record_strategy_error(self, strategy: str) -> None:
        if self._strategy_errors is not None:
            self._strategy_errors.labels(strategy=strategy).inc()

    def set_equity(self, equity: float) -> None:
        if self._equity is not None:
            self._equity.set(equity)

    def set_open_positions(self, count: int) -> None:
        if self._open_positions is not None:
            self._open_positions.set(count)


def init_metrics(
    config: MetricsConfig | None = None,
    registry: CollectorRegistry | None = None,
) -> MetricsService:
    """Initialize the global metrics service."""
    global _metrics
    _metrics = MetricsService(config, registry)
    return _metrics


def get_metrics() -> MetricsService | None:
    """Get the global metrics service instance, if initialized."""
    return _metrics
