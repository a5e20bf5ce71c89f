"""Monitoring: Prometheus metrics."""

from .metrics import MetricsConfig, MetricsService, get_metrics, init_metrics

__all__ = ["MetricsConfig", "MetricsService", "get_metrics", "init_metrics"]
