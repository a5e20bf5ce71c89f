"""Tests for Prometheus MetricsService."""

from unittest.mock import patch

import pytest
from prometheus_client import CollectorRegistry

from wisp_engine.monitoring.metrics import MetricsConfig, MetricsService, get_metrics, init_metrics


@pytest.fixture
def registry() -> CollectorRegistry:
    return CollectorRegistry()


@pytest.fixture
def service(registry: CollectorRegistry) -> MetricsService:
    return MetricsService(MetricsConfig(prefix="test"), registry=registry)


class TestMetricsConfig:
    def test_default_values(self) -> None:
        config = MetricsConfig()
        assert config.enabled is True
        assert config.port == 9090
        assert config.prefix == "wisp"


class TestMetricsServiceDisabled:
    def test_record_methods_do_nothing(self, registry: CollectorRegistry) -> None:
        service = MetricsService(MetricsConfig(enabled=False), registry=registry)
        service.record_tick()
        service.record_signal("s")
        service.record_fill("s", "BTC/USDT", "BUY")
        service.set_equity(1.0)
        assert service.is_enabled is False
        assert service.start_server() is False
        assert registry.get_sample_value("wisp_ticks_total") is None


class TestMetricsServiceEnabled:
    def test_counters(self, service: MetricsService, registry: CollectorRegistry) -> None:
        service.record_tick()
        service.record_tick()
        service.record_signal("rsi")
        service.record_fill("rsi", "BTC/USDT", "BUY")
        service.record_rejection("rsi", "insufficient_cash")
        service.record_strategy_error("rsi")

        assert registry.get_sample_value("test_ticks_total") == 2.0
        assert registry.get_sample_value("test_signals_total", {"strategy": "rsi"}) == 1.0
        assert (
            registry.get_sample_value(
                "test_fills_total", {"strategy": "rsi", "pair": "BTC/USDT", "side": "buy"}
            )
            == 1.0
        )
        assert (
            registry.get_sample_value(
                "test_rejections_total", {"strategy": "rsi", "reason": "insufficient_cash"}
            )
            == 1.0
        )
        assert registry.get_sample_value("test_strategy_errors_total", {"strategy": "rsi"}) == 1.0

    def test_gauges(self, service: MetricsService, registry: CollectorRegistry) -> None:
        service.set_equity(10_500.0)
        service.set_open_positions(2)
        assert registry.get_sample_value("test_equity") == 10_500.0
        assert registry.get_sample_value("test_open_positions") == 2.0

    def test_start_server(self, service: MetricsService) -> None:
        with patch("wisp_engine.monitoring.metrics.start_http_server") as mock_start:
            assert service.start_server() is True
            assert service.start_server() is True
        mock_start.assert_called_once_with(9090, registry=service.registry)

    def test_start_server_port_in_use(self, service: MetricsService) -> None:
        with patch(
            "wisp_engine.monitoring.metrics.start_http_server",
            side_effect=OSError("Address in use"),
        ):
            assert service.start_server() is False


def test_init_and_get_metrics(registry: CollectorRegistry) -> None:
    service = init_metrics(MetricsConfig(prefix="global"), registry=registry)
    assert get_metrics() is service
