"""Tests for the Prometheus helpers and graph metrics."""

from __future__ import annotations

from prometheus_client import CollectorRegistry

from graph_management.metrics import GraphMetrics
from routegraph_common.prometheus import build_counter, build_gauge


class TestBuilders:
    """Tests for build_counter and build_gauge."""

    def test_counter_reused_on_second_registration(self) -> None:
        """Registering the same name twice returns the existing collector."""
        registry = CollectorRegistry()
        first = build_counter("example_total", "Example", ["result"], registry=registry)
        second = build_counter("example_total", "Example", ["result"], registry=registry)
        assert first is second
        first.labels(result="success").inc()
        assert registry.get_sample_value("example_total", {"result": "success"}) == 1.0

    def test_gauge_set(self) -> None:
        """Gauges record the last value."""
        registry = CollectorRegistry()
        gauge = build_gauge("example_busy", "Example", ["profile"], registry=registry)
        gauge.labels(profile="car").set(1.0)
        gauge.labels(profile="car").set(0.0)
        assert registry.get_sample_value("example_busy", {"profile": "car"}) == 0.0


class TestGraphMetrics:
    """Tests for GraphMetrics."""

    def test_records_into_registry(self) -> None:
        """Recording helpers update the labelled series."""
        registry = CollectorRegistry()
        metrics = GraphMetrics.create(registry)
        metrics.record_download("car", "success")
        metrics.record_deferral("busy")
        metrics.record_deferral("busy")
        metrics.set_busy("car", busy=True)
        assert (
            registry.get_sample_value(
                "routegraph_downloads_total", {"profile": "car", "result": "success"}
            )
            == 1.0
        )
        assert (
            registry.get_sample_value("routegraph_activation_deferrals_total", {"reason": "busy"})
            == 2.0
        )
        assert registry.get_sample_value("routegraph_profile_busy", {"profile": "car"}) == 1.0

    def test_create_twice_shares_collectors(self) -> None:
        """Managers rebuilt on activation share the same collectors."""
        registry = CollectorRegistry()
        first = GraphMetrics.create(registry)
        second = GraphMetrics.create(registry)
        assert first.downloads is second.downloads
