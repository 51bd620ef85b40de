"""Prometheus metrics for the graph lifecycle."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

from prometheus_client import CollectorRegistry

from routegraph_common.prometheus import CounterLike, GaugeLike, build_counter, build_gauge

__all__ = ["GraphMetrics", "default_metrics"]


@dataclass(frozen=True)
class GraphMetrics:
    """Counters and gauges recorded by managers and the coordinator.

    Attributes
    ----------
    downloads : CounterLike
        ``routegraph_downloads_total{profile,result}``.
    extractions : CounterLike
        ``routegraph_extractions_total{profile,result}``.
    activations : CounterLike
        ``routegraph_activations_total{result}``.
    deferrals : CounterLike
        ``routegraph_activation_deferrals_total{reason}``.
    busy : GaugeLike
        ``routegraph_profile_busy{profile}``; 1 while a profile is busy.
    """

    downloads: CounterLike
    extractions: CounterLike
    activations: CounterLike
    deferrals: CounterLike
    busy: GaugeLike

    @classmethod
    def create(cls, registry: CollectorRegistry | None = None) -> GraphMetrics:
        """Register (or reuse) the collectors in ``registry`` (default: global)."""
        return cls(
            downloads=build_counter(
                "routegraph_downloads_total",
                "Graph archive downloads by profile and result",
                ["profile", "result"],
                registry=registry,
            ),
            extractions=build_counter(
                "routegraph_extractions_total",
                "Graph archive extractions by profile and result",
                ["profile", "result"],
                registry=registry,
            ),
            activations=build_counter(
                "routegraph_activations_total",
                "Activation passes by result",
                ["result"],
                registry=registry,
            ),
            deferrals=build_counter(
                "routegraph_activation_deferrals_total",
                "Deferred update checks and activations by reason",
                ["reason"],
                registry=registry,
            ),
            busy=build_gauge(
                "routegraph_profile_busy",
                "1 while a profile is downloading, extracting or activating",
                ["profile"],
                registry=registry,
            ),
        )

    @classmethod
    def disabled(cls) -> GraphMetrics:
        """Metrics recorded into a private registry that is never exported."""
        return cls.create(CollectorRegistry())

    def record_download(self, profile: str, result: str) -> None:
        self.downloads.labels(profile=profile, result=result).inc()

    def record_extraction(self, profile: str, result: str) -> None:
        self.extractions.labels(profile=profile, result=result).inc()

    def record_activation(self, result: str) -> None:
        self.activations.labels(result=result).inc()

    def record_deferral(self, reason: str) -> None:
        self.deferrals.labels(reason=reason).inc()

    def set_busy(self, profile: str, *, busy: bool) -> None:
        self.busy.labels(profile=profile).set(1.0 if busy else 0.0)


@lru_cache(maxsize=1)
def default_metrics() -> GraphMetrics:
    """Process-wide metrics registered in the global registry."""
    return GraphMetrics.create()
