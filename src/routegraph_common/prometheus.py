"""Typed Prometheus constructors that tolerate repeated registration.

Graph managers are rebuilt on every activation, so metric construction runs
more than once per process. :func:`build_counter` and :func:`build_gauge`
return the already-registered collector instead of failing with
``Duplicated timeseries``.

Examples
--------
>>> from prometheus_client import CollectorRegistry
>>> from routegraph_common.prometheus import build_counter
>>> registry = CollectorRegistry()
>>> counter = build_counter("example_total", "Example operations", ["status"], registry=registry)
>>> counter.labels(status="success").inc()
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, cast

from prometheus_client import REGISTRY, Counter, Gauge

if TYPE_CHECKING:
    from collections.abc import Sequence

    from prometheus_client.registry import CollectorRegistry

__all__ = [
    "CounterLike",
    "GaugeLike",
    "build_counter",
    "build_gauge",
]


class CounterLike(Protocol):
    """Subset of the Prometheus counter API used by routegraph."""

    def labels(self, *args: str, **labels: str) -> CounterLike:
        """Return the child counter for the given label values."""
        ...

    def inc(self, amount: float = 1.0) -> None:
        """Increment the counter."""
        ...


class GaugeLike(Protocol):
    """Subset of the Prometheus gauge API used by routegraph."""

    def labels(self, *args: str, **labels: str) -> GaugeLike:
        """Return the child gauge for the given label values."""
        ...

    def set(self, value: float) -> None:
        """Set the gauge value."""
        ...


def _existing_collector(name: str, registry: CollectorRegistry) -> object | None:
    names_to_collectors = cast(
        "dict[str, object] | None",
        getattr(registry, "_names_to_collectors", None),
    )
    if isinstance(names_to_collectors, dict):
        return names_to_collectors.get(name)
    return None


def build_counter(
    name: str,
    documentation: str,
    labelnames: Sequence[str] | None = None,
    *,
    registry: CollectorRegistry | None = None,
) -> CounterLike:
    """Return a counter registered in ``registry`` (default: global registry).

    Parameters
    ----------
    name : str
        Metric name, including the ``_total`` suffix.
    documentation : str
        Human readable description of the metric.
    labelnames : Sequence[str] | None, optional
        Label names (defaults to none).
    registry : CollectorRegistry | None, optional
        Target registry. Defaults to the global registry.

    Returns
    -------
    CounterLike
        New or previously registered counter.

    Raises
    ------
    ValueError
        If registration fails and no collector of that name exists.
    """
    target = registry if registry is not None else REGISTRY
    try:
        return Counter(name, documentation, tuple(labelnames or ()), registry=target)
    except ValueError:
        existing = _existing_collector(name, target)
        if existing is None:
            raise
        return cast("CounterLike", existing)


def build_gauge(
    name: str,
    documentation: str,
    labelnames: Sequence[str] | None = None,
    *,
    registry: CollectorRegistry | None = None,
) -> GaugeLike:
    """Return a gauge registered in ``registry`` (default: global registry).

    Raises
    ------
    ValueError
        If registration fails and no collector of that name exists.
    """
    target = registry if registry is not None else REGISTRY
    try:
        return Gauge(name, documentation, tuple(labelnames or ()), registry=target)
    except ValueError:
        existing = _existing_collector(name, target)
        if existing is None:
            raise
        return cast("GaugeLike", existing)
