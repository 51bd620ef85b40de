"""Shared infrastructure for routegraph.

Structured logging, the error taxonomy, filesystem primitives, settings,
the retrying HTTP client and Prometheus helpers used by
:mod:`graph_management` and :mod:`orchestration`.
"""

from __future__ import annotations

from routegraph_common import errors, fs, logging

__all__ = ["errors", "fs", "logging"]
