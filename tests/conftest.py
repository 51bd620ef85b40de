"""Shared pytest fixtures for graph lifecycle tests.

This module provides reusable fixtures for:
- Per-profile runtime properties rooted in ``tmp_path``
- Graph descriptors with predictable dates
- Local graph directory builders
- A filesystem graph repository publisher
- Metrics recorded into a private registry
"""

from __future__ import annotations

import zipfile
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Final

import pytest

from graph_management.graph_info import GRAPH_INFO_FILENAME, GraphInfo
from graph_management.local.file_manager import GraphFileManager
from graph_management.local.folder_strategy import FlatGraphFolderStrategy
from graph_management.metrics import GraphMetrics
from graph_management.properties import GraphManagementRuntimeProperties
from graph_management.remote.repo_strategy import NamedGraphsRepoStrategy

REPO_NAME: Final[str] = "vendor-xyz"
PROFILE_GROUP: Final[str] = "fastisochrones"
COVERAGE: Final[str] = "heidelberg"
GRAPH_VERSION: Final[str] = "1"

type PropsFactory = Callable[..., GraphManagementRuntimeProperties]
type InfoFactory = Callable[..., GraphInfo]
type GraphWriter = Callable[..., Path]
type Publisher = Callable[..., tuple[Path, Path]]
type FileManagerFactory = Callable[[GraphManagementRuntimeProperties], GraphFileManager]


@pytest.fixture
def metrics() -> GraphMetrics:
    """Metrics in a throwaway registry."""
    return GraphMetrics.disabled()


@pytest.fixture
def repo_root(tmp_path: Path) -> Path:
    """Root of the filesystem graph repository."""
    root = tmp_path / "repo"
    root.mkdir()
    return root


@pytest.fixture
def graphs_root(tmp_path: Path) -> Path:
    """Local graphs root."""
    root = tmp_path / "graphs"
    root.mkdir()
    return root


@pytest.fixture
def props_factory(graphs_root: Path, repo_root: Path) -> PropsFactory:
    """Build runtime properties for a profile backed by the filesystem repository."""

    def _make(profile_name: str = "car", **overrides: object) -> GraphManagementRuntimeProperties:
        values: dict[str, object] = {
            "profile_name": profile_name,
            "graphs_root_path": graphs_root,
            "encoder_name": f"driving-{profile_name}",
            "graph_version": GRAPH_VERSION,
            "repo_uri": str(repo_root),
            "repo_name": REPO_NAME,
            "repo_profile_group": PROFILE_GROUP,
            "repo_coverage": COVERAGE,
            "retry_attempts": 1,
        }
        values.update(overrides)
        return GraphManagementRuntimeProperties(**values)  # type: ignore[arg-type]

    return _make


@pytest.fixture
def props(props_factory: PropsFactory) -> GraphManagementRuntimeProperties:
    """Properties of the ``car`` profile."""
    return props_factory()


@pytest.fixture
def make_info() -> InfoFactory:
    """Build descriptors imported on 2024-06-``day``."""

    def _make(
        day: int = 25,
        osm_day: int = 26,
        *,
        checksum: str | None = None,
        properties: Mapping[str, object] | None = None,
    ) -> GraphInfo:
        return GraphInfo(
            import_date=datetime(2024, 6, day, 10, 23, 31, tzinfo=UTC),
            osm_date=datetime(2024, 1, osm_day, 23, 0, 0, tzinfo=UTC),
            profile_properties=properties or {"encoder_name": "driving-car"},
            archive_checksum=checksum,
        )

    return _make


@pytest.fixture
def write_graph() -> GraphWriter:
    """Create a populated graph directory, optionally with a descriptor."""

    def _write(path: Path, info: GraphInfo | None = None, *, payload: str = "graph") -> Path:
        path.mkdir(parents=True, exist_ok=True)
        (path / "edges").write_text(payload, encoding="utf-8")
        if info is not None:
            info.write(path / GRAPH_INFO_FILENAME)
        return path

    return _write


def build_archive(target: Path, files: Mapping[str, str]) -> Path:
    """Write a zip archive with ``files`` to ``target``."""
    target.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(target, "w") as zf:
        for name, content in files.items():
            zf.writestr(name, content)
    return target


@pytest.fixture
def archive_builder() -> Callable[[Path, Mapping[str, str]], Path]:
    """Expose :func:`build_archive` to tests."""
    return build_archive


@pytest.fixture
def publish(repo_root: Path) -> Publisher:
    """Publish a descriptor and an archive for a profile in the filesystem repository."""

    def _publish(
        props: GraphManagementRuntimeProperties,
        info: GraphInfo | None,
        *,
        files: Mapping[str, str] | None = None,
        archive: bool = True,
        raw_info: str | None = None,
    ) -> tuple[Path, Path]:
        strategy = NamedGraphsRepoStrategy(props)
        folder = repo_root.joinpath(*strategy.asset_path_components())
        folder.mkdir(parents=True, exist_ok=True)
        info_path = folder / strategy.repo_graph_info_name()
        archive_path = folder / strategy.repo_compressed_graph_name()
        if raw_info is not None:
            info_path.write_text(raw_info, encoding="utf-8")
        elif info is not None:
            info.write(info_path)
        if archive:
            build_archive(archive_path, files or {"edges": "remote graph"})
        return info_path, archive_path

    return _publish


@pytest.fixture
def file_manager_factory(metrics: GraphMetrics) -> FileManagerFactory:
    """Build an initialised file manager for ``props``."""

    def _make(props: GraphManagementRuntimeProperties) -> GraphFileManager:
        manager = GraphFileManager(props, FlatGraphFolderStrategy(props), metrics=metrics)
        manager.initialize()
        return manager

    return _make


@pytest.fixture
def file_manager(
    props: GraphManagementRuntimeProperties, file_manager_factory: FileManagerFactory
) -> GraphFileManager:
    """File manager of the ``car`` profile."""
    return file_manager_factory(props)
