"""Routing graph lifecycle management for one profile at a time.

A :class:`GraphManager` combines a repository backend with the local file
manager of its profile; :mod:`orchestration.coordinator` drives all managers.
"""

from __future__ import annotations

from graph_management.graph_info import GraphInfo, VersionDescriptor, is_remote_newer
from graph_management.local import FlatGraphFolderStrategy, GraphFileManager, LocalGraphState
from graph_management.manager import GraphManager, ProfileStatus, build_repo_manager
from graph_management.metrics import GraphMetrics
from graph_management.properties import (
    GraphManagementRuntimeProperties,
    GraphRepoType,
    ProfileIdentity,
)

__all__ = [
    "FlatGraphFolderStrategy",
    "GraphFileManager",
    "GraphInfo",
    "GraphManagementRuntimeProperties",
    "GraphManager",
    "GraphMetrics",
    "GraphRepoType",
    "LocalGraphState",
    "ProfileIdentity",
    "ProfileStatus",
    "VersionDescriptor",
    "build_repo_manager",
    "is_remote_newer",
]
