"""Repository backends for graph downloads."""

from __future__ import annotations

from graph_management.remote.filesystem_repo import FileSystemRepoManager
from graph_management.remote.http_repo import HttpRepoManager
from graph_management.remote.repo_manager import (
    AbstractGraphRepoManager,
    GraphRepoManager,
    NullRepoManager,
)
from graph_management.remote.repo_strategy import NamedGraphsRepoStrategy

__all__ = [
    "AbstractGraphRepoManager",
    "FileSystemRepoManager",
    "GraphRepoManager",
    "HttpRepoManager",
    "NamedGraphsRepoStrategy",
    "NullRepoManager",
]
