"""Local graph directories: naming convention and state machine."""

from __future__ import annotations

from graph_management.local.file_manager import GraphFileManager, LocalGraphState
from graph_management.local.folder_strategy import FlatGraphFolderStrategy

__all__ = ["FlatGraphFolderStrategy", "GraphFileManager", "LocalGraphState"]
