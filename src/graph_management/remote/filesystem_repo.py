"""Graph repository on a mounted or shared filesystem."""

from __future__ import annotations

import shutil
from typing import TYPE_CHECKING

from graph_management.remote.repo_manager import AbstractGraphRepoManager, FetchedAsset
from routegraph_common.errors import RepoUnreachableError

if TYPE_CHECKING:
    from pathlib import Path

__all__ = ["FileSystemRepoManager"]


class FileSystemRepoManager(AbstractGraphRepoManager):
    """Copy assets from ``<repo path>/<repo>/<group>/<coverage>/<version>/<asset>``.

    A missing repository root is reported as unreachable (an unmounted share);
    a missing asset below an existing root means the repository has none.
    """

    @property
    def _repo_root(self) -> Path:
        path = self._props.derived_repo_path
        if path is None:
            msg = f"[{self._name}] No filesystem repository configured"
            raise RepoUnreachableError(msg)
        return path

    def _asset_path(self, asset_name: str) -> Path:
        return self._repo_root.joinpath(
            *self._repo_strategy.asset_path_components(), asset_name
        )

    def describe_asset(self, asset_name: str) -> str:
        return str(self._asset_path(asset_name))

    def _fetch_asset(self, asset_name: str, target: Path) -> FetchedAsset | None:
        root = self._repo_root
        if not root.is_dir():
            msg = f"[{self._name}] Repository path {root} is not a directory"
            raise RepoUnreachableError(msg, context={"path": str(root)})
        source = self._asset_path(asset_name)
        if not source.is_file():
            return None
        try:
            expected = source.stat().st_size
            shutil.copyfile(source, target)
        except OSError as exc:
            msg = f"[{self._name}] Could not copy {source}: {exc}"
            raise RepoUnreachableError(msg, cause=exc, context={"path": str(source)}) from exc
        return FetchedAsset(target.stat().st_size, expected)
