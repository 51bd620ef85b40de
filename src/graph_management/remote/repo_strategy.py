"""Remote asset naming for named graph repositories.

A repository stores one directory per ``(repo, profile group, coverage,
graph version)``; inside it every encoder has a descriptor and an archive::

    <repo>/<group>/<coverage>/<version>/<group>_<coverage>_<version>_<encoder>.yml
    <repo>/<group>/<coverage>/<version>/<group>_<coverage>_<version>_<encoder>.ghz
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from graph_management.local.folder_strategy import GRAPH_ARCHIVE_EXTENSION, GRAPH_INFO_EXTENSION

if TYPE_CHECKING:
    from graph_management.properties import GraphManagementRuntimeProperties

__all__ = ["NamedGraphsRepoStrategy"]


class NamedGraphsRepoStrategy:
    """Map a profile to remote asset names and their location in the repository."""

    def __init__(self, props: GraphManagementRuntimeProperties) -> None:
        self._props = props

    def _asset_stem(self) -> str:
        parts = (
            self._props.repo_profile_group,
            self._props.repo_coverage,
            self._props.graph_version,
            self._props.identity.encoder_name,
        )
        return "_".join(part for part in parts if part)

    def repo_graph_info_name(self) -> str:
        return f"{self._asset_stem()}{GRAPH_INFO_EXTENSION}"

    def repo_compressed_graph_name(self) -> str:
        return f"{self._asset_stem()}{GRAPH_ARCHIVE_EXTENSION}"

    def asset_path_components(self) -> tuple[str, ...]:
        """Directory components below the repository base, blanks skipped."""
        parts = (
            self._props.repo_name,
            self._props.repo_profile_group,
            self._props.repo_coverage,
            self._props.graph_version,
        )
        return tuple(part for part in parts if part)

    def asset_relative_path(self, asset_name: str) -> str:
        """``/``-joined location of ``asset_name`` below the repository base."""
        return "/".join((*self.asset_path_components(), asset_name))
