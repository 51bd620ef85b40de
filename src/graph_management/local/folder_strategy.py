"""Naming convention for a profile's local graph files.

Everything lives flat in the graphs root::

    graphs/
        update.lock                          # operator lock, blocks update checks
        activation.lock                      # operator lock, blocks activation
        car/                                 # active graph
        car_new/                             # staged graph (extracted, not active)
        car_new.incomplete/                  # extraction in progress
        car_2024-06-26_102339/               # backup of a replaced graph
        car.activation.journal               # swap in progress
        <repo>_<group>_<coverage>_<version>_car.yml     # downloaded descriptor
        <repo>_<group>_<coverage>_<version>_car.ghz     # downloaded archive

A name ending in ``.incomplete`` is being written; an artifact is complete
once it exists under its final name. No method of this module touches the
filesystem.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Final

from graph_management.graph_info import GRAPH_INFO_FILENAME

if TYPE_CHECKING:
    from pathlib import Path

    from graph_management.properties import GraphManagementRuntimeProperties

__all__ = [
    "ACTIVATION_LOCK_FILENAME",
    "INCOMPLETE_SUFFIX",
    "UPDATE_LOCK_FILENAME",
    "FlatGraphFolderStrategy",
]

UPDATE_LOCK_FILENAME: Final[str] = "update.lock"
ACTIVATION_LOCK_FILENAME: Final[str] = "activation.lock"
INCOMPLETE_SUFFIX: Final[str] = ".incomplete"
GRAPH_ARCHIVE_EXTENSION: Final[str] = ".ghz"
GRAPH_INFO_EXTENSION: Final[str] = ".yml"
_BACKUP_TIMESTAMP_FORMAT: Final[str] = "%Y-%m-%d_%H%M%S"


class FlatGraphFolderStrategy:
    """Map one profile to its paths below the graphs root.

    Parameters
    ----------
    props : GraphManagementRuntimeProperties
        Profile configuration.
    """

    def __init__(self, props: GraphManagementRuntimeProperties) -> None:
        self._props = props
        self._profile = props.profile_name
        self._backup_pattern = re.compile(
            rf"^{re.escape(self._profile)}_\d{{4}}-\d{{2}}-\d{{2}}_\d{{6}}(?:_\d+)?$"
        )

    @property
    def graphs_root(self) -> Path:
        return self._props.graphs_root_path

    @property
    def profile_descriptive_name(self) -> str:
        return str(self._props.identity)

    @property
    def active_graph_dir(self) -> Path:
        return self.graphs_root / self._profile

    @property
    def staged_graph_dir(self) -> Path:
        return self.graphs_root / f"{self._profile}_new"

    @property
    def incomplete_extraction_dir(self) -> Path:
        return self.incomplete_path(self.staged_graph_dir)

    @property
    def activation_journal_path(self) -> Path:
        return self.graphs_root / f"{self._profile}.activation.journal"

    @property
    def update_lock_path(self) -> Path:
        return self.graphs_root / UPDATE_LOCK_FILENAME

    @property
    def activation_lock_path(self) -> Path:
        return self.graphs_root / ACTIVATION_LOCK_FILENAME

    @property
    def download_basename(self) -> str:
        """``<repo>_<group>_<coverage>_<version>_<profile>``, blanks skipped."""
        parts = (
            self._props.repo_name,
            self._props.repo_profile_group,
            self._props.repo_coverage,
            self._props.graph_version,
            self._profile,
        )
        return "_".join(part for part in parts if part)

    @property
    def downloaded_graph_info_path(self) -> Path:
        return self.graphs_root / f"{self.download_basename}{GRAPH_INFO_EXTENSION}"

    @property
    def downloaded_archive_path(self) -> Path:
        return self.graphs_root / f"{self.download_basename}{GRAPH_ARCHIVE_EXTENSION}"

    @staticmethod
    def graph_info_path(graph_dir: Path) -> Path:
        """Descriptor side-car inside ``graph_dir``."""
        return graph_dir / GRAPH_INFO_FILENAME

    @staticmethod
    def incomplete_path(path: Path) -> Path:
        """In-progress name of ``path``."""
        return path.with_name(path.name + INCOMPLETE_SUFFIX)

    def backup_dir(self, timestamp: datetime | None = None) -> Path:
        """Backup location for the active graph replaced at ``timestamp`` (default: now)."""
        moment = timestamp or datetime.now(UTC)
        stamp = moment.astimezone(UTC).strftime(_BACKUP_TIMESTAMP_FORMAT)
        return self.graphs_root / f"{self._profile}_{stamp}"

    def is_backup_dir_name(self, name: str) -> bool:
        """Return True if ``name`` is a backup directory name of this profile."""
        return self._backup_pattern.match(name) is not None

    def incomplete_artifacts(self) -> tuple[Path, ...]:
        """In-progress paths of this profile removed by startup cleanup."""
        return (
            self.incomplete_extraction_dir,
            self.incomplete_path(self.downloaded_archive_path),
            self.incomplete_path(self.downloaded_graph_info_path),
        )
