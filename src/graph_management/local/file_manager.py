"""Local directory state machine of one profile.

:class:`GraphFileManager` owns the on-disk graph directories of a single
profile: it classifies their state, extracts downloaded archives into a
staged directory, swaps a staged graph into place and keeps backups of
replaced graphs. It performs no network access.

State is always recomputed from the filesystem. Every transition that makes
an artifact visible is a single rename, so after a crash the next
classification sees either the old or the new layout. The one two-step
transition, replacing an active graph, is journaled: the journal names the
backup the active graph was moved to, and :meth:`cleanup_incomplete_files`
moves that backup back if the process died before the staged graph was
renamed into place.
"""

from __future__ import annotations

import shutil
import threading
import time
import zipfile
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING

from graph_management.graph_info import GraphInfo
from graph_management.metrics import GraphMetrics, default_metrics
from routegraph_common.errors import (
    ExtractionError,
    GraphInfoParseError,
    InconsistentLocalStateError,
    LockedOperationError,
)
from routegraph_common.fs import (
    atomic_rename,
    atomic_write,
    ensure_dir,
    read_text,
    remove_path,
    safe_join,
)
from routegraph_common.logging import bind, get_logger

if TYPE_CHECKING:
    from pathlib import Path

    from graph_management.local.folder_strategy import FlatGraphFolderStrategy
    from graph_management.properties import GraphManagementRuntimeProperties

__all__ = ["GraphFileManager", "LocalGraphState"]

logger = get_logger(__name__)


class LocalGraphState(StrEnum):
    """Classification of one profile's graph directories."""

    NONE = "none"
    ACTIVE_ONLY = "active_only"
    STAGED_ONLY = "staged_only"
    ACTIVE_AND_STAGED = "active_and_staged"


def _is_populated_dir(path: Path) -> bool:
    return path.is_dir() and any(path.iterdir())


class GraphFileManager:
    """Manage the local graph files of one profile.

    Parameters
    ----------
    props : GraphManagementRuntimeProperties
        Profile configuration.
    folder_strategy : FlatGraphFolderStrategy
        Path naming convention.
    metrics : GraphMetrics | None, optional
        Metrics sink. Defaults to the process-wide metrics.
    clock : Callable[[], datetime], optional
        Source of backup timestamps. Defaults to the current UTC time.
    """

    def __init__(
        self,
        props: GraphManagementRuntimeProperties,
        folder_strategy: FlatGraphFolderStrategy,
        *,
        metrics: GraphMetrics | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._props = props
        self._folders = folder_strategy
        self._metrics = metrics or default_metrics()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._busy = threading.Lock()
        self._log = bind(logger, profile=props.profile_name)

    def initialize(self) -> None:
        """Create the graphs root if needed."""
        ensure_dir(self._folders.graphs_root)

    @property
    def folders(self) -> FlatGraphFolderStrategy:
        return self._folders

    @property
    def profile_descriptive_name(self) -> str:
        return self._folders.profile_descriptive_name

    @property
    def active_graph_dir(self) -> Path:
        return self._folders.active_graph_dir

    @property
    def graphs_root(self) -> Path:
        return self._folders.graphs_root

    # -- busy flag -----------------------------------------------------------------

    def is_busy(self) -> bool:
        """Return True while a download, extraction or activation runs for this profile."""
        return self._busy.locked()

    @contextmanager
    def busy(self) -> Iterator[None]:
        """Hold the busy flag for the duration of the block.

        Raises
        ------
        LockedOperationError
            If the profile is already busy.
        """
        if not self._busy.acquire(blocking=False):
            msg = f"[{self.profile_descriptive_name}] Profile is busy"
            raise LockedOperationError(msg, context={"profile": self._props.profile_name})
        self._metrics.set_busy(self._props.profile_name, busy=True)
        try:
            yield
        finally:
            self._metrics.set_busy(self._props.profile_name, busy=False)
            self._busy.release()

    # -- state queries -------------------------------------------------------------

    def has_active_graph(self) -> bool:
        return _is_populated_dir(self._folders.active_graph_dir)

    def has_staged_graph(self) -> bool:
        return _is_populated_dir(self._folders.staged_graph_dir)

    def has_graph_download_file(self) -> bool:
        """Return True if an archive is downloaded but not yet extracted."""
        return self._folders.downloaded_archive_path.is_file()

    def has_update_lock(self) -> bool:
        return self._folders.update_lock_path.exists()

    def has_activation_lock(self) -> bool:
        return self._folders.activation_lock_path.exists()

    def classify(self) -> LocalGraphState:
        """Classify the profile's directories.

        Raises
        ------
        InconsistentLocalStateError
            If the active or staged graph path exists but is not a directory.
        """
        for path in (self._folders.active_graph_dir, self._folders.staged_graph_dir):
            if path.exists() and not path.is_dir():
                msg = f"[{self.profile_descriptive_name}] Expected a directory at {path}"
                raise InconsistentLocalStateError(msg, context={"path": str(path)})
        active = self.has_active_graph()
        staged = self.has_staged_graph()
        if active and staged:
            return LocalGraphState.ACTIVE_AND_STAGED
        if active:
            return LocalGraphState.ACTIVE_ONLY
        if staged:
            return LocalGraphState.STAGED_ONLY
        return LocalGraphState.NONE

    # -- descriptors ---------------------------------------------------------------

    def read_active_graph_info(self) -> GraphInfo | None:
        return GraphInfo.read(self._folders.graph_info_path(self._folders.active_graph_dir))

    def read_staged_graph_info(self) -> GraphInfo | None:
        return GraphInfo.read(self._folders.graph_info_path(self._folders.staged_graph_dir))

    def read_downloaded_graph_info(self) -> GraphInfo | None:
        return GraphInfo.read(self._folders.downloaded_graph_info_path)

    def read_local_graph_info(self) -> GraphInfo | None:
        """Descriptor of the newest local build: staged if present, else active.

        A malformed local descriptor is logged and treated as missing so the
        repository can replace the graph.
        """
        reader = (
            self.read_staged_graph_info if self.has_staged_graph() else self.read_active_graph_info
        )
        try:
            return reader()
        except GraphInfoParseError as exc:
            self._log.warning(
                "[%s] Ignoring unreadable local graph info: %s",
                self.profile_descriptive_name,
                exc,
                extra={"operation": "read_graph_info"},
            )
            return None

    def write_graph_info_if_not_exists(self, info: GraphInfo) -> bool:
        """Write ``info`` into the active graph unless it already has a descriptor.

        Returns
        -------
        bool
            True if the file was written.
        """
        path = self._folders.graph_info_path(self._folders.active_graph_dir)
        if path.exists():
            return False
        info.write(path)
        self._log.info(
            "[%s] Wrote graph info %s",
            self.profile_descriptive_name,
            path,
            extra={"operation": "write_graph_info"},
        )
        return True

    # -- extraction ----------------------------------------------------------------

    def extract_downloaded_graph(self) -> bool:
        """Unpack the downloaded archive into the staged graph directory.

        The archive is unpacked into ``<profile>_new.incomplete`` which is
        renamed to ``<profile>_new`` when complete, replacing an older staged
        graph. The archive is removed afterwards, also when it is corrupt.

        Returns
        -------
        bool
            True if a staged graph was produced, False if there was no archive.

        Raises
        ------
        ExtractionError
            If the archive is corrupt or contains unsafe paths.
        """
        archive = self._folders.downloaded_archive_path
        if not archive.is_file():
            return False
        target = self._folders.incomplete_extraction_dir
        staged = self._folders.staged_graph_dir
        remove_path(target)
        ensure_dir(target)
        started = time.monotonic()
        try:
            with zipfile.ZipFile(archive) as zf:
                for member in zf.infolist():
                    safe_join(target.absolute(), member.filename)
                zf.extractall(target)
        except (zipfile.BadZipFile, OSError, ValueError, EOFError) as exc:
            remove_path(target)
            archive.unlink(missing_ok=True)
            self._metrics.record_extraction(self._props.profile_name, "failure")
            msg = f"[{self.profile_descriptive_name}] Could not extract {archive.name}: {exc}"
            raise ExtractionError(msg, cause=exc, context={"archive": str(archive)}) from exc

        info_in_archive = self._folders.graph_info_path(target)
        downloaded_info = self._folders.downloaded_graph_info_path
        if not info_in_archive.exists() and downloaded_info.is_file():
            atomic_write(info_in_archive, read_text(downloaded_info))

        if staged.exists():
            self._log.info(
                "[%s] Replacing previously staged graph",
                self.profile_descriptive_name,
                extra={"operation": "extract"},
            )
            remove_path(staged)
        atomic_rename(target, staged)
        archive.unlink(missing_ok=True)
        self._metrics.record_extraction(self._props.profile_name, "success")
        self._log.log_success(
            f"[{self.profile_descriptive_name}] Extracted downloaded graph to {staged.name}",
            operation="extract",
            duration_ms=(time.monotonic() - started) * 1000,
        )
        return True

    # -- activation ----------------------------------------------------------------

    def backup_existing_graph(self) -> Path | None:
        """Move the active graph to a timestamped backup directory.

        A journal naming the backup is written first so an interrupted swap can
        be rolled back at startup. Backups are never deleted here.

        Returns
        -------
        Path | None
            Backup directory, or None if there was no active graph.
        """
        active = self._folders.active_graph_dir
        if not active.exists():
            return None
        base = self._folders.backup_dir(self._clock())
        backup = base
        suffix = 0
        while backup.exists():
            suffix += 1
            backup = base.with_name(f"{base.name}_{suffix}")
        atomic_write(self._folders.activation_journal_path, backup.name + "\n")
        atomic_rename(active, backup)
        self._log.info(
            "[%s] Backed up active graph to %s",
            self.profile_descriptive_name,
            backup.name,
            extra={"operation": "backup"},
        )
        return backup

    def activate_staged_graph(self) -> bool:
        """Make the staged graph the active one.

        Without a staged graph this is a no-op. Otherwise the active graph (if
        any) is moved to a backup and the staged directory renamed to the
        active name. Backups beyond ``max_backups`` are pruned afterwards.

        Returns
        -------
        bool
            True if a staged graph was activated.
        """
        if not self.has_staged_graph():
            self._log.debug(
                "[%s] No staged graph to activate",
                self.profile_descriptive_name,
                extra={"operation": "activate"},
            )
            return False
        if self._folders.active_graph_dir.exists():
            self.backup_existing_graph()
        atomic_rename(self._folders.staged_graph_dir, self._folders.active_graph_dir)
        self._folders.activation_journal_path.unlink(missing_ok=True)
        self._log.log_success(
            f"[{self.profile_descriptive_name}] Activated staged graph",
            operation="activate",
        )
        self.prune_backups()
        return True

    # -- backups -------------------------------------------------------------------

    def list_backups(self) -> list[Path]:
        """Backup directories of this profile, oldest first."""
        root = self._folders.graphs_root
        if not root.is_dir():
            return []
        return sorted(
            (p for p in root.iterdir() if p.is_dir() and self._folders.is_backup_dir_name(p.name)),
            key=lambda p: p.name,
        )

    def prune_backups(self) -> list[Path]:
        """Delete the oldest backups beyond ``max_backups``.

        Returns
        -------
        list[Path]
            Removed backup directories.
        """
        limit = self._props.max_backups
        if limit is None:
            return []
        backups = self.list_backups()
        excess = backups[: max(0, len(backups) - limit)]
        for path in excess:
            shutil.rmtree(path)
            self._log.info(
                "[%s] Removed old backup %s",
                self.profile_descriptive_name,
                path.name,
                extra={"operation": "prune_backups"},
            )
        return excess

    # -- crash recovery ------------------------------------------------------------

    def cleanup_incomplete_files(self) -> None:
        """Repair the profile's directories after a crash.

        Rolls back an interrupted activation swap, then removes in-progress
        downloads and extractions.
        """
        self._recover_interrupted_activation()
        for path in self._folders.incomplete_artifacts():
            if remove_path(path):
                self._log.info(
                    "[%s] Removed incomplete file %s",
                    self.profile_descriptive_name,
                    path.name,
                    extra={"operation": "cleanup"},
                )

    def _recover_interrupted_activation(self) -> None:
        journal = self._folders.activation_journal_path
        if not journal.is_file():
            return
        active = self._folders.active_graph_dir
        backup_name = read_text(journal).strip()
        backup = self._folders.graphs_root / backup_name if backup_name else None
        if not active.exists() and backup is not None and backup.is_dir():
            atomic_rename(backup, active)
            self._log.warning(
                "[%s] Activation was interrupted; restored previous graph from %s",
                self.profile_descriptive_name,
                backup_name,
                extra={"operation": "cleanup"},
            )
        journal.unlink(missing_ok=True)
