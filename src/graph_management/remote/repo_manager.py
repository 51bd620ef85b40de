"""Repository managers: fetch remote descriptors and archives for one profile.

:class:`GraphRepoManager` is the contract used by
:class:`graph_management.manager.GraphManager`. :class:`AbstractGraphRepoManager`
implements the update logic once; backends only provide
:meth:`AbstractGraphRepoManager._fetch_asset`, which copies one named asset to
a local in-progress file. :class:`NullRepoManager` serves profiles without a
repository.
"""

from __future__ import annotations

import hashlib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

from graph_management.graph_info import GraphInfo, is_remote_newer
from graph_management.metrics import GraphMetrics, default_metrics
from routegraph_common.errors import (
    GraphInfoParseError,
    IncompleteDownloadError,
    RepoUnreachableError,
)
from routegraph_common.fs import atomic_rename
from routegraph_common.logging import bind, get_logger

if TYPE_CHECKING:
    from pathlib import Path

    from graph_management.local.file_manager import GraphFileManager
    from graph_management.properties import GraphManagementRuntimeProperties
    from graph_management.remote.repo_strategy import NamedGraphsRepoStrategy

__all__ = [
    "AbstractGraphRepoManager",
    "FetchedAsset",
    "GraphRepoManager",
    "NullRepoManager",
]

logger = get_logger(__name__)

_HASH_CHUNK = 1 << 20


class GraphRepoManager(ABC):
    """Contract of a repository backend for one profile."""

    @abstractmethod
    def check_remote_version(self) -> GraphInfo | None:
        """Fetch and parse the remote descriptor; ``None`` if the repository has none.

        Raises
        ------
        RepoUnreachableError
            On transport failures or a malformed remote descriptor.
        """

    @abstractmethod
    def download_and_stage(self, remote_info: GraphInfo | None = None) -> None:
        """Download the archive to the profile's download location.

        Raises
        ------
        RepoUnreachableError
            If the repository cannot deliver the archive.
        IncompleteDownloadError
            If the archive is truncated or fails checksum verification.
        """

    @abstractmethod
    def download_graph_if_necessary(self) -> bool:
        """Download the archive if the remote build is strictly newer; never raises."""


class NullRepoManager(GraphRepoManager):
    """Backend for profiles without a repository: every operation is a no-op."""

    def check_remote_version(self) -> GraphInfo | None:
        return None

    def download_and_stage(self, remote_info: GraphInfo | None = None) -> None:
        del remote_info

    def download_graph_if_necessary(self) -> bool:
        logger.debug("No graph repository configured, skipping download")
        return False


@dataclass(frozen=True)
class FetchedAsset:
    """Result of copying one remote asset.

    Attributes
    ----------
    bytes_written : int
        Size of the local copy.
    expected_size : int | None
        Size announced by the repository, if known.
    """

    bytes_written: int
    expected_size: int | None = None


def _sha256(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as fh:
        for chunk in iter(lambda: fh.read(_HASH_CHUNK), b""):
            digest.update(chunk)
    return digest.hexdigest()


class AbstractGraphRepoManager(GraphRepoManager):
    """Shared update logic of the HTTP and filesystem backends.

    Parameters
    ----------
    props : GraphManagementRuntimeProperties
        Profile configuration.
    repo_strategy : NamedGraphsRepoStrategy
        Remote asset naming.
    file_manager : GraphFileManager
        Local files of the profile.
    metrics : GraphMetrics | None, optional
        Metrics sink. Defaults to the process-wide metrics.
    """

    def __init__(
        self,
        props: GraphManagementRuntimeProperties,
        repo_strategy: NamedGraphsRepoStrategy,
        file_manager: GraphFileManager,
        *,
        metrics: GraphMetrics | None = None,
    ) -> None:
        self._props = props
        self._repo_strategy = repo_strategy
        self._file_manager = file_manager
        self._metrics = metrics or default_metrics()
        self._log = bind(logger, profile=props.profile_name)

    @property
    def _name(self) -> str:
        return self._file_manager.profile_descriptive_name

    @abstractmethod
    def _fetch_asset(self, asset_name: str, target: Path) -> FetchedAsset | None:
        """Copy ``asset_name`` from the repository to ``target``.

        Returns
        -------
        FetchedAsset | None
            Copy result, or None if the repository has no such asset.

        Raises
        ------
        RepoUnreachableError
            If the repository cannot be read.
        """

    @abstractmethod
    def describe_asset(self, asset_name: str) -> str:
        """Human-readable location of ``asset_name`` for log messages."""

    def check_remote_version(self) -> GraphInfo | None:
        folders = self._file_manager.folders
        final = folders.downloaded_graph_info_path
        partial = folders.incomplete_path(final)
        asset = self._repo_strategy.repo_graph_info_name()
        try:
            fetched = self._fetch_asset(asset, partial)
            if fetched is None:
                self._log.debug(
                    "[%s] No remote graph info at %s",
                    self._name,
                    self.describe_asset(asset),
                    extra={"operation": "check_remote_version"},
                )
                partial.unlink(missing_ok=True)
                return None
            info = GraphInfo.read(partial)
        except RepoUnreachableError:
            partial.unlink(missing_ok=True)
            raise
        if info is None:
            msg = f"[{self._name}] Remote graph info vanished while reading {partial}"
            raise GraphInfoParseError(msg, context={"asset": self.describe_asset(asset)})
        atomic_rename(partial, final)
        return info

    def download_and_stage(self, remote_info: GraphInfo | None = None) -> None:
        folders = self._file_manager.folders
        final = folders.downloaded_archive_path
        partial = folders.incomplete_path(final)
        asset = self._repo_strategy.repo_compressed_graph_name()
        if remote_info is None:
            remote_info = self._file_manager.read_downloaded_graph_info()
        self._log.info(
            "[%s] Downloading %s",
            self._name,
            self.describe_asset(asset),
            extra={"operation": "download"},
        )
        try:
            fetched = self._fetch_asset(asset, partial)
            if fetched is None:
                msg = f"[{self._name}] Repository has graph info but no archive {asset}"
                raise RepoUnreachableError(msg, context={"asset": self.describe_asset(asset)})
            self._verify(partial, fetched, remote_info)
        except (RepoUnreachableError, IncompleteDownloadError):
            partial.unlink(missing_ok=True)
            raise
        atomic_rename(partial, final)
        self._log.log_io(
            f"[{self._name}] Downloaded graph archive {final.name}",
            operation="download",
            io_type="write",
            size_bytes=fetched.bytes_written,
        )

    def _verify(self, path: Path, fetched: FetchedAsset, remote_info: GraphInfo | None) -> None:
        if fetched.expected_size is not None and fetched.expected_size != fetched.bytes_written:
            msg = (
                f"[{self._name}] Archive is incomplete: got {fetched.bytes_written} of "
                f"{fetched.expected_size} bytes"
            )
            raise IncompleteDownloadError(
                msg,
                context={"expected": fetched.expected_size, "received": fetched.bytes_written},
            )
        if remote_info is not None and remote_info.archive_checksum:
            actual = _sha256(path)
            if actual != remote_info.archive_checksum:
                msg = f"[{self._name}] Archive checksum mismatch"
                raise IncompleteDownloadError(
                    msg, context={"expected": remote_info.archive_checksum, "actual": actual}
                )

    def download_graph_if_necessary(self) -> bool:
        profile = self._props.profile_name
        try:
            remote = self.check_remote_version()
            if remote is None:
                return False
            local = self._file_manager.read_local_graph_info()
            if not is_remote_newer(local, remote):
                self._log.debug(
                    "[%s] Local graph is up to date",
                    self._name,
                    extra={"operation": "download_if_necessary"},
                )
                return False
            self._log.info(
                "[%s] Remote graph (import %s, osm %s) is newer than local graph",
                self._name,
                remote.import_date.isoformat(),
                remote.osm_date.isoformat(),
                extra={"operation": "download_if_necessary"},
            )
            self.download_and_stage(remote)
        except (RepoUnreachableError, IncompleteDownloadError) as exc:
            self._metrics.record_download(profile, "failure")
            self._log.log(
                exc.log_level,
                "[%s] No update this cycle: %s",
                self._name,
                exc,
                extra={"operation": "download_if_necessary", "error_code": exc.code.value},
            )
            return False
        self._metrics.record_download(profile, "success")
        return True
