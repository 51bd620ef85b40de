"""Per-profile graph lifecycle: startup resolution and update cycle step."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from graph_management.local.file_manager import GraphFileManager, LocalGraphState
from graph_management.local.folder_strategy import FlatGraphFolderStrategy
from graph_management.properties import GraphRepoType
from graph_management.remote.filesystem_repo import FileSystemRepoManager
from graph_management.remote.http_repo import HttpRepoManager
from graph_management.remote.repo_manager import GraphRepoManager, NullRepoManager
from graph_management.remote.repo_strategy import NamedGraphsRepoStrategy
from routegraph_common.errors import (
    GraphInfoParseError,
    GraphManagementError,
    InconsistentLocalStateError,
    LockedOperationError,
)
from routegraph_common.logging import bind, get_logger

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from graph_management.graph_info import GraphInfo
    from graph_management.metrics import GraphMetrics
    from graph_management.properties import GraphManagementRuntimeProperties
    from routegraph_common.http import HttpClient

__all__ = ["GraphManager", "ProfileStatus", "build_repo_manager"]

logger = get_logger(__name__)


def build_repo_manager(
    props: GraphManagementRuntimeProperties,
    file_manager: GraphFileManager,
    *,
    metrics: GraphMetrics | None = None,
    http_client: HttpClient | None = None,
) -> GraphRepoManager:
    """Select the repository backend of ``props``.

    Profiles that do not use a repository (disabled, no repository name, or
    no URI) get a :class:`NullRepoManager`.
    """
    if not props.uses_graph_repository():
        return NullRepoManager()
    strategy = NamedGraphsRepoStrategy(props)
    if props.derived_repo_type is GraphRepoType.HTTP:
        return HttpRepoManager(props, strategy, file_manager, client=http_client, metrics=metrics)
    return FileSystemRepoManager(props, strategy, file_manager, metrics=metrics)


@dataclass(frozen=True)
class ProfileStatus:
    """Health snapshot of one profile.

    Attributes
    ----------
    profile : str
        Profile name.
    qualified_name : str
        Name used in log messages.
    state : str
        :class:`LocalGraphState` value, or ``"inconsistent"``.
    busy : bool
        A download, extraction or activation is running.
    has_download : bool
        An archive is downloaded but not extracted.
    update_lock : bool
        ``update.lock`` is present.
    activation_lock : bool
        ``activation.lock`` is present.
    repo_type : str
        Repository backend.
    active_graph_info : dict[str, object] | None
        Descriptor of the active graph.
    backups : list[str]
        Backup directory names, oldest first.
    """

    profile: str
    qualified_name: str
    state: str
    busy: bool
    has_download: bool
    update_lock: bool
    activation_lock: bool
    repo_type: str
    active_graph_info: dict[str, object] | None = None
    backups: list[str] = field(default_factory=list)


class GraphManager:
    """Compose the repository and file managers of one profile.

    Parameters
    ----------
    props : GraphManagementRuntimeProperties
        Profile configuration.
    file_manager : GraphFileManager
        Local files of the profile.
    repo_manager : GraphRepoManager
        Repository backend.

    Examples
    --------
    >>> manager = GraphManager.initialize(props)  # doctest: +SKIP
    >>> manager.download_and_extract_latest_graph_if_necessary()  # doctest: +SKIP
    True
    """

    def __init__(
        self,
        props: GraphManagementRuntimeProperties,
        file_manager: GraphFileManager,
        repo_manager: GraphRepoManager,
    ) -> None:
        self._props = props
        self._file_manager = file_manager
        self._repo_manager = repo_manager
        self._log = bind(logger, profile=props.profile_name)

    @classmethod
    def initialize(
        cls,
        props: GraphManagementRuntimeProperties,
        *,
        metrics: GraphMetrics | None = None,
        http_client: HttpClient | None = None,
        run_startup: bool = True,
        create_dirs: bool = True,
    ) -> GraphManager:
        """Build a manager from configuration and resolve the startup state.

        Parameters
        ----------
        props : GraphManagementRuntimeProperties
            Profile configuration.
        metrics : GraphMetrics | None, optional
            Metrics sink. Defaults to the process-wide metrics.
        http_client : HttpClient | None, optional
            Client for an HTTP repository. Defaults to one built from ``props``.
        run_startup : bool, optional
            Run :meth:`manage_startup` before returning. Defaults to True.
        create_dirs : bool, optional
            Create the graphs root if it is missing. Defaults to True; read-only
            callers pass False.

        Returns
        -------
        GraphManager
            Ready manager.
        """
        file_manager = GraphFileManager(props, FlatGraphFolderStrategy(props), metrics=metrics)
        if create_dirs:
            file_manager.initialize()
        repo_manager = build_repo_manager(
            props, file_manager, metrics=metrics, http_client=http_client
        )
        manager = cls(props, file_manager, repo_manager)
        if run_startup:
            manager.manage_startup()
        return manager

    @property
    def props(self) -> GraphManagementRuntimeProperties:
        return self._props

    @property
    def file_manager(self) -> GraphFileManager:
        return self._file_manager

    @property
    def repo_manager(self) -> GraphRepoManager:
        return self._repo_manager

    @property
    def profile_name(self) -> str:
        return self._props.profile_name

    @property
    def qualified_profile_name(self) -> str:
        return self._file_manager.profile_descriptive_name

    @property
    def active_graph_dir(self) -> Path:
        return self._file_manager.active_graph_dir

    def uses_graph_repository(self) -> bool:
        return self._props.uses_graph_repository()

    def is_busy(self) -> bool:
        return self._file_manager.is_busy()

    def has_staged_graph(self) -> bool:
        return self._file_manager.has_staged_graph()

    def has_graph_download_file(self) -> bool:
        return self._file_manager.has_graph_download_file()

    def has_update_lock(self) -> bool:
        return self._file_manager.has_update_lock()

    def has_activation_lock(self) -> bool:
        return self._file_manager.has_activation_lock()

    # -- startup -------------------------------------------------------------------

    def manage_startup(self) -> None:
        """Repair and resolve the local graph state of this profile.

        Runs only for profiles that use a repository. Interrupted swaps are
        rolled back and in-progress files removed, then the state is resolved:
        with no graph at all a download is attempted and activated, a staged
        graph is activated (backing up an existing active graph), an active
        graph alone is left as is. Errors are logged, never raised.
        """
        if not self.uses_graph_repository():
            return
        name = self.qualified_profile_name
        try:
            with self._file_manager.busy():
                self._file_manager.cleanup_incomplete_files()
                state = self._file_manager.classify()
                self._log.debug(
                    "[%s] Local graph state at startup: %s",
                    name,
                    state.value,
                    extra={"operation": "startup"},
                )
                if state is LocalGraphState.NONE:
                    self._log.info(
                        "[%s] No local graph, trying to fetch one from the repository",
                        name,
                        extra={"operation": "startup"},
                    )
                    self._download_and_extract()
                    self._file_manager.activate_staged_graph()
                elif state in (LocalGraphState.STAGED_ONLY, LocalGraphState.ACTIVE_AND_STAGED):
                    self._file_manager.activate_staged_graph()
        except InconsistentLocalStateError as exc:
            self._log.log_failure(
                f"[{name}] Cannot resolve local graph state, leaving profile inactive: {exc}",
                exception=exc,
                operation="startup",
            )
        except LockedOperationError as exc:
            self._log.info("[%s] %s", name, exc, extra={"operation": "startup"})
        except (GraphManagementError, OSError) as exc:
            self._log.log_failure(
                f"[{name}] Startup graph management failed: {exc}",
                exception=exc,
                operation="startup",
            )

    # -- update cycle --------------------------------------------------------------

    def _download_and_extract(self) -> bool:
        self._repo_manager.download_graph_if_necessary()
        return self._file_manager.extract_downloaded_graph()

    def download_and_extract_latest_graph_if_necessary(self) -> bool:
        """Download and extract a newer graph build if the repository has one.

        Does nothing for profiles without a repository or while the profile is
        busy. An archive left from an earlier cycle is extracted as well.

        Returns
        -------
        bool
            True if a new staged graph was produced.
        """
        return self._run_while_busy(self._download_and_extract, "Graph update")

    def extract_pending_download(self) -> bool:
        """Extract an archive left from an earlier cycle without contacting the repository.

        Returns
        -------
        bool
            True if a new staged graph was produced.
        """
        if not self.has_graph_download_file():
            return False
        return self._run_while_busy(
            self._file_manager.extract_downloaded_graph, "Extraction of pending download"
        )

    def _run_while_busy(self, step: Callable[[], bool], what: str) -> bool:
        if not self.uses_graph_repository():
            return False
        name = self.qualified_profile_name
        if self.is_busy():
            self._log.info(
                "[%s] Download or extraction already in progress",
                name,
                extra={"operation": "update"},
            )
            return False
        try:
            with self._file_manager.busy():
                return step()
        except LockedOperationError as exc:
            self._log.info("[%s] %s", name, exc, extra={"operation": "update"})
        except (GraphManagementError, OSError) as exc:
            self._log.log_failure(
                f"[{name}] {what} failed: {exc}",
                exception=exc,
                operation="update",
            )
        return False

    # -- descriptors ---------------------------------------------------------------

    def active_graph_info(self) -> GraphInfo | None:
        """Descriptor of the active graph; None if missing or unreadable."""
        try:
            return self._file_manager.read_active_graph_info()
        except GraphInfoParseError as exc:
            self._log.warning(
                "[%s] %s", self.qualified_profile_name, exc, extra={"operation": "status"}
            )
            return None

    def active_graph_profile_properties(self) -> dict[str, object] | None:
        info = self.active_graph_info()
        if info is None or info.profile_properties is None:
            return None
        return dict(info.profile_properties)

    def write_graph_info_if_not_exists(self, info: GraphInfo) -> bool:
        """Record ``info`` for a graph built locally by the host."""
        return self._file_manager.write_graph_info_if_not_exists(info)

    def status(self) -> ProfileStatus:
        """Snapshot of the profile for health reporting."""
        try:
            state = self._file_manager.classify().value
        except InconsistentLocalStateError:
            state = "inconsistent"
        info = self.active_graph_info()
        return ProfileStatus(
            profile=self.profile_name,
            qualified_name=self.qualified_profile_name,
            state=state,
            busy=self.is_busy(),
            has_download=self.has_graph_download_file(),
            update_lock=self.has_update_lock(),
            activation_lock=self.has_activation_lock(),
            repo_type=self._props.derived_repo_type.value,
            active_graph_info=info.to_mapping() if info is not None else None,
            backups=[path.name for path in self._file_manager.list_backups()],
        )
