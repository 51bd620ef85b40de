"""Process-wide coordination of graph updates and activation.

:class:`GraphCoordinatorService` owns the registered graph managers and runs
three recurring cycles:

* the update check downloads and extracts newer graphs, profiles in parallel;
* the activation check activates all staged graphs in one batch and asks the
  host to restart, or defers the whole batch while any profile is busy or the
  activation lock is present;
* the retry cycle re-runs a deferred activation check at a short interval.

The coordinator state (``IDLE``, ``CHECKING_UPDATES``, ``ACTIVATING``) only
changes by compare-and-swap, so at most one activation pass and one update
check run at a time however the cycles are scheduled.
"""

from __future__ import annotations

import contextvars
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from graph_management.local.folder_strategy import ACTIVATION_LOCK_FILENAME, UPDATE_LOCK_FILENAME
from graph_management.manager import GraphManager, ProfileStatus
from graph_management.metrics import GraphMetrics, default_metrics
from graph_management.properties import GraphManagementRuntimeProperties
from orchestration.restart import ActivationEvent
from routegraph_common.errors import ErrorCode, GraphManagementError
from routegraph_common.logging import CorrelationContext, get_logger

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from concurrent.futures import Future

    from orchestration.restart import RestartHandler
    from orchestration.scheduler import ScheduledJob, Scheduler
    from routegraph_common.settings import GraphManagementSettings

__all__ = [
    "CoordinatorState",
    "CoordinatorStatus",
    "GraphCoordinatorService",
    "build_managers_from_settings",
]

logger = get_logger(__name__)

type ManagerFactory = Callable[[], Iterable[GraphManager]]


class CoordinatorState(StrEnum):
    """What the coordinator is doing."""

    IDLE = "idle"
    CHECKING_UPDATES = "checking_updates"
    ACTIVATING = "activating"


@dataclass(frozen=True)
class CoordinatorStatus:
    """Snapshot for health reporting.

    Attributes
    ----------
    enabled : bool
        Graph management is enabled.
    state : CoordinatorState
        Current state.
    activation_was_blocked : bool
        An activation was deferred and is retried at the short interval.
    profiles : list[ProfileStatus]
        Status of every registered manager.
    """

    enabled: bool
    state: CoordinatorState
    activation_was_blocked: bool
    profiles: list[ProfileStatus] = field(default_factory=list)


def build_managers_from_settings(
    settings: GraphManagementSettings,
    *,
    metrics: GraphMetrics | None = None,
    run_startup: bool = True,
    create_dirs: bool = True,
) -> list[GraphManager]:
    """Create a manager for every enabled profile of ``settings``.

    Parameters
    ----------
    settings : GraphManagementSettings
        Loaded configuration.
    metrics : GraphMetrics | None, optional
        Metrics sink. Defaults to the process-wide metrics.
    run_startup : bool, optional
        Resolve each profile's startup state. Defaults to True.
    create_dirs : bool, optional
        Create the graphs root if it is missing. Defaults to True.

    Returns
    -------
    list[GraphManager]
        Managers in configuration order, including profiles without repository.
    """
    return [
        GraphManager.initialize(
            GraphManagementRuntimeProperties.from_settings(settings, name),
            metrics=metrics,
            run_startup=run_startup,
            create_dirs=create_dirs,
        )
        for name in settings.enabled_profiles()
    ]


class GraphCoordinatorService:
    """Coordinate update checks and activation across all profiles.

    Parameters
    ----------
    settings : GraphManagementSettings
        Configuration: enabled flag, cycle intervals and worker count.
    restart_handler : RestartHandler
        Receives an :class:`ActivationEvent` after every activation pass.
    manager_factory : Callable[[], Iterable[GraphManager]] | None, optional
        Rebuilds the manager collection before an activation pass so profile
        changes take effect. Defaults to keeping the registered managers.
    metrics : GraphMetrics | None, optional
        Metrics sink. Defaults to the process-wide metrics.
    """

    def __init__(
        self,
        settings: GraphManagementSettings,
        restart_handler: RestartHandler,
        *,
        manager_factory: ManagerFactory | None = None,
        metrics: GraphMetrics | None = None,
    ) -> None:
        self._settings = settings
        self._restart_handler = restart_handler
        self._manager_factory = manager_factory
        self._metrics = metrics or default_metrics()
        self._lock = threading.Lock()
        self._state = CoordinatorState.IDLE
        self._activation_was_blocked = False
        self._managers: list[GraphManager] = []
        self._scheduler: Scheduler | None = None
        self._jobs: list[ScheduledJob] = []

    # -- state ---------------------------------------------------------------------

    @property
    def enabled(self) -> bool:
        return self._settings.enabled

    @property
    def state(self) -> CoordinatorState:
        with self._lock:
            return self._state

    @property
    def is_activating_graphs(self) -> bool:
        return self.state is CoordinatorState.ACTIVATING

    @property
    def activation_was_blocked(self) -> bool:
        with self._lock:
            return self._activation_was_blocked

    def _set_blocked(self, value: bool) -> None:
        with self._lock:
            self._activation_was_blocked = value

    def _transition(self, expected: CoordinatorState, new: CoordinatorState) -> bool:
        with self._lock:
            if self._state is not expected:
                return False
            self._state = new
            return True

    @property
    def managers(self) -> list[GraphManager]:
        with self._lock:
            return list(self._managers)

    def add_graph_manager_instance(self, manager: GraphManager) -> bool:
        """Register ``manager`` if its profile uses a graph repository.

        Returns
        -------
        bool
            True if the manager was registered.
        """
        if not manager.uses_graph_repository():
            logger.debug(
                "[%s] Profile does not use a graph repository, not registering",
                manager.qualified_profile_name,
                extra={"operation": "register", "profile": manager.profile_name},
            )
            return False
        with self._lock:
            self._managers.append(manager)
        return True

    def _is_update_locked(self, managers: list[GraphManager]) -> bool:
        return any(manager.has_update_lock() for manager in managers)

    def _is_activation_locked(self, managers: list[GraphManager]) -> bool:
        return any(manager.has_activation_lock() for manager in managers)

    # -- update check --------------------------------------------------------------

    def check_for_updates_in_repo(self, trigger: str = "Scheduled") -> list[str]:
        """Run one update-check cycle.

        While a deferred activation waits for its retry no new downloads
        start; archives that were downloaded but not extracted are still
        extracted, since the deferred activation waits for them.

        Parameters
        ----------
        trigger : str, optional
            Cycle name used in log messages. Defaults to ``"Scheduled"``.

        Returns
        -------
        list[str]
            Profiles that staged a new graph during this cycle.
        """
        if not self.enabled:
            logger.debug(
                "Graph management is disabled, skipping %s repository check",
                trigger.lower(),
                extra={"operation": "update_check"},
            )
            return []
        if self.is_activating_graphs:
            logger.debug(
                "Graph activation in progress, skipping %s repository check",
                trigger.lower(),
                extra={"operation": "update_check"},
            )
            return []
        managers = self.managers
        waiting = self.activation_was_blocked
        if waiting and not any(m.has_graph_download_file() for m in managers):
            logger.warning(
                "Skipping %s repository check, waiting for restart",
                trigger.lower(),
                extra={"operation": "update_check"},
            )
            return []
        if self._is_update_locked(managers):
            logger.warning(
                "%s repository check skipped: File %s found - remove lock file manually!",
                trigger,
                UPDATE_LOCK_FILENAME,
                extra={"operation": "update_check"},
            )
            self._metrics.record_deferral("update_lock")
            return []
        if not self._transition(CoordinatorState.IDLE, CoordinatorState.CHECKING_UPDATES):
            logger.debug(
                "Another cycle is running, skipping %s repository check",
                trigger.lower(),
                extra={"operation": "update_check"},
            )
            return []
        try:
            with CorrelationContext(uuid.uuid4().hex):
                if waiting:
                    return self._extract_pending_downloads(managers, trigger)
                return self._run_update_checks(managers, trigger)
        finally:
            self._transition(CoordinatorState.CHECKING_UPDATES, CoordinatorState.IDLE)

    def _extract_pending_downloads(self, managers: list[GraphManager], trigger: str) -> list[str]:
        # the pending activation waits for these archives; no new downloads start
        pending = [m for m in managers if m.has_graph_download_file() and not m.is_busy()]
        for manager in pending:
            logger.info(
                "[%s] %s repository check: Waiting for restart, extracting pending download",
                manager.qualified_profile_name,
                trigger,
                extra={"operation": "update_check", "profile": manager.profile_name},
            )
        return self._run_on_pool(pending, GraphManager.extract_pending_download, trigger)

    def _run_update_checks(self, managers: list[GraphManager], trigger: str) -> list[str]:
        candidates: list[GraphManager] = []
        for manager in managers:
            if manager.is_busy():
                logger.info(
                    "[%s] %s repository check: Download or extraction in progress",
                    manager.qualified_profile_name,
                    trigger,
                    extra={"operation": "update_check", "profile": manager.profile_name},
                )
            else:
                logger.info(
                    "[%s] %s repository check: Checking for update",
                    manager.qualified_profile_name,
                    trigger,
                    extra={"operation": "update_check", "profile": manager.profile_name},
                )
                candidates.append(manager)
        return self._run_on_pool(
            candidates, GraphManager.download_and_extract_latest_graph_if_necessary, trigger
        )

    def _run_on_pool(
        self,
        candidates: list[GraphManager],
        step: Callable[[GraphManager], bool],
        trigger: str,
    ) -> list[str]:
        if not candidates:
            return []
        workers = min(self._settings.update_workers, len(candidates))
        # one context copy per task keeps the cycle's correlation id in worker threads
        contexts = [contextvars.copy_context() for _ in candidates]
        with ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="routegraph-update"
        ) as pool:
            results = list(pool.map(lambda ctx, m: ctx.run(step, m), contexts, candidates))
        staged = [
            m.profile_name for m, produced in zip(candidates, results, strict=True) if produced
        ]
        logger.debug(
            "%s repository check done, new graphs staged for: %s",
            trigger,
            ", ".join(staged) or "none",
            extra={"operation": "update_check"},
        )
        return staged

    # -- activation ----------------------------------------------------------------

    def check_for_downloaded_graphs_to_activate(self, trigger: str = "Scheduled") -> bool:
        """Run one activation-check cycle.

        Activation is all or nothing: while any profile is busy or holds an
        archive that is not yet extracted, or while the activation lock exists,
        nothing is activated and ``activation_was_blocked`` is set so the retry
        cycle tries again.

        Parameters
        ----------
        trigger : str, optional
            Cycle name used in log messages. Defaults to ``"Scheduled"``.

        Returns
        -------
        bool
            True if an activation pass ran.
        """
        if not self.enabled:
            logger.debug(
                "Graph management is disabled, skipping %s activation check",
                trigger.lower(),
                extra={"operation": "activation_check"},
            )
            return False
        if self.is_activating_graphs:
            logger.debug(
                "Graph activation in progress, skipping %s activation check",
                trigger.lower(),
                extra={"operation": "activation_check"},
            )
            return False

        already_blocked = self.activation_was_blocked
        managers = self.managers
        allowed = self.state is CoordinatorState.IDLE
        needed = False
        for manager in managers:
            if manager.is_busy() or manager.has_graph_download_file():
                if not already_blocked:
                    logger.info(
                        "[%s] %s graph activation check: Download or extraction in progress",
                        manager.qualified_profile_name,
                        trigger,
                        extra={"operation": "activation_check", "profile": manager.profile_name},
                    )
                allowed = False
            if manager.has_staged_graph():
                if not already_blocked:
                    logger.info(
                        "[%s] %s graph activation check: Downloaded extracted graph available",
                        manager.qualified_profile_name,
                        trigger,
                        extra={"operation": "activation_check", "profile": manager.profile_name},
                    )
                needed = True

        if not needed:
            logger.info(
                "%s graph activation check done: No downloaded graphs found, no restart required",
                trigger,
                extra={"operation": "activation_check"},
            )
            self._set_blocked(False)
            return False
        if not allowed:
            logger.info(
                "%s graph activation check done: Activation currently not allowed, retrying",
                trigger,
                extra={"operation": "activation_check"},
            )
            self._defer("busy")
            return False
        if self._is_activation_locked(managers):
            logger.warning(
                "%s graph activation check done: File %s found - remove lock file manually! "
                "Retrying",
                trigger,
                ACTIVATION_LOCK_FILENAME,
                extra={"operation": "activation_check"},
            )
            self._defer("activation_lock")
            return False

        logger.info(
            "%s graph activation check done: Performing graph activation",
            trigger,
            extra={"operation": "activation_check"},
        )
        return self.activate_graphs(trigger)

    def _defer(self, reason: str) -> None:
        self._set_blocked(True)
        self._metrics.record_deferral(reason)

    def activate_graphs(self, trigger: str = "Scheduled") -> bool:
        """Activate all staged graphs and request the host restart.

        The manager collection is rebuilt first, then every manager resolves
        its local state, which activates staged graphs. The state returns to
        ``IDLE`` and ``activation_was_blocked`` is cleared afterwards, also
        when the pass fails.

        Returns
        -------
        bool
            True if the pass completed and the restart was requested.
        """
        if not self._transition(CoordinatorState.IDLE, CoordinatorState.ACTIVATING):
            logger.info(
                "Another cycle is running, deferring graph activation",
                extra={"operation": "activate"},
            )
            self._defer("busy")
            return False
        try:
            with CorrelationContext(uuid.uuid4().hex):
                managers = self._rebuild_managers()
                for manager in managers:
                    manager.manage_startup()
                event = ActivationEvent(
                    profiles=tuple(m.profile_name for m in managers), trigger=trigger
                )
                self._restart_handler.request_restart(event)
        except Exception as exc:
            self._metrics.record_activation("failure")
            logger.log_failure(
                f"Unable to activate graphs due to an unexpected exception: {exc}",
                exception=exc,
                operation="activate",
            )
            return False
        else:
            self._metrics.record_activation("success")
            logger.log_success(
                f"Activated graphs for {', '.join(event.profiles) or 'no profiles'}",
                operation="activate",
            )
            return True
        finally:
            with self._lock:
                self._state = CoordinatorState.IDLE
                self._activation_was_blocked = False

    def _rebuild_managers(self) -> list[GraphManager]:
        if self._manager_factory is None:
            return self.managers
        rebuilt = [m for m in self._manager_factory() if m.uses_graph_repository()]
        with self._lock:
            self._managers = list(rebuilt)
        for manager in rebuilt:
            logger.debug(
                "[%s] Registered graph manager",
                manager.qualified_profile_name,
                extra={"operation": "activate", "profile": manager.profile_name},
            )
        return rebuilt

    def repeated_graph_activation_attempt(self) -> bool:
        """Retry a deferred activation check; no-op unless one was blocked."""
        if not self.enabled or self.is_activating_graphs:
            return False
        if not self.activation_was_blocked:
            return False
        logger.info("Repeated attempt to activate graphs", extra={"operation": "activation_check"})
        return self.check_for_downloaded_graphs_to_activate("Repeated")

    # -- scheduling ----------------------------------------------------------------

    def start(self, scheduler: Scheduler) -> None:
        """Register the recurring cycles with ``scheduler``.

        Cycles whose interval is not configured are not scheduled.
        """
        self._scheduler = scheduler
        cycles: list[tuple[str, float | None, Callable[[], object]]] = [
            ("update-check", self._settings.download_interval_s, self.check_for_updates_in_repo),
            (
                "activation-check",
                self._settings.activation_interval_s,
                self.check_for_downloaded_graphs_to_activate,
            ),
            (
                "activation-retry",
                self._settings.retry_interval_s,
                self.repeated_graph_activation_attempt,
            ),
        ]
        for name, interval, fn in cycles:
            if interval is None:
                logger.info("Cycle %s is not scheduled", name, extra={"operation": "start"})
                continue
            self._jobs.append(scheduler.schedule_every(name, interval, fn))

    def stop(self) -> None:
        """Cancel the recurring cycles registered by :meth:`start`."""
        for job in self._jobs:
            job.cancel()
        self._jobs.clear()
        self._scheduler = None

    def _require_scheduler(self) -> Scheduler:
        if self._scheduler is None:
            msg = "Coordinator is not started"
            raise GraphManagementError(msg, code=ErrorCode.RUNTIME_ERROR)
        return self._scheduler

    def trigger_update_check_now(self) -> Future[object]:
        """Run an update check asynchronously on the scheduler."""
        return self._require_scheduler().submit(
            lambda: self.check_for_updates_in_repo("Triggered")
        )

    def trigger_activation_check_now(self) -> Future[object]:
        """Run an activation check asynchronously on the scheduler."""
        return self._require_scheduler().submit(
            lambda: self.check_for_downloaded_graphs_to_activate("Triggered")
        )

    def status(self) -> CoordinatorStatus:
        with self._lock:
            state = self._state
            blocked = self._activation_was_blocked
            managers = list(self._managers)
        return CoordinatorStatus(
            enabled=self.enabled,
            state=state,
            activation_was_blocked=blocked,
            profiles=[manager.status() for manager in managers],
        )
