"""Host restart requests issued after graphs were activated."""

from __future__ import annotations

import os
import signal
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol

from routegraph_common.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

__all__ = [
    "ActivationEvent",
    "CallbackRestartHandler",
    "LoggingRestartHandler",
    "RestartHandler",
    "SignalRestartHandler",
]

logger = get_logger(__name__)


@dataclass(frozen=True)
class ActivationEvent:
    """Activation pass finished; the host should reload its graphs.

    Attributes
    ----------
    profiles : tuple[str, ...]
        Profiles whose managers took part in the pass.
    trigger : str
        Cycle that ran the activation.
    activated_at : datetime
        Completion time (UTC).
    """

    profiles: tuple[str, ...]
    trigger: str
    activated_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class RestartHandler(Protocol):
    """Host lifecycle capability: tear down and reinitialise the serving context."""

    def request_restart(self, event: ActivationEvent) -> None:  # pragma: no cover - protocol
        """Reload all routing engines from the active graph directories."""
        ...


class CallbackRestartHandler:
    """Deliver the event to a host callable."""

    def __init__(self, callback: Callable[[ActivationEvent], None]) -> None:
        self._callback = callback

    def request_restart(self, event: ActivationEvent) -> None:
        self._callback(event)


class SignalRestartHandler:
    """Send a signal to this process, for hosts run under a supervisor.

    Parameters
    ----------
    signum : int, optional
        Signal to send. Defaults to ``SIGHUP``.
    pid : int | None, optional
        Target process. Defaults to the current process.
    """

    def __init__(self, signum: int = signal.SIGHUP, pid: int | None = None) -> None:
        self._signum = signum
        self._pid = pid

    def request_restart(self, event: ActivationEvent) -> None:
        pid = self._pid if self._pid is not None else os.getpid()
        logger.info(
            "Requesting restart of pid %d with signal %d after activating %s",
            pid,
            self._signum,
            ", ".join(event.profiles),
            extra={"operation": "restart"},
        )
        os.kill(pid, self._signum)


class LoggingRestartHandler:
    """Only log the request; the operator restarts the host."""

    def request_restart(self, event: ActivationEvent) -> None:
        logger.warning(
            "Graphs activated for %s; restart the routing service to load them",
            ", ".join(event.profiles) or "no profiles",
            extra={"operation": "restart"},
        )
