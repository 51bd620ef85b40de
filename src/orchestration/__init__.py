"""Coordination of graph updates and activation across profiles."""

from __future__ import annotations

from orchestration.coordinator import (
    CoordinatorState,
    CoordinatorStatus,
    GraphCoordinatorService,
    build_managers_from_settings,
)
from orchestration.restart import (
    ActivationEvent,
    CallbackRestartHandler,
    LoggingRestartHandler,
    RestartHandler,
    SignalRestartHandler,
)
from orchestration.scheduler import ScheduledJob, Scheduler, ThreadedScheduler

__all__ = [
    "ActivationEvent",
    "CallbackRestartHandler",
    "CoordinatorState",
    "CoordinatorStatus",
    "GraphCoordinatorService",
    "LoggingRestartHandler",
    "RestartHandler",
    "ScheduledJob",
    "Scheduler",
    "SignalRestartHandler",
    "ThreadedScheduler",
    "build_managers_from_settings",
]
