"""Periodic and one-shot job execution for the coordinator.

The coordinator only needs two capabilities from its host: run a callable
every N seconds and run a callable asynchronously now. :class:`Scheduler`
names them; :class:`ThreadedScheduler` implements them with daemon threads
for stand-alone use.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

from routegraph_common.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

__all__ = ["ScheduledJob", "Scheduler", "ThreadedScheduler"]

logger = get_logger(__name__)


class Scheduler(Protocol):
    """Host scheduling capability."""

    def schedule_every(
        self, name: str, interval_s: float, fn: Callable[[], object]
    ) -> ScheduledJob:  # pragma: no cover - protocol
        """Run ``fn`` repeatedly with ``interval_s`` seconds between runs."""
        ...

    def submit(self, fn: Callable[[], object]) -> Future[object]:  # pragma: no cover - protocol
        """Run ``fn`` once, asynchronously."""
        ...

    def shutdown(self, *, wait: bool = True) -> None:  # pragma: no cover - protocol
        """Stop all jobs."""
        ...


@dataclass
class ScheduledJob:
    """Handle of a periodic job.

    Attributes
    ----------
    name : str
        Job name, used in logs and thread names.
    interval_s : float
        Delay between the end of one run and the start of the next.
    """

    name: str
    interval_s: float
    _stop: threading.Event = field(default_factory=threading.Event, repr=False)
    _thread: threading.Thread | None = field(default=None, repr=False)

    def cancel(self) -> None:
        """Stop scheduling further runs; a run in progress completes."""
        self._stop.set()

    @property
    def cancelled(self) -> bool:
        return self._stop.is_set()

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)


def _run_logged(name: str, fn: Callable[[], object]) -> object:
    try:
        return fn()
    except Exception as exc:
        logger.log_failure(f"Scheduled job {name} failed: {exc}", exception=exc, operation=name)
        return None


class ThreadedScheduler:
    """Thread-based :class:`Scheduler`.

    Each periodic job runs in its own daemon thread with fixed-delay
    semantics: the next run starts ``interval_s`` seconds after the previous
    one finished. A failing run is logged and the job keeps its schedule.
    One-shot work goes to a small thread pool.

    Parameters
    ----------
    max_workers : int, optional
        Size of the pool for :meth:`submit`. Defaults to 2.
    """

    def __init__(self, max_workers: int = 2) -> None:
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="routegraph"
        )
        self._jobs: list[ScheduledJob] = []
        self._lock = threading.Lock()

    def schedule_every(
        self, name: str, interval_s: float, fn: Callable[[], object]
    ) -> ScheduledJob:
        if interval_s <= 0:
            msg = f"interval_s must be positive, got {interval_s}"
            raise ValueError(msg)
        job = ScheduledJob(name=name, interval_s=interval_s)

        def loop() -> None:
            while not job._stop.wait(job.interval_s):
                _run_logged(name, fn)

        job._thread = threading.Thread(target=loop, name=f"routegraph-{name}", daemon=True)
        with self._lock:
            self._jobs.append(job)
        job._thread.start()
        logger.debug(
            "Scheduled %s every %.1fs", name, interval_s, extra={"operation": "schedule"}
        )
        return job

    def submit(self, fn: Callable[[], object]) -> Future[object]:
        name = getattr(fn, "__name__", "job")
        return self._executor.submit(_run_logged, name, fn)

    def shutdown(self, *, wait: bool = True) -> None:
        with self._lock:
            jobs, self._jobs = self._jobs, []
        for job in jobs:
            job.cancel()
        if wait:
            for job in jobs:
                job.join()
        self._executor.shutdown(wait=wait)
