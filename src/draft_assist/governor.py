from __future__ import annotations

import asyncio
import itertools
import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, TypeVar

from .cancellation import CancelToken
from .config import DraftAssistConfig
from .errors import AnalysisAbortedError, CapacityError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RunStatus(str, Enum):
    ADMITTED = "admitted"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"
    FAILED = "failed"


@dataclass(slots=True)
class AnalysisRun:
    """Bookkeeping for one in-flight analysis, owned by the governor."""

    run_id: str
    started_at: float
    token: CancelToken
    status: RunStatus = RunStatus.ADMITTED

    @property
    def aborted(self) -> bool:
        return self.token.cancelled


class AnalysisGovernor:
    """Admission control, deadlines and cooperative cancellation for analysis runs.

    At most ``max_concurrent_runs`` runs may be live; further admissions fail
    with :class:`CapacityError` instead of queueing. Each run gets a deadline:
    when it passes, the run's :class:`CancelToken` is set, the work is given
    ``abort_grace_seconds`` to notice, and the run resolves as aborted.
    """

    def __init__(
        self,
        max_concurrent_runs: int = 3,
        timeout_seconds: float = 30.0,
        stale_after_seconds: float = 300.0,
        abort_grace_seconds: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_concurrent_runs < 1:
            raise ValueError("max_concurrent_runs must be at least 1.")
        self._max_concurrent_runs = max_concurrent_runs
        self._timeout = timeout_seconds
        self._stale_after = stale_after_seconds
        self._abort_grace = abort_grace_seconds
        self._clock = clock
        self._runs: Dict[str, AnalysisRun] = {}
        self._lock = threading.Lock()
        self._ids = itertools.count(1)

    @classmethod
    def from_config(cls, config: DraftAssistConfig) -> "AnalysisGovernor":
        return cls(
            max_concurrent_runs=config.max_concurrent_runs,
            timeout_seconds=config.run_timeout_seconds,
            stale_after_seconds=config.stale_run_seconds,
            abort_grace_seconds=config.abort_grace_seconds,
        )

    @property
    def max_concurrent_runs(self) -> int:
        return self._max_concurrent_runs

    @property
    def active_runs(self) -> List[AnalysisRun]:
        with self._lock:
            return list(self._runs.values())

    def admit(self, run_id: str | None = None) -> AnalysisRun:
        """Register a new run or raise :class:`CapacityError`."""
        with self._lock:
            self._reap_stale_locked(self._clock())
            if len(self._runs) >= self._max_concurrent_runs:
                logger.info(
                    "Rejecting analysis: %s runs live (limit %s)",
                    len(self._runs),
                    self._max_concurrent_runs,
                )
                raise CapacityError(self._max_concurrent_runs)
            if run_id is None:
                run_id = f"run-{next(self._ids)}"
            elif run_id in self._runs:
                raise ValueError(f"Run {run_id!r} is already in flight.")
            run = AnalysisRun(
                run_id=run_id, started_at=self._clock(), token=CancelToken(run_id)
            )
            self._runs[run_id] = run
            return run

    def release(self, run: AnalysisRun) -> None:
        with self._lock:
            if self._runs.get(run.run_id) is run:
                del self._runs[run.run_id]

    def cancel(self, run_id: str) -> bool:
        """Request cooperative cancellation; returns False for unknown runs."""
        with self._lock:
            run = self._runs.get(run_id)
        if run is None:
            return False
        run.token.cancel("cancelled")
        return True

    def reap_stale(self) -> int:
        with self._lock:
            return self._reap_stale_locked(self._clock())

    async def run(
        self,
        work: Callable[[CancelToken], Awaitable[T]],
        *,
        run_id: str | None = None,
        timeout: float | None = None,
    ) -> T:
        """Admit, execute and retire one run of ``work``.

        Raises:
            CapacityError: when the concurrency limit is reached.
            AnalysisAbortedError: on deadline expiry or explicit cancellation.
        """
        run = self.admit(run_id)
        deadline = self._timeout if timeout is None else timeout
        if deadline and deadline > 0:
            run.token.set_deadline(deadline)
        try:
            run.status = RunStatus.RUNNING
            task = asyncio.ensure_future(work(run.token))
            try:
                done, _ = await asyncio.wait(
                    {task}, timeout=deadline if deadline and deadline > 0 else None
                )
            except asyncio.CancelledError:
                run.token.cancel("cancelled")
                task.cancel()
                run.status = RunStatus.ABORTED
                raise

            if task not in done:
                logger.warning(
                    "Analysis run %s exceeded %.1fs deadline; cancelling",
                    run.run_id,
                    deadline,
                )
                run.token.cancel("timeout")
                await self._settle(task)
                run.status = RunStatus.ABORTED
                raise AnalysisAbortedError(run.run_id, "timeout")

            try:
                result = task.result()
            except AnalysisAbortedError:
                run.status = RunStatus.ABORTED
                raise
            except Exception:
                run.status = RunStatus.FAILED
                logger.exception("Analysis run %s failed", run.run_id)
                raise
            run.status = RunStatus.COMPLETED
            return result
        finally:
            self.release(run)

    async def _settle(self, task: "asyncio.Future[Any]") -> None:
        done, _ = await asyncio.wait({task}, timeout=max(0.0, self._abort_grace))
        if task in done:
            if not task.cancelled():
                # Outcome is superseded by the abort; mark it retrieved.
                task.exception()
            return
        logger.warning("Run ignored cancellation for %.1fs; cancelling task", self._abort_grace)
        task.cancel()

    def _reap_stale_locked(self, now: float) -> int:
        stale = [
            run
            for run in self._runs.values()
            if now - run.started_at > self._stale_after
        ]
        for run in stale:
            logger.warning(
                "Reaping stale analysis run %s (age %.1fs, status %s)",
                run.run_id,
                now - run.started_at,
                run.status.value,
            )
            run.token.cancel("stale")
            del self._runs[run.run_id]
        return len(stale)
