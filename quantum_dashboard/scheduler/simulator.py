"""
Simulated Scheduler for the Quantum Job Dashboard.

The scheduler emulates a live queueing backend by mutating job state on a
timer, without any external input. Each tick performs four independent,
probabilistic actions in a fixed order:

1. **Promote**: maybe move one random queued job to running
2. **Resolve**: maybe finish one random running job as done (with a result
   payload) or failed (with an error message)
3. **Spawn**: maybe submit one synthetic job on a random backend
4. **Reconcile**: recompute every backend's queue length and refresh its
   last-update timestamp

Reconcile runs last so the queue lengths always reflect that tick's
promotions and spawns.

Tick periods are drawn uniformly from [min_interval_s, max_interval_s] so
several dashboard instances do not update in lockstep.

A failing action is logged and counted; the tick moves on to the next
action and the background loop keeps running. There are no retries: the
next tick naturally attempts the same kind of work again.

Example Usage:
-------------
```python
import numpy as np

store = EntityStore()
store.seed_defaults()
engine = JobLifecycleEngine(store)
scheduler = JobScheduler(engine, rng=np.random.default_rng(42))

report = scheduler.tick()          # one deterministic step
await scheduler.start()            # background loop on the running event loop
...
await scheduler.stop()
```
"""

from typing import Any, Callable, Dict, List, Optional
from collections import Counter
from dataclasses import dataclass, field, asdict
from datetime import datetime
import asyncio
import logging

import numpy as np

from quantum_dashboard.config import SchedulerConfig
from quantum_dashboard.scheduler.lifecycle import JobLifecycleEngine
from quantum_dashboard.scheduler.synthetic import (
    random_job_spec,
    synthetic_error,
    synthetic_results,
)
from quantum_dashboard.store.models import JobStatus


# Configure module logger
logger = logging.getLogger(__name__)


class SchedulerError(Exception):
    """Base exception for scheduler errors."""
    pass


class SchedulerAlreadyRunning(SchedulerError):
    """Raised when start() is called on a running scheduler."""
    pass


@dataclass
class TickReport:
    """What a single tick did."""
    started_at: datetime
    promoted: List[str] = field(default_factory=list)
    completed: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    spawned: List[str] = field(default_factory=list)
    reconciled: Dict[str, int] = field(default_factory=dict)
    errors: int = 0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        return data


class JobScheduler:
    """
    Background ticker advancing job state through the lifecycle engine.

    Attributes:
        engine (JobLifecycleEngine): Engine used for every job mutation
        rng (np.random.Generator): Random source for all probabilistic choices
        config (SchedulerConfig): Probabilities and tick period bounds
        tick_count (int): Ticks executed so far
        last_tick (Optional[datetime]): Start time of the latest tick
    """

    def __init__(
        self,
        engine: JobLifecycleEngine,
        rng: Optional[np.random.Generator] = None,
        config: Optional[SchedulerConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.engine = engine
        self.config = config or SchedulerConfig()
        self.rng = rng if rng is not None else np.random.default_rng(self.config.seed)
        self.clock = clock or engine.clock

        self.tick_count = 0
        self.last_tick: Optional[datetime] = None
        self._task: Optional[asyncio.Task] = None

        # Lifetime statistics
        self._promoted_total = 0
        self._completed_total = 0
        self._failed_total = 0
        self._spawned_total = 0
        self._errors_total = 0

    # =========================================================================
    # TICK
    # =========================================================================

    def tick(self) -> TickReport:
        """
        Run one simulation step: promote, resolve, spawn, reconcile.

        Never raises; per-action failures are logged and counted in the
        returned report.
        """
        report = TickReport(started_at=self.clock())

        actions = (
            ("promote", self._promote),
            ("resolve", self._resolve),
            ("spawn", self._spawn),
            ("reconcile", self._reconcile),
        )
        for name, action in actions:
            try:
                action(report)
            except Exception as e:
                report.errors += 1
                logger.error(f"Scheduler action '{name}' failed: {e}")

        self.tick_count += 1
        self.last_tick = report.started_at
        self._promoted_total += len(report.promoted)
        self._completed_total += len(report.completed)
        self._failed_total += len(report.failed)
        self._spawned_total += len(report.spawned)
        self._errors_total += report.errors

        logger.debug(
            f"Tick {self.tick_count}: promoted={len(report.promoted)} "
            f"completed={len(report.completed)} failed={len(report.failed)} "
            f"spawned={len(report.spawned)} errors={report.errors}"
        )
        return report

    def _promote(self, report: TickReport) -> None:
        queued = self.engine.jobs_by_status(JobStatus.QUEUED)
        if not queued or self.rng.random() >= self.config.promote_probability:
            return

        job = queued[int(self.rng.integers(len(queued)))]
        if self.engine.transition_status(job.id, JobStatus.RUNNING) is not None:
            report.promoted.append(job.id)

    def _resolve(self, report: TickReport) -> None:
        running = self.engine.jobs_by_status(JobStatus.RUNNING)
        if not running or self.rng.random() >= self.config.resolve_probability:
            return

        job = running[int(self.rng.integers(len(running)))]
        if self.rng.random() < self.config.success_probability:
            if self.engine.transition_status(job.id, JobStatus.DONE) is None:
                return
            self.engine.record_results(
                job.id, synthetic_results(self.rng, job.program, job.shots)
            )
            report.completed.append(job.id)
        else:
            error = synthetic_error(self.rng)
            if self.engine.transition_status(job.id, JobStatus.FAILED, error) is not None:
                report.failed.append(job.id)

    def _spawn(self, report: TickReport) -> None:
        if self.rng.random() >= self.config.spawn_probability:
            return

        backends = self.engine.list_backends()
        if not backends:
            return

        job = self.engine.create_job(**random_job_spec(self.rng, backends))
        report.spawned.append(job.id)

    def _reconcile(self, report: TickReport) -> None:
        report.reconciled.update(self.reconcile_backends())

    def reconcile_backends(self) -> Dict[str, int]:
        """
        Set every backend's queue length to its number of queued jobs.

        Returns:
            Mapping of backend name to its new queue length
        """
        now = self.clock()
        queued = Counter(job.backend for job in self.engine.jobs_by_status(JobStatus.QUEUED))

        lengths = {}
        for backend in self.engine.list_backends():
            length = queued.get(backend.name, 0)
            self.engine.store.backends.update(
                backend.name, queue_length=length, last_update=now
            )
            lengths[backend.name] = length
        return lengths

    # =========================================================================
    # BACKGROUND LOOP
    # =========================================================================

    def next_interval(self) -> float:
        """Seconds until the next tick, uniform in [min_interval_s, max_interval_s]."""
        return float(self.rng.uniform(self.config.min_interval_s, self.config.max_interval_s))

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """
        Start ticking on the running event loop.

        Raises:
            SchedulerAlreadyRunning: If the background loop is active
        """
        if self.is_running:
            raise SchedulerAlreadyRunning("Scheduler is already running")

        self._task = asyncio.create_task(self._run(), name="job-scheduler")
        logger.info(
            f"Scheduler started (interval {self.config.min_interval_s:.0f}-"
            f"{self.config.max_interval_s:.0f}s)"
        )

    async def stop(self) -> None:
        """Cancel the background loop and wait for it to finish. Safe to call twice."""
        task, self._task = self._task, None
        if task is None:
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info(f"Scheduler stopped after {self.tick_count} ticks")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.next_interval())
            try:
                self.tick()
            except Exception as e:
                logger.error(f"Scheduler tick failed: {e}")

    # =========================================================================
    # UTILITY METHODS
    # =========================================================================

    def get_statistics(self) -> Dict[str, Any]:
        """
        Get scheduler statistics.

        Returns:
            Dictionary with running state, tick count, last tick time and
            lifetime totals per action
        """
        return {
            "running": self.is_running,
            "tick_count": self.tick_count,
            "last_tick": self.last_tick.isoformat() if self.last_tick else None,
            "promoted": self._promoted_total,
            "completed": self._completed_total,
            "failed": self._failed_total,
            "spawned": self._spawned_total,
            "errors": self._errors_total,
            "interval_s": [self.config.min_interval_s, self.config.max_interval_s],
        }

    def __repr__(self) -> str:
        return (f"JobScheduler(running={self.is_running}, "
                f"tick_count={self.tick_count})")
