"""
Offline Scheduler Simulation for the Quantum Job Dashboard.

Runs the simulated scheduler for a fixed number of ticks against a fresh,
seeded in-memory store, with a simulated clock that advances by each drawn
tick interval. No server or event loop is involved, so a run with a given
seed is fully reproducible.

Purpose:
--------
- Watch how the job population evolves under a given set of probabilities
- Check the job bookkeeping rules after a long run
- Produce a quick analytics snapshot without starting the API

Checks performed after the run:
-------------------------------
1. Queued jobs carry a queue position, every other job has none
2. Started jobs have start_time >= submission_time
3. Finished jobs have end_time >= start_time and a non-negative duration
4. Only failed jobs carry an error message
5. Each backend's queue length equals its number of queued jobs

Usage:
------
    # 200 ticks with the default probabilities
    python scripts/simulate_scheduler.py

    # Reproducible run with more demo data and a busier queue
    python scripts/simulate_scheduler.py --ticks 500 --seed 7 --seed-jobs 40 --spawn 0.5

    # Dump the final job list as JSON
    python scripts/simulate_scheduler.py --export json > jobs.json
"""

import sys
import argparse
import logging
from pathlib import Path
from datetime import datetime, timedelta
from typing import Any, Dict, List

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import numpy as np

from quantum_dashboard.config import SchedulerConfig
from quantum_dashboard.monitoring.analytics import AnalyticsAggregator
from quantum_dashboard.scheduler.lifecycle import JobLifecycleEngine
from quantum_dashboard.scheduler.simulator import JobScheduler
from quantum_dashboard.scheduler.synthetic import demo_jobs
from quantum_dashboard.store.entity_store import EntityStore
from quantum_dashboard.store.models import JobStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration
# =============================================================================

DEFAULT_TICKS = 200
DEFAULT_SEED = 42
START_TIME = datetime(2025, 1, 6, 9, 0, 0)


# =============================================================================
# Simulation
# =============================================================================

class SimulatedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def build_simulation(config: SchedulerConfig, start: datetime = START_TIME):
    """
    Build a seeded store, engine, scheduler and analytics aggregator.

    Returns:
        Tuple of (clock, engine, scheduler, analytics)
    """
    clock = SimulatedClock(start)
    rng = np.random.default_rng(config.seed)

    store = EntityStore()
    store.seed_defaults(clock())
    engine = JobLifecycleEngine(store, clock=clock)

    for job in demo_jobs(
        rng,
        engine.list_backends(),
        config.seed_jobs,
        clock(),
        days=config.history_days,
    ):
        engine.import_job(job)

    scheduler = JobScheduler(engine, rng=rng, config=config, clock=clock)
    scheduler.reconcile_backends()
    return clock, engine, scheduler, AnalyticsAggregator(engine)


def run_simulation(scheduler: JobScheduler, clock: SimulatedClock, ticks: int) -> int:
    """
    Run ``ticks`` scheduler ticks, advancing the clock between them.

    Returns:
        Total number of per-action errors reported by the ticks
    """
    errors = 0
    for i in range(ticks):
        clock.advance(scheduler.next_interval())
        report = scheduler.tick()
        errors += report.errors
        if report.errors:
            logger.warning(f"Tick {i + 1} reported {report.errors} error(s)")
    return errors


def check_invariants(engine: JobLifecycleEngine) -> List[str]:
    """Return a description of every broken bookkeeping rule (empty if none)."""
    problems: List[str] = []

    for job in engine.list_jobs():
        queued = job.status == JobStatus.QUEUED
        if queued and job.queue_position is None:
            problems.append(f"{job.id}: queued without a queue position")
        if not queued and job.queue_position is not None:
            problems.append(f"{job.id}: {job.status.value} with queue position {job.queue_position}")

        if job.start_time is not None and job.start_time < job.submission_time:
            problems.append(f"{job.id}: started before submission")
        if job.end_time is not None and job.start_time is not None and job.end_time < job.start_time:
            problems.append(f"{job.id}: ended before start")
        if job.duration is not None and job.duration < 0:
            problems.append(f"{job.id}: negative duration {job.duration}")

        if job.error is not None and job.status != JobStatus.FAILED:
            problems.append(f"{job.id}: error message on a {job.status.value} job")
        if job.status == JobStatus.FAILED and not job.error:
            problems.append(f"{job.id}: failed without an error message")

    for backend in engine.list_backends():
        queued = len([
            j for j in engine.jobs_by_backend(backend.name)
            if j.status == JobStatus.QUEUED
        ])
        if backend.queue_length != queued:
            problems.append(
                f"{backend.name}: queue_length {backend.queue_length} != {queued} queued jobs"
            )

    return problems


def print_summary(
    scheduler: JobScheduler,
    analytics: AnalyticsAggregator,
    problems: List[str],
    elapsed: timedelta,
) -> None:
    """Print statistics, analytics and invariant results."""
    stats: Dict[str, Any] = scheduler.get_statistics()

    print("=" * 80)
    print("SCHEDULER SIMULATION SUMMARY")
    print("=" * 80)
    print(f"Simulated time:  {elapsed}")
    print(f"Ticks:           {stats['tick_count']}")
    print(f"Promoted:        {stats['promoted']}")
    print(f"Completed:       {stats['completed']}")
    print(f"Failed:          {stats['failed']}")
    print(f"Spawned:         {stats['spawned']}")
    print(f"Errors:          {stats['errors']}")
    print()

    job_stats = analytics.get_job_stats()
    print(f"Total jobs:      {job_stats['totalJobs']}")
    print(f"Running:         {job_stats['runningJobs']}")
    print(f"Queued:          {job_stats['queuedJobs']}")
    print(f"Success rate:    {job_stats['successRate']}%")
    print()

    print("Status breakdown:")
    for status, count in analytics.get_status_breakdown().items():
        print(f"  {status:<10} {count}")
    print()

    durations = analytics.get_duration_stats()
    print(
        f"Durations (s):   mean={durations['mean']:.1f} "
        f"p50={durations['p50']:.1f} p95={durations['p95']:.1f} "
        f"max={durations['max']:.1f}"
    )
    print()

    if problems:
        print(f"✗ {len(problems)} invariant violation(s):")
        for problem in problems:
            print(f"  - {problem}")
    else:
        print("✓ All invariants hold")
    print("=" * 80)


# =============================================================================
# Main
# =============================================================================

def main():
    """
    Main entry point for the simulation script.

    Exits with status 1 when any invariant is violated.
    """
    parser = argparse.ArgumentParser(
        description='Run the simulated job scheduler offline',
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    parser.add_argument('--ticks', type=int, default=DEFAULT_TICKS, help='Number of ticks to run')
    parser.add_argument('--seed', type=int, default=DEFAULT_SEED, help='Random seed')
    parser.add_argument('--seed-jobs', type=int, default=15, help='Demo jobs inserted before the run')
    parser.add_argument('--promote', type=float, default=0.4, help='Promotion probability per tick')
    parser.add_argument('--resolve', type=float, default=0.3, help='Resolution probability per tick')
    parser.add_argument('--success', type=float, default=0.85, help='Probability a resolution succeeds')
    parser.add_argument('--spawn', type=float, default=0.2, help='Spawn probability per tick')
    parser.add_argument(
        '--export',
        choices=['csv', 'json'],
        help='Print the final job list in this format instead of the summary'
    )
    parser.add_argument(
        '--log-level',
        default='WARNING',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging level'
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    config = SchedulerConfig(
        enabled=False,
        seed=args.seed,
        seed_jobs=args.seed_jobs,
        promote_probability=args.promote,
        resolve_probability=args.resolve,
        success_probability=args.success,
        spawn_probability=args.spawn,
    )

    clock, engine, scheduler, analytics = build_simulation(config)
    logger.info(f"Starting simulation: {args.ticks} ticks, seed={args.seed}")
    run_simulation(scheduler, clock, args.ticks)
    problems = check_invariants(engine)

    if args.export:
        print(analytics.export(args.export))
    else:
        print_summary(scheduler, analytics, problems, clock() - START_TIME)

    if problems:
        sys.exit(1)


if __name__ == '__main__':
    main()
