"""
Analytics Aggregator for the Quantum Job Dashboard.

Read-only summaries computed from a snapshot of the job store on every call:

1. **Job Stats**: totals, active counts and the success rate
2. **Trends**: jobs submitted per calendar day over a trailing window
3. **Breakdowns**: counts per status and per backend
4. **Duration Statistics**: mean, median, spread and percentiles of run times
5. **Export**: CSV and JSON dumps of every job, newest first

Every method is a pure function of the store contents and the injected clock,
so a fixed clock and a fixed job set always produce the same output.

Example Usage:
-------------
```python
from quantum_dashboard.monitoring.analytics import AnalyticsAggregator

analytics = AnalyticsAggregator(engine)

stats = analytics.get_job_stats()
print(f"Success rate: {stats['successRate']}%")

for day in analytics.get_job_trends(days=7):
    print(day['label'], day['count'])

csv_text = analytics.export_csv()
```
"""

from typing import Any, Callable, Dict, List, Optional
from datetime import date, datetime, timedelta
import csv
import io
import json
import logging
import statistics

from quantum_dashboard.scheduler.lifecycle import JobLifecycleEngine
from quantum_dashboard.store.models import Job, JobStatus


# Configure module logger
logger = logging.getLogger(__name__)

CSV_HEADER = ["Job ID", "Backend", "Status", "Submitted", "Duration"]

EXPORT_FORMATS = ("csv", "json")


class ExportError(Exception):
    """Raised when an export is requested in an unsupported format."""
    pass


def success_rate(done: int, failed: int) -> float:
    """
    Percentage of resolved jobs that ended in done, one decimal place.

    Defined as 0 when nothing has resolved yet.
    """
    resolved = done + failed
    if resolved == 0:
        return 0
    return round(100.0 * done / resolved, 1)


def percentile(data: List[float], p: float) -> float:
    """Linear-interpolated percentile of already sorted ``data``."""
    if not data:
        return 0.0
    k = (len(data) - 1) * (p / 100.0)
    f = int(k)
    c = f + 1 if f < len(data) - 1 else f
    d0 = data[f]
    d1 = data[c]
    return d0 + (d1 - d0) * (k - f)


def _local_date(moment: datetime) -> date:
    if moment.tzinfo is not None:
        moment = moment.astimezone()
    return moment.date()


class AnalyticsAggregator:
    """
    Aggregate statistics over the jobs held by a lifecycle engine's store.

    Attributes:
        engine (JobLifecycleEngine): Source of job and backend snapshots
        clock (Callable[[], datetime]): Source of "now" for trend windows
    """

    def __init__(
        self,
        engine: JobLifecycleEngine,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.engine = engine
        self.clock = clock or engine.clock

    # =========================================================================
    # SUMMARY STATISTICS
    # =========================================================================

    def get_job_stats(self) -> Dict[str, Any]:
        """
        Headline numbers for the dashboard cards.

        Returns:
            {'totalJobs', 'runningJobs', 'queuedJobs', 'successRate'}
        """
        counts = self.get_status_breakdown()
        return {
            "totalJobs": sum(counts.values()),
            "runningJobs": counts[JobStatus.RUNNING.value],
            "queuedJobs": counts[JobStatus.QUEUED.value],
            "successRate": success_rate(
                counts[JobStatus.DONE.value], counts[JobStatus.FAILED.value]
            ),
        }

    def get_job_trends(self, days: int = 7) -> List[Dict[str, Any]]:
        """
        Jobs submitted per local calendar day, oldest day first, today last.

        Args:
            days: Number of days in the window, including today

        Returns:
            [{'date': 'YYYY-MM-DD', 'count': int, 'label': 'Mon'}, ...]

        Raises:
            ValueError: If days < 1
        """
        if days < 1:
            raise ValueError(f"days must be >= 1, got {days}")

        today = _local_date(self.clock())
        window = [today - timedelta(days=offset) for offset in range(days - 1, -1, -1)]

        per_day: Dict[date, int] = {day: 0 for day in window}
        for job in self.engine.store.jobs.get_all():
            day = _local_date(job.submission_time)
            if day in per_day:
                per_day[day] += 1

        return [
            {
                "date": day.isoformat(),
                "count": per_day[day],
                "label": day.strftime("%a"),
            }
            for day in window
        ]

    def get_status_breakdown(self) -> Dict[str, int]:
        """Number of jobs in each status; every status is present."""
        counts = {status.value: 0 for status in JobStatus}
        for job in self.engine.store.jobs.get_all():
            counts[job.status.value] += 1
        return counts

    def get_backend_breakdown(self) -> List[Dict[str, Any]]:
        """
        Per-backend job counts and success rate.

        Backends that only appear on jobs (not registered in the store) are
        included too, so no job goes uncounted.
        """
        rows: Dict[str, Dict[str, Any]] = {}

        def row(name: str) -> Dict[str, Any]:
            if name not in rows:
                rows[name] = {
                    "backend": name,
                    "total": 0,
                    "queued": 0,
                    "running": 0,
                    "done": 0,
                    "failed": 0,
                    "cancelled": 0,
                }
            return rows[name]

        for backend in self.engine.list_backends():
            row(backend.name)

        for job in self.engine.store.jobs.get_all():
            entry = row(job.backend)
            entry["total"] += 1
            entry[job.status.value] += 1

        result = []
        for name in sorted(rows):
            entry = rows[name]
            entry["successRate"] = success_rate(entry["done"], entry["failed"])
            result.append(entry)
        return result

    def get_duration_stats(self) -> Dict[str, Any]:
        """
        Distribution of run durations (seconds) over finished jobs.

        Returns:
            {'count', 'mean', 'median', 'std_dev', 'min', 'max',
            'p50', 'p90', 'p95', 'p99'}; all zeros when no job has a duration
        """
        values = [
            float(job.duration)
            for job in self.engine.store.jobs.get_all()
            if job.duration is not None
        ]

        if not values:
            return {
                "count": 0,
                "mean": 0.0,
                "median": 0.0,
                "std_dev": 0.0,
                "min": 0.0,
                "max": 0.0,
                "p50": 0.0,
                "p90": 0.0,
                "p95": 0.0,
                "p99": 0.0,
            }

        sorted_values = sorted(values)
        stats = {
            "count": len(values),
            "mean": statistics.mean(values),
            "median": statistics.median(values),
            # Standard deviation needs at least 2 points
            "std_dev": statistics.stdev(values) if len(values) >= 2 else 0.0,
            "min": sorted_values[0],
            "max": sorted_values[-1],
            "p50": percentile(sorted_values, 50),
            "p90": percentile(sorted_values, 90),
            "p95": percentile(sorted_values, 95),
            "p99": percentile(sorted_values, 99),
        }

        logger.debug(f"Duration stats: count={stats['count']}, mean={stats['mean']:.2f}")
        return stats

    # =========================================================================
    # EXPORT METHODS
    # =========================================================================

    def export(self, format: str = "csv") -> str:
        """
        Dump every job in ``format``.

        Raises:
            ExportError: If the format is not 'csv' or 'json'
        """
        if format not in EXPORT_FORMATS:
            raise ExportError(f"Invalid format: {format}. Must be 'csv' or 'json'")
        if format == "csv":
            return self.export_csv()
        return self.export_json()

    def export_csv(self) -> str:
        """Jobs as CSV, newest first. A missing duration is written as 0."""
        jobs = self.engine.list_jobs()

        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(CSV_HEADER)
        for job in jobs:
            writer.writerow([
                job.id,
                job.backend,
                job.status.value,
                job.submission_time.isoformat(),
                job.duration if job.duration is not None else 0,
            ])

        logger.info(f"Exported {len(jobs)} jobs to CSV")
        return buffer.getvalue()

    def export_records(self) -> List[Dict[str, Any]]:
        """Jobs as JSON-ready dictionaries with camelCase keys, newest first."""
        return [_job_document(job) for job in self.engine.list_jobs()]

    def export_json(self) -> str:
        records = self.export_records()
        logger.info(f"Exported {len(records)} jobs to JSON")
        return json.dumps(records, indent=2)

    def __repr__(self) -> str:
        return f"AnalyticsAggregator(jobs={len(self.engine.store.jobs)})"


def _job_document(job: Job) -> Dict[str, Any]:
    return job.model_dump(mode="json", by_alias=True)
