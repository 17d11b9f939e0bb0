"""
Job Lifecycle Engine for the Quantum Job Dashboard.

This module owns every state change a job goes through, from submission to
its terminal state, and keeps the scheduling bookkeeping consistent:

- **Queue positions**: assigned once at creation (1 + jobs already queued on
  the same backend) and never renumbered for siblings afterwards
- **Timestamps**: ``start_time`` written on queued -> running, ``end_time`` on
  running -> done/failed, each at most once
- **Duration**: whole seconds between start and end, only when both exist
- **Errors**: kept only on failed jobs

Transitions are permissive: any (old, new) status pair is accepted. The
TRANSITION_EFFECTS table lists the pairs that carry side effects; every pair
missing from it changes the status and error fields only.

Example Usage:
-------------
```python
from quantum_dashboard.store.entity_store import EntityStore
from quantum_dashboard.scheduler.lifecycle import JobLifecycleEngine
from quantum_dashboard.store.models import JobStatus

store = EntityStore()
engine = JobLifecycleEngine(store)

job = engine.create_job(backend="ibm_cairo", qubits=5, shots=1024,
                        program="h q[0]; cx q[0],q[1];")
print(job.queue_position)  # 1

engine.transition_status(job.id, JobStatus.RUNNING)
done = engine.transition_status(job.id, JobStatus.DONE)
print(done.duration)
```
"""

from typing import Any, Callable, Dict, List, Optional, Tuple
from datetime import datetime
from enum import Enum
from uuid import uuid4
import logging
import math

from quantum_dashboard.store.entity_store import EntityStore
from quantum_dashboard.store.models import (
    Backend,
    BackendStatus,
    Job,
    JobStatus,
    Session,
    SessionStatus,
)


# Configure module logger
logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class TransitionEffect(Enum):
    """Side effect applied by a status transition besides setting the status."""
    NONE = "none"          # status and error only
    START = "start"        # set start_time (once), clear queue position
    FINISH = "finish"      # set end_time (once) and duration
    DEQUEUE = "dequeue"    # leave the queue without running: clear position
    REQUEUE = "requeue"    # back into the queue: assign a fresh position


TRANSITION_EFFECTS: Dict[Tuple[JobStatus, JobStatus], TransitionEffect] = {
    (JobStatus.QUEUED, JobStatus.RUNNING): TransitionEffect.START,
    (JobStatus.RUNNING, JobStatus.DONE): TransitionEffect.FINISH,
    (JobStatus.RUNNING, JobStatus.FAILED): TransitionEffect.FINISH,
    (JobStatus.QUEUED, JobStatus.DONE): TransitionEffect.DEQUEUE,
    (JobStatus.QUEUED, JobStatus.FAILED): TransitionEffect.DEQUEUE,
    (JobStatus.QUEUED, JobStatus.CANCELLED): TransitionEffect.DEQUEUE,
    (JobStatus.RUNNING, JobStatus.QUEUED): TransitionEffect.REQUEUE,
    (JobStatus.DONE, JobStatus.QUEUED): TransitionEffect.REQUEUE,
    (JobStatus.FAILED, JobStatus.QUEUED): TransitionEffect.REQUEUE,
    (JobStatus.CANCELLED, JobStatus.QUEUED): TransitionEffect.REQUEUE,
}


def transition_effect(old: JobStatus, new: JobStatus) -> TransitionEffect:
    """Look up the side effect of moving a job from ``old`` to ``new``."""
    return TRANSITION_EFFECTS.get((old, new), TransitionEffect.NONE)


def whole_seconds_between(start: datetime, end: datetime) -> int:
    """Floor of (end - start) in seconds, never negative."""
    return max(0, math.floor((end - start).total_seconds()))


def _short_id(prefix: str) -> str:
    return f"{prefix}_{uuid4().hex[:8]}"


class JobLifecycleEngine:
    """
    Create, transition, query and delete jobs on top of an EntityStore.

    Sessions and backends are managed here too, since their CRUD shares the
    same store and clock.

    Attributes:
        store (EntityStore): The store every operation reads and writes
        clock (Callable[[], datetime]): Source of "now" (default: datetime.now)

    Thread Safety:
        Each store collection serializes its own mutations; a single
        operation here may issue several of them and is not atomic as a
        whole. Run mutations from one event loop.
    """

    def __init__(self, store: EntityStore, clock: Optional[Clock] = None):
        self.store = store
        self.clock: Clock = clock or datetime.now

    # =========================================================================
    # JOB LIFECYCLE
    # =========================================================================

    def next_queue_position(self, backend: str) -> int:
        """1 + number of jobs currently queued on ``backend``."""
        queued = self.store.jobs.count(
            lambda job: job.backend == backend and job.status == JobStatus.QUEUED
        )
        return queued + 1

    def create_job(
        self,
        backend: str,
        qubits: int,
        shots: int,
        program: str,
        name: Optional[str] = None,
        tags: Optional[List[str]] = None,
        session_id: Optional[str] = None,
        status: JobStatus = JobStatus.QUEUED,
        results: Optional[Dict[str, Any]] = None,
    ) -> Job:
        """
        Submit a new job.

        Input shape (qubit/shot ranges, non-empty program) is validated at the
        HTTP boundary; the Job model re-checks the numeric ranges.

        Args:
            backend: Name of the backend the job targets
            qubits: Qubit count (1-1000)
            shots: Shot count (1-100000)
            program: Program text
            name: Optional display name
            tags: Optional list of tags
            session_id: Optional session reference
            status: Initial status (default: queued)
            results: Optional initial result payload

        Returns:
            The created Job
        """
        status = JobStatus(status)
        queue_position = (
            self.next_queue_position(backend) if status == JobStatus.QUEUED else None
        )

        job = Job(
            id=_short_id("job"),
            name=name,
            backend=backend,
            status=status,
            queue_position=queue_position,
            submission_time=self.clock(),
            qubits=qubits,
            shots=shots,
            program=program,
            results=results,
            tags=tags,
            session_id=session_id,
        )
        created = self.store.jobs.insert(job)

        if session_id is not None:
            self._touch_session(session_id)

        logger.info(
            f"Created job {created.id} on {backend} "
            f"(status={status.value}, queue_position={queue_position})"
        )
        return created

    def import_job(self, job: Job) -> Job:
        """
        Insert a job built elsewhere (demo data, provider sync).

        Timestamps are kept as given. A queued job gets its queue position
        from the same rule as ``create_job``; any other status has none.
        """
        queue_position = (
            self.next_queue_position(job.backend)
            if job.status == JobStatus.QUEUED else None
        )
        imported = self.store.jobs.insert(
            job.model_copy(update={"queue_position": queue_position})
        )
        logger.debug(f"Imported job {imported.id} ({imported.status.value})")
        return imported

    def transition_status(
        self,
        job_id: str,
        new_status: JobStatus,
        error: Optional[str] = None,
    ) -> Optional[Job]:
        """
        Move a job to ``new_status``.

        The side effect comes from TRANSITION_EFFECTS. The error field is
        always rewritten: it keeps ``error`` when the new status is failed
        and is cleared otherwise.

        Args:
            job_id: Job identifier
            new_status: Target status
            error: Failure message (kept only for failed)

        Returns:
            The updated Job, or None if ``job_id`` is unknown
        """
        job = self.store.jobs.get(job_id)
        if job is None:
            return None

        new_status = JobStatus(new_status)
        now = self.clock()
        effect = transition_effect(job.status, new_status)

        updates: Dict[str, Any] = {
            "status": new_status,
            "error": error if new_status == JobStatus.FAILED else None,
        }

        if effect is TransitionEffect.START:
            updates["queue_position"] = None
            if job.start_time is None:
                updates["start_time"] = now

        elif effect is TransitionEffect.FINISH:
            if job.end_time is None:
                updates["end_time"] = now
                if job.start_time is not None:
                    updates["duration"] = whole_seconds_between(job.start_time, now)
                else:
                    # Permissive: accepted, but no duration can be derived
                    logger.warning(
                        f"Job {job_id} finished as {new_status.value} without a "
                        f"start time; duration left unset"
                    )

        elif effect is TransitionEffect.DEQUEUE:
            updates["queue_position"] = None

        elif effect is TransitionEffect.REQUEUE:
            updates["queue_position"] = self.next_queue_position(job.backend)

        updated = self.store.jobs.update(job_id, **updates)
        logger.debug(
            f"Job {job_id}: {job.status.value} -> {new_status.value} "
            f"(effect={effect.value})"
        )
        return updated

    def record_results(self, job_id: str, results: Dict[str, Any]) -> Optional[Job]:
        """Attach a result payload to a job. Returns None if unknown."""
        return self.store.jobs.update(job_id, results=results)

    def delete_job(self, job_id: str) -> bool:
        """Remove a job. True only if it existed."""
        deleted = self.store.jobs.delete(job_id)
        if deleted:
            logger.info(f"Deleted job {job_id}")
        return deleted

    # =========================================================================
    # JOB QUERIES
    # =========================================================================

    def get_job(self, job_id: str) -> Optional[Job]:
        return self.store.jobs.get(job_id)

    def list_jobs(self, limit: Optional[int] = None, offset: int = 0) -> List[Job]:
        """Jobs ordered newest submission first."""
        jobs = sorted(
            self.store.jobs.get_all(),
            key=lambda job: job.submission_time,
            reverse=True,
        )
        if limit is None:
            return jobs[offset:]
        return jobs[offset:offset + limit]

    def paginate(self, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        """
        One page of jobs, newest first.

        Returns:
            {'jobs': [...], 'pagination': {'currentPage', 'totalPages',
            'totalJobs', 'limit'}}
        """
        if page < 1:
            raise ValueError(f"page must be >= 1, got {page}")
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit}")

        jobs = self.list_jobs()
        total = len(jobs)
        offset = (page - 1) * limit
        return {
            "jobs": jobs[offset:offset + limit],
            "pagination": {
                "currentPage": page,
                "totalPages": math.ceil(total / limit),
                "totalJobs": total,
                "limit": limit,
            },
        }

    def search_jobs(self, query: str) -> List[Job]:
        """Case-insensitive substring match over id, backend, status, name and tags."""
        term = query.lower()

        def matches(job: Job) -> bool:
            if term in job.id.lower() or term in job.backend.lower():
                return True
            if term in job.status.value:
                return True
            if job.name and term in job.name.lower():
                return True
            return any(term in tag.lower() for tag in job.tags or [])

        return self.store.jobs.filter(matches)

    def jobs_by_status(self, status: JobStatus) -> List[Job]:
        status = JobStatus(status)
        return self.store.jobs.filter(lambda job: job.status == status)

    def jobs_by_backend(self, backend: str) -> List[Job]:
        return self.store.jobs.filter(lambda job: job.backend == backend)

    # =========================================================================
    # BACKENDS
    # =========================================================================

    def list_backends(self) -> List[Backend]:
        return sorted(self.store.backends.get_all(), key=lambda b: b.name)

    def get_backend(self, name: str) -> Optional[Backend]:
        return self.store.backends.get(name)

    def create_backend(
        self,
        name: str,
        qubits: int,
        status: BackendStatus = BackendStatus.AVAILABLE,
        average_wait_time: Optional[int] = None,
        uptime: Optional[str] = None,
    ) -> Backend:
        """
        Register a backend. Its queue length starts at 0 and is owned by the
        scheduler from then on.

        Raises:
            DuplicateKeyError: If a backend with this name exists
        """
        backend = Backend(
            id=name,
            name=name,
            status=BackendStatus(status),
            qubits=qubits,
            queue_length=0,
            average_wait_time=average_wait_time,
            uptime=uptime,
            last_update=self.clock(),
        )
        created = self.store.backends.insert(backend)
        logger.info(f"Registered backend {name} ({qubits} qubits)")
        return created

    def update_backend(self, name: str, **fields: Any) -> Optional[Backend]:
        """
        Update backend attributes. ``queue_length``, ``id`` and ``name`` are
        ignored, as is any field given as None; ``last_update`` is refreshed.

        Raises:
            InvalidEntityError: If a value breaks the Backend model
        """
        for protected in ("queue_length", "id", "name", "last_update"):
            fields.pop(protected, None)
        fields = {key: value for key, value in fields.items() if value is not None}
        return self.store.backends.update(name, last_update=self.clock(), **fields)

    # =========================================================================
    # SESSIONS
    # =========================================================================

    def list_sessions(self) -> List[Session]:
        """Sessions with the most recent activity first."""
        return sorted(
            self.store.sessions.get_all(),
            key=lambda session: session.last_activity,
            reverse=True,
        )

    def get_session(self, session_id: str) -> Optional[Session]:
        return self.store.sessions.get(session_id)

    def create_session(
        self,
        name: str,
        status: SessionStatus = SessionStatus.ACTIVE,
    ) -> Session:
        now = self.clock()
        session = Session(
            id=_short_id("session"),
            name=name,
            status=SessionStatus(status),
            created_at=now,
            last_activity=now,
            job_count=0,
        )
        created = self.store.sessions.insert(session)
        logger.info(f"Created session {created.id} ({name})")
        return created

    def update_session(self, session_id: str, **fields: Any) -> Optional[Session]:
        fields.pop("id", None)
        return self.store.sessions.update(session_id, **fields)

    def delete_session(self, session_id: str) -> bool:
        return self.store.sessions.delete(session_id)

    def _touch_session(self, session_id: str) -> None:
        """Best-effort job counter; unknown sessions are ignored."""
        session = self.store.sessions.get(session_id)
        if session is None:
            logger.debug(f"Job references unknown session {session_id}")
            return
        self.store.sessions.update(
            session_id,
            job_count=session.job_count + 1,
            last_activity=self.clock(),
        )
