"""
Entity models for the Quantum Job Dashboard.

Three entity kinds live in the store:

- Job: one submitted quantum computation and its scheduling bookkeeping
- Backend: a named quantum processor jobs are scheduled against
- Session: a lightweight grouping label for jobs

Models serialize with camelCase keys (``queuePosition``, ``submissionTime``)
because that is the JSON shape the dashboard UI consumes. Python code uses
the snake_case attribute names.
"""

from typing import Any, Dict, List, Optional
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class JobStatus(str, Enum):
    """Job lifecycle status."""
    QUEUED = "queued"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


class BackendStatus(str, Enum):
    """Quantum backend availability."""
    AVAILABLE = "available"
    BUSY = "busy"
    MAINTENANCE = "maintenance"
    OFFLINE = "offline"


class SessionStatus(str, Enum):
    """Session state."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    EXPIRED = "expired"


# Statuses a job can only reach by leaving the running state
TERMINAL_STATUSES = (JobStatus.DONE, JobStatus.FAILED)


class EntityModel(BaseModel):
    """Base class giving every entity camelCase JSON and snake_case attributes."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=False,
    )


class Job(EntityModel):
    """
    One submitted quantum computation.

    Scheduling fields follow the lifecycle invariants:
    ``queue_position`` is set only while queued, ``start_time`` and
    ``end_time`` are written at most once, and ``duration`` (whole seconds)
    is present exactly when ``end_time`` was derived from a start time.
    """

    id: str
    name: Optional[str] = None
    backend: str
    status: JobStatus = JobStatus.QUEUED
    queue_position: Optional[int] = None
    submission_time: datetime
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration: Optional[int] = None
    qubits: int = Field(..., ge=1, le=1000)
    shots: int = Field(..., ge=1, le=100000)
    program: Optional[str] = None
    results: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    tags: Optional[List[str]] = None
    session_id: Optional[str] = None


class Backend(EntityModel):
    """
    A quantum processing resource.

    ``queue_length`` is owned by the scheduler's reconciliation step and is
    not settable through the public update operations.
    """

    id: str
    name: str
    status: BackendStatus = BackendStatus.AVAILABLE
    qubits: int = Field(..., ge=1)
    queue_length: int = Field(default=0, ge=0)
    average_wait_time: Optional[int] = Field(default=None, ge=0)
    uptime: Optional[str] = None
    last_update: Optional[datetime] = None


class Session(EntityModel):
    """A logical grouping label for jobs. ``job_count`` is informational only."""

    id: str
    name: str
    status: SessionStatus = SessionStatus.ACTIVE
    created_at: datetime
    last_activity: datetime
    job_count: int = Field(default=0, ge=0)
