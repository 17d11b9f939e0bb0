"""
Unit tests for the job lifecycle engine.
"""

import pytest
from datetime import datetime, timedelta

from quantum_dashboard.store.entity_store import DuplicateKeyError, EntityStore, InvalidEntityError
from quantum_dashboard.store.models import BackendStatus, Job, JobStatus, SessionStatus
from quantum_dashboard.scheduler.lifecycle import (
    JobLifecycleEngine,
    TransitionEffect,
    transition_effect,
    whole_seconds_between,
)


T0 = datetime(2025, 3, 14, 12, 0, 0)


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start=T0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


def submit(engine, backend="ibm_cairo", **overrides):
    fields = dict(backend=backend, qubits=5, shots=1024, program="h q[0];\ncx q[0],q[1];")
    fields.update(overrides)
    return engine.create_job(**fields)


class TestTransitionTable:
    """Test the (old, new) -> side effect table."""

    def test_effects_success(self):
        assert transition_effect(JobStatus.QUEUED, JobStatus.RUNNING) is TransitionEffect.START
        assert transition_effect(JobStatus.RUNNING, JobStatus.DONE) is TransitionEffect.FINISH
        assert transition_effect(JobStatus.RUNNING, JobStatus.FAILED) is TransitionEffect.FINISH
        assert transition_effect(JobStatus.QUEUED, JobStatus.CANCELLED) is TransitionEffect.DEQUEUE
        assert transition_effect(JobStatus.DONE, JobStatus.QUEUED) is TransitionEffect.REQUEUE

    def test_unlisted_pairs_have_no_effect_success(self):
        assert transition_effect(JobStatus.RUNNING, JobStatus.CANCELLED) is TransitionEffect.NONE
        assert transition_effect(JobStatus.DONE, JobStatus.FAILED) is TransitionEffect.NONE
        assert transition_effect(JobStatus.QUEUED, JobStatus.QUEUED) is TransitionEffect.NONE

    def test_whole_seconds_between_success(self):
        assert whole_seconds_between(T0, T0 + timedelta(seconds=42, milliseconds=999)) == 42
        assert whole_seconds_between(T0, T0 - timedelta(seconds=5)) == 0


class TestJobLifecycleEngine:
    """Test job creation, transitions and deletion."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def engine(self, clock):
        store = EntityStore()
        store.seed_defaults(T0)
        return JobLifecycleEngine(store, clock=clock)

    def test_create_job_success(self, engine):
        job = submit(engine, name="Bell State", tags=["research"])

        assert job.id.startswith("job_")
        assert len(job.id) == len("job_") + 8
        assert job.status == JobStatus.QUEUED
        assert job.queue_position == 1
        assert job.submission_time == T0
        assert job.start_time is None
        assert job.end_time is None
        assert job.duration is None
        assert job.error is None
        assert engine.get_job(job.id) == job

    def test_queue_positions_follow_creation_order_success(self, engine):
        jobs = [submit(engine) for _ in range(5)]
        other = submit(engine, backend="ibm_osaka")

        assert [j.queue_position for j in jobs] == [1, 2, 3, 4, 5]
        assert other.queue_position == 1

    def test_create_job_in_non_queued_status_success(self, engine):
        job = submit(engine, status=JobStatus.DONE)

        assert job.status == JobStatus.DONE
        assert job.queue_position is None

    def test_create_job_touches_session_success(self, engine, clock):
        clock.advance(minutes=5)
        submit(engine, session_id="session_2")

        session = engine.get_session("session_2")
        assert session.job_count == 1
        assert session.last_activity == clock.now

    def test_create_job_unknown_session_success(self, engine):
        """Test that an unknown session reference is accepted."""
        job = submit(engine, session_id="session_missing")
        assert job.session_id == "session_missing"

    def test_full_lifecycle_scenario_success(self, engine, clock):
        job = submit(engine, qubits=5, shots=1024)
        assert job.queue_position == 1

        started_at = clock.advance(seconds=3)
        running = engine.transition_status(job.id, JobStatus.RUNNING)
        assert running.status == JobStatus.RUNNING
        assert running.queue_position is None
        assert running.start_time == started_at

        finished_at = clock.advance(seconds=90, milliseconds=700)
        done = engine.transition_status(job.id, JobStatus.DONE)
        assert done.status == JobStatus.DONE
        assert done.end_time == finished_at
        assert done.duration == 90
        assert done.error is None

    def test_failed_transition_keeps_error_success(self, engine, clock):
        job = submit(engine)
        engine.transition_status(job.id, JobStatus.RUNNING)
        clock.advance(seconds=12)

        failed = engine.transition_status(job.id, JobStatus.FAILED, "Qubit readout error")

        assert failed.status == JobStatus.FAILED
        assert failed.error == "Qubit readout error"
        assert failed.duration == 12

    def test_error_cleared_for_non_failed_status_success(self, engine):
        job = submit(engine)
        engine.transition_status(job.id, JobStatus.RUNNING)
        engine.transition_status(job.id, JobStatus.FAILED, "boom")

        requeued = engine.transition_status(job.id, JobStatus.QUEUED, "ignored")

        assert requeued.error is None

    def test_start_time_set_once_success(self, engine, clock):
        job = submit(engine)
        first = engine.transition_status(job.id, JobStatus.RUNNING).start_time

        clock.advance(minutes=1)
        engine.transition_status(job.id, JobStatus.QUEUED)
        clock.advance(minutes=1)
        again = engine.transition_status(job.id, JobStatus.RUNNING)

        assert again.start_time == first

    def test_requeue_assigns_new_position_success(self, engine):
        a = submit(engine)
        b = submit(engine)
        engine.transition_status(a.id, JobStatus.RUNNING)

        requeued = engine.transition_status(a.id, JobStatus.QUEUED)

        # Only b is still queued, so a goes behind it
        assert requeued.queue_position == 2
        assert engine.get_job(b.id).queue_position == 2

    def test_dequeue_clears_position_success(self, engine):
        job = submit(engine)
        cancelled = engine.transition_status(job.id, JobStatus.CANCELLED)

        assert cancelled.queue_position is None
        assert cancelled.start_time is None
        assert cancelled.end_time is None

    def test_done_without_start_time_failure(self, engine, caplog):
        """Test the permissive queued->running->done bypass leaves duration unset."""
        job = submit(engine, status=JobStatus.RUNNING)

        with caplog.at_level("WARNING"):
            done = engine.transition_status(job.id, JobStatus.DONE)

        assert done.status == JobStatus.DONE
        assert done.end_time is not None
        assert done.duration is None
        assert "without a start time" in caplog.text

    def test_siblings_not_renumbered_after_delete_success(self, engine):
        a = submit(engine)
        b = submit(engine)
        c = submit(engine)
        assert [a.queue_position, b.queue_position, c.queue_position] == [1, 2, 3]

        assert engine.delete_job(b.id) is True

        assert engine.get_job(c.id).queue_position == 3

    def test_transition_unknown_job_failure(self, engine):
        assert engine.transition_status("job_missing", JobStatus.RUNNING) is None

    def test_delete_job_failure(self, engine):
        assert engine.delete_job("job_missing") is False
        assert engine.delete_job("job_missing") is False

    def test_import_job_assigns_position_success(self, engine):
        submit(engine)
        imported = engine.import_job(Job(
            id="job_imported",
            backend="ibm_cairo",
            submission_time=T0 - timedelta(days=1),
            qubits=2,
            shots=10,
            queue_position=99,
        ))
        assert imported.queue_position == 2
        assert imported.submission_time == T0 - timedelta(days=1)

    def test_import_job_duplicate_failure(self, engine):
        job = submit(engine)
        with pytest.raises(DuplicateKeyError):
            engine.import_job(job)

    def test_record_results_success(self, engine):
        job = submit(engine)
        updated = engine.record_results(job.id, {"counts": {"00": 10}})
        assert updated.results == {"counts": {"00": 10}}
        assert engine.record_results("job_missing", {}) is None


class TestJobQueries:
    """Test listing, pagination and search."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def engine(self, clock):
        engine = JobLifecycleEngine(EntityStore(), clock=clock)
        for i in range(23):
            clock.advance(minutes=1)
            submit(
                engine,
                backend="ibm_osaka" if i % 2 else "ibm_cairo",
                name=f"Grover Search {i}" if i % 5 == 0 else "Bell State",
                tags=["chemistry"] if i == 7 else None,
            )
        return engine

    def test_list_jobs_newest_first_success(self, engine):
        jobs = engine.list_jobs()
        times = [j.submission_time for j in jobs]
        assert times == sorted(times, reverse=True)
        assert len(engine.list_jobs(limit=5, offset=20)) == 3

    def test_paginate_success(self, engine):
        page = engine.paginate(page=3, limit=10)

        assert page["pagination"] == {
            "currentPage": 3,
            "totalPages": 3,
            "totalJobs": 23,
            "limit": 10,
        }
        assert len(page["jobs"]) == 3

    def test_paginate_past_end_success(self, engine):
        page = engine.paginate(page=10, limit=10)
        assert page["jobs"] == []
        assert page["pagination"]["totalPages"] == 3

    def test_paginate_invalid_failure(self, engine):
        with pytest.raises(ValueError):
            engine.paginate(page=0, limit=10)
        with pytest.raises(ValueError):
            engine.paginate(page=1, limit=0)

    def test_search_jobs_success(self, engine):
        assert len(engine.search_jobs("GROVER")) == 5
        assert len(engine.search_jobs("osaka")) == 11
        assert len(engine.search_jobs("chem")) == 1
        assert len(engine.search_jobs("queued")) == 23

    def test_search_jobs_by_id_success(self, engine):
        job = engine.list_jobs()[0]
        assert [j.id for j in engine.search_jobs(job.id.upper())] == [job.id]

    def test_search_jobs_no_match_failure(self, engine):
        assert engine.search_jobs("nonexistent-term") == []

    def test_jobs_by_status_and_backend_success(self, engine):
        job = engine.list_jobs()[0]
        engine.transition_status(job.id, JobStatus.RUNNING)

        assert [j.id for j in engine.jobs_by_status(JobStatus.RUNNING)] == [job.id]
        assert len(engine.jobs_by_status("queued")) == 22
        assert len(engine.jobs_by_backend("ibm_cairo")) == 12


class TestBackendsAndSessions:
    """Test backend and session management."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def engine(self, clock):
        store = EntityStore()
        store.seed_defaults(T0)
        return JobLifecycleEngine(store, clock=clock)

    def test_list_backends_sorted_success(self, engine):
        assert [b.name for b in engine.list_backends()] == ["ibm_cairo", "ibm_kyoto", "ibm_osaka"]

    def test_create_backend_success(self, engine):
        backend = engine.create_backend("ibm_sherbrooke", qubits=133, uptime="99.5%")

        assert backend.id == "ibm_sherbrooke"
        assert backend.queue_length == 0
        assert backend.last_update == T0
        assert engine.get_backend("ibm_sherbrooke") is not None

    def test_create_backend_duplicate_failure(self, engine):
        with pytest.raises(DuplicateKeyError):
            engine.create_backend("ibm_cairo", qubits=127)

    def test_update_backend_ignores_queue_length_success(self, engine, clock):
        clock.advance(minutes=3)
        updated = engine.update_backend(
            "ibm_kyoto", status="available", queue_length=42, name="renamed"
        )

        assert updated.status == BackendStatus.AVAILABLE
        assert updated.queue_length == 0
        assert updated.name == "ibm_kyoto"
        assert updated.last_update == clock.now

    def test_update_backend_ignores_null_fields_success(self, engine):
        updated = engine.update_backend("ibm_kyoto", qubits=None, status=None, uptime="95%")

        assert updated.qubits == 127
        assert updated.status is not None
        assert updated.uptime == "95%"

    def test_update_backend_invalid_value_failure(self, engine):
        with pytest.raises(InvalidEntityError):
            engine.update_backend("ibm_kyoto", qubits=0)
        with pytest.raises(InvalidEntityError):
            engine.update_backend("ibm_kyoto", status="melted")
        assert engine.get_backend("ibm_kyoto").qubits == 127

    def test_update_backend_missing_failure(self, engine):
        assert engine.update_backend("ibm_missing", status="offline") is None

    def test_sessions_sorted_by_activity_success(self, engine, clock):
        clock.advance(minutes=1)
        created = engine.create_session("Calibration run")

        sessions = engine.list_sessions()
        assert sessions[0].id == created.id
        assert created.id.startswith("session_")
        assert [s.id for s in sessions[1:]] == ["session_1", "session_2"]

    def test_update_and_delete_session_success(self, engine):
        updated = engine.update_session("session_1", status="expired", id="hijack")
        assert updated.status == SessionStatus.EXPIRED
        assert updated.id == "session_1"

        assert engine.delete_session("session_1") is True
        assert engine.delete_session("session_1") is False
        assert engine.get_session("session_1") is None
