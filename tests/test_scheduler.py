"""
Unit tests for the simulated scheduler and synthetic job data.
"""

import asyncio
import pytest
import numpy as np
from datetime import datetime, timedelta

from quantum_dashboard.config import SchedulerConfig
from quantum_dashboard.store.entity_store import EntityStore
from quantum_dashboard.store.models import JobStatus
from quantum_dashboard.scheduler.lifecycle import JobLifecycleEngine
from quantum_dashboard.scheduler.simulator import (
    JobScheduler,
    SchedulerAlreadyRunning,
    TickReport,
)
from quantum_dashboard.scheduler.synthetic import (
    FAILURE_MESSAGES,
    demo_jobs,
    ideal_distribution,
    program_gates,
    random_job_spec,
    synthetic_results,
)


T0 = datetime(2025, 3, 14, 12, 0, 0)


class ScriptedRng:
    """
    Generator stand-in whose first random() and integers() draws are scripted.

    Once a script runs out, and for every other method, draws come from a
    seeded numpy generator.
    """

    def __init__(self, randoms=(), integers=()):
        self._randoms = list(randoms)
        self._integers = list(integers)
        self._fallback = np.random.default_rng(0)

    def random(self):
        if self._randoms:
            return self._randoms.pop(0)
        return self._fallback.random()

    def integers(self, *args, **kwargs):
        if self._integers:
            return self._integers.pop(0)
        return self._fallback.integers(*args, **kwargs)

    def __getattr__(self, name):
        return getattr(self._fallback, name)


def quiet_config(**overrides):
    """Scheduler config where every action is off unless overridden."""
    fields = dict(
        promote_probability=0.0,
        resolve_probability=0.0,
        success_probability=1.0,
        spawn_probability=0.0,
        min_interval_s=0.01,
        max_interval_s=0.02,
    )
    fields.update(overrides)
    return SchedulerConfig(**fields)


def assert_invariants(engine):
    for job in engine.list_jobs():
        assert (job.queue_position is not None) == (job.status == JobStatus.QUEUED), job
        assert (job.duration is not None) == (job.end_time is not None), job
        if job.status in (JobStatus.DONE, JobStatus.FAILED):
            assert job.start_time is not None, job
        if job.error is not None:
            assert job.status == JobStatus.FAILED, job

    for backend in engine.list_backends():
        queued = [
            j for j in engine.jobs_by_backend(backend.name)
            if j.status == JobStatus.QUEUED
        ]
        assert backend.queue_length == len(queued), backend


class TestSchedulerTick:
    """Test the four per-tick actions."""

    @pytest.fixture
    def engine(self):
        store = EntityStore()
        store.seed_defaults(T0)
        return JobLifecycleEngine(store, clock=lambda: T0)

    def submit(self, engine, backend="ibm_cairo"):
        return engine.create_job(backend=backend, qubits=2, shots=1000, program="h q[0];\ncx q[0],q[1];")

    def test_promote_scripted_success(self, engine):
        jobs = [self.submit(engine) for _ in range(3)]
        scheduler = JobScheduler(
            engine,
            rng=ScriptedRng(randoms=[0.0], integers=[2]),
            config=quiet_config(promote_probability=0.5),
        )

        report = scheduler.tick()

        assert report.promoted == [jobs[2].id]
        promoted = engine.get_job(jobs[2].id)
        assert promoted.status == JobStatus.RUNNING
        assert promoted.start_time == T0
        assert promoted.queue_position is None

    def test_promote_not_drawn_failure(self, engine):
        self.submit(engine)
        scheduler = JobScheduler(
            engine,
            rng=ScriptedRng(randoms=[0.9]),
            config=quiet_config(promote_probability=0.5),
        )

        report = scheduler.tick()

        assert report.promoted == []
        assert len(engine.jobs_by_status(JobStatus.QUEUED)) == 1

    def test_promote_without_queued_jobs_success(self, engine):
        scheduler = JobScheduler(
            engine,
            rng=np.random.default_rng(0),
            config=quiet_config(promote_probability=1.0, resolve_probability=1.0),
        )

        report = scheduler.tick()

        assert report.errors == 0
        assert report.promoted == []
        assert report.completed == []

    def test_resolve_done_records_results_success(self, engine):
        job = self.submit(engine)
        engine.transition_status(job.id, JobStatus.RUNNING)
        scheduler = JobScheduler(
            engine,
            rng=np.random.default_rng(1),
            config=quiet_config(resolve_probability=1.0, success_probability=1.0),
        )

        report = scheduler.tick()

        assert report.completed == [job.id]
        done = engine.get_job(job.id)
        assert done.status == JobStatus.DONE
        assert done.duration == 0
        assert sum(done.results["counts"].values()) == 1000
        assert done.results["shots"] == 1000
        assert done.error is None

    def test_resolve_failed_sets_error_success(self, engine):
        job = self.submit(engine)
        engine.transition_status(job.id, JobStatus.RUNNING)
        scheduler = JobScheduler(
            engine,
            rng=ScriptedRng(randoms=[0.1, 0.99], integers=[0, 3]),
            config=quiet_config(resolve_probability=0.5, success_probability=0.85),
        )

        report = scheduler.tick()

        assert report.failed == [job.id]
        failed = engine.get_job(job.id)
        assert failed.status == JobStatus.FAILED
        assert failed.error == FAILURE_MESSAGES[3]
        assert failed.results is None

    def test_spawn_success(self, engine):
        scheduler = JobScheduler(
            engine,
            rng=np.random.default_rng(7),
            config=quiet_config(spawn_probability=1.0),
        )

        report = scheduler.tick()

        assert len(report.spawned) == 1
        job = engine.get_job(report.spawned[0])
        assert job.status == JobStatus.QUEUED
        assert job.queue_position == 1
        assert job.backend in {"ibm_cairo", "ibm_kyoto", "ibm_osaka"}
        assert job.program.startswith("OPENQASM 2.0;")
        assert report.reconciled[job.backend] == 1

    def test_reconcile_success(self, engine):
        for _ in range(3):
            self.submit(engine, backend="ibm_osaka")
        self.submit(engine, backend="ibm_cairo")
        scheduler = JobScheduler(engine, rng=np.random.default_rng(0), config=quiet_config())

        report = scheduler.tick()

        assert report.reconciled == {"ibm_cairo": 1, "ibm_kyoto": 0, "ibm_osaka": 3}
        assert engine.get_backend("ibm_osaka").queue_length == 3
        assert engine.get_backend("ibm_kyoto").queue_length == 0

    def test_action_error_is_isolated_failure(self, engine, monkeypatch, caplog):
        """Test that a failing action does not stop the rest of the tick."""
        self.submit(engine)
        scheduler = JobScheduler(
            engine,
            rng=np.random.default_rng(0),
            config=quiet_config(promote_probability=1.0, spawn_probability=1.0),
        )

        def boom(*args, **kwargs):
            raise RuntimeError("store unavailable")

        monkeypatch.setattr(engine, "transition_status", boom)

        report = scheduler.tick()

        assert report.errors == 1
        assert report.promoted == []
        assert len(report.spawned) == 1
        assert sum(report.reconciled.values()) == 2
        assert scheduler.tick_count == 1
        assert "store unavailable" in caplog.text

    def test_tick_report_to_dict_success(self):
        report = TickReport(started_at=T0, promoted=["job_a"])
        data = report.to_dict()
        assert data["started_at"] == T0.isoformat()
        assert data["promoted"] == ["job_a"]
        assert data["errors"] == 0


class TestSchedulerProperties:
    """Test invariants over long random runs."""

    @pytest.mark.parametrize("seed", [0, 1, 42, 2024])
    def test_invariants_hold_over_many_ticks_success(self, seed):
        store = EntityStore()
        store.seed_defaults(T0)
        clock_state = {"now": T0}
        engine = JobLifecycleEngine(store, clock=lambda: clock_state["now"])
        rng = np.random.default_rng(seed)

        for job in demo_jobs(rng, engine.list_backends(), 20, T0):
            engine.import_job(job)

        scheduler = JobScheduler(
            engine,
            rng=rng,
            config=SchedulerConfig(spawn_probability=0.5, seed=seed),
        )

        for _ in range(150):
            clock_state["now"] += timedelta(seconds=scheduler.next_interval())
            report = scheduler.tick()
            assert report.errors == 0
            assert_invariants(engine)

        stats = scheduler.get_statistics()
        assert stats["tick_count"] == 150
        assert stats["spawned"] > 0
        assert stats["completed"] + stats["failed"] > 0

    def test_next_interval_within_bounds_success(self):
        scheduler = JobScheduler(
            JobLifecycleEngine(EntityStore()),
            rng=np.random.default_rng(3),
            config=SchedulerConfig(min_interval_s=20, max_interval_s=30),
        )
        intervals = [scheduler.next_interval() for _ in range(200)]
        assert all(20 <= i <= 30 for i in intervals)

    def test_interval_bounds_validation_failure(self):
        with pytest.raises(ValueError, match="max_interval_s"):
            SchedulerConfig(min_interval_s=30, max_interval_s=20)


class TestSchedulerLifecycle:
    """Test the background loop start/stop."""

    @pytest.fixture
    def scheduler(self):
        store = EntityStore()
        store.seed_defaults()
        engine = JobLifecycleEngine(store)
        return JobScheduler(
            engine,
            rng=np.random.default_rng(5),
            config=quiet_config(spawn_probability=1.0),
        )

    @pytest.mark.asyncio
    async def test_start_and_stop_success(self, scheduler):
        await scheduler.start()
        assert scheduler.is_running is True

        await asyncio.sleep(0.2)
        await scheduler.stop()

        assert scheduler.is_running is False
        assert scheduler.tick_count >= 1
        assert len(scheduler.engine.list_jobs()) == scheduler.tick_count
        assert scheduler.last_tick is not None

    @pytest.mark.asyncio
    async def test_start_twice_failure(self, scheduler):
        await scheduler.start()
        try:
            with pytest.raises(SchedulerAlreadyRunning):
                await scheduler.start()
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_stop_is_idempotent_success(self, scheduler):
        await scheduler.stop()
        await scheduler.start()
        await scheduler.stop()
        await scheduler.stop()

        ticks = scheduler.tick_count
        await asyncio.sleep(0.1)
        assert scheduler.tick_count == ticks

    @pytest.mark.asyncio
    async def test_restart_after_stop_success(self, scheduler):
        await scheduler.start()
        await scheduler.stop()
        await scheduler.start()
        assert scheduler.is_running is True
        await scheduler.stop()


class TestSyntheticData:
    """Test synthetic job, result and demo data generation."""

    @pytest.fixture
    def backends(self):
        store = EntityStore()
        store.seed_defaults(T0)
        return JobLifecycleEngine(store).list_backends()

    def test_random_job_spec_success(self, backends):
        rng = np.random.default_rng(11)
        for _ in range(50):
            spec = random_job_spec(rng, backends)
            assert spec["backend"] in {b.name for b in backends}
            assert 1 <= spec["qubits"] <= 127
            assert spec["shots"] in (1024, 2048, 4096, 8192)
            assert f"qreg q[{spec['qubits']}];" in spec["program"]
            assert 1 <= len(spec["tags"]) <= 2

    def test_random_job_spec_no_backends_failure(self):
        with pytest.raises(ValueError):
            random_job_spec(np.random.default_rng(0), [])

    def test_program_gates_success(self):
        gates = program_gates("h q[0];\ncx q[0],q[1];\nrzz(0.5) q[0],q[1];\nmeasure q -> c;")
        assert {"h", "cx", "rzz", "measure"} <= gates
        assert "x" not in gates

    def test_ideal_distribution_success(self):
        assert ideal_distribution("h q[0];\ncx q[0],q[1];")["11"] == 0.5
        assert ideal_distribution("h q[0];") == {"0": 0.5, "1": 0.5}
        assert ideal_distribution("x q[0];")["1"] == 1.0
        assert ideal_distribution(None)["00"] == 0.94

    def test_synthetic_results_success(self):
        rng = np.random.default_rng(0)
        results = synthetic_results(rng, "h q[0];\ncx q[0],q[1];", 4096)

        assert sum(results["counts"].values()) == 4096
        assert all(isinstance(v, int) for v in results["counts"].values())
        # Mostly Bell outcomes with a little readout noise
        assert results["success_probability"] > 0.9

    def test_demo_jobs_consistent_success(self, backends):
        rng = np.random.default_rng(99)
        jobs = demo_jobs(rng, backends, 60, T0, days=7)

        assert len(jobs) == 60
        assert len({j.id for j in jobs}) == 60
        for job in jobs:
            assert T0 - timedelta(days=7) <= job.submission_time <= T0
            if job.status in (JobStatus.DONE, JobStatus.FAILED):
                assert job.submission_time <= job.start_time <= job.end_time <= T0
                assert job.duration is not None
            if job.status == JobStatus.RUNNING:
                assert job.start_time is not None
                assert job.end_time is None
            if job.status in (JobStatus.QUEUED, JobStatus.CANCELLED):
                assert job.start_time is None
            assert (job.error is not None) == (job.status == JobStatus.FAILED)
            assert (job.results is not None) == (job.status == JobStatus.DONE)

    def test_demo_jobs_empty_failure(self, backends):
        rng = np.random.default_rng(0)
        assert demo_jobs(rng, backends, 0, T0) == []
        assert demo_jobs(rng, [], 5, T0) == []
