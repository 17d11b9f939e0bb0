"""
Synthetic job data for the simulated scheduler and demo seeding.

Everything here draws from an injected ``numpy.random.Generator`` so a seeded
generator reproduces the same jobs, results and failures.

Measurement counts are sampled with a multinomial over the ideal outcome
distribution of the circuit family (Bell pair, uniform superposition,
bit flip), mixed with a small amount of uniform noise to imitate readout
error on real hardware.
"""

from typing import Any, Dict, List, Optional, Sequence, Set
from datetime import datetime, timedelta

import numpy as np

from quantum_dashboard.store.models import Backend, Job, JobStatus


# Catalogue of (display name, OpenQASM body) pairs for synthetic submissions
PROGRAM_CATALOGUE = [
    ("Bell State", "h q[0];\ncx q[0],q[1];\nmeasure q -> c;"),
    ("GHZ State", "h q[0];\ncx q[0],q[1];\ncx q[1],q[2];\nmeasure q -> c;"),
    ("Superposition Test", "h q[0];\nmeasure q[0] -> c[0];"),
    ("Bit Flip Check", "x q[0];\nmeasure q[0] -> c[0];"),
    ("Grover Search", "h q;\ncz q[0],q[1];\nh q;\nx q;\ncz q[0],q[1];\nx q;\nh q;\nmeasure q -> c;"),
    ("QAOA MaxCut", "h q;\nrzz(0.8) q[0],q[1];\nrx(1.2) q;\nmeasure q -> c;"),
    ("VQE H2 Ansatz", "ry(0.3) q[0];\nry(1.1) q[1];\ncx q[0],q[1];\nmeasure q -> c;"),
    ("Quantum Fourier Transform", "h q[0];\ncp(pi/2) q[1],q[0];\nh q[1];\nswap q[0],q[1];\nmeasure q -> c;"),
    ("Teleportation", "h q[1];\ncx q[1],q[2];\ncx q[0],q[1];\nh q[0];\nmeasure q -> c;"),
    ("Random Circuit Sampling", "h q;\ncx q[0],q[1];\nt q[1];\ncx q[1],q[2];\nmeasure q -> c;"),
]

TAG_POOL = [
    "research", "benchmark", "calibration", "chemistry", "optimization",
    "education", "error-mitigation", "production", "experiment",
]

FAILURE_MESSAGES = [
    "Backend calibration drift exceeded tolerance",
    "Job exceeded maximum execution time",
    "Transpilation failed: circuit depth exceeds backend limit",
    "Qubit readout error above threshold",
    "Backend went offline during execution",
    "Insufficient coherence time for circuit depth",
    "Internal error in runtime service",
]

SHOT_CHOICES = (1024, 2048, 4096, 8192)

# Readout noise mixed into every ideal distribution
NOISE_LEVEL = 0.04


def _as_qasm(body: str, qubits: int) -> str:
    return (
        "OPENQASM 2.0;\n"
        'include "qelib1.inc";\n'
        f"qreg q[{qubits}];\n"
        f"creg c[{qubits}];\n"
        f"{body}\n"
    )


def random_job_spec(
    rng: np.random.Generator,
    backends: Sequence[Backend],
) -> Dict[str, Any]:
    """
    Draw the submission fields of a synthetic job.

    Returns:
        Keyword arguments for ``JobLifecycleEngine.create_job``

    Raises:
        ValueError: If ``backends`` is empty
    """
    if not backends:
        raise ValueError("At least one backend is required to spawn a job")

    backend = backends[int(rng.integers(len(backends)))]
    name, body = PROGRAM_CATALOGUE[int(rng.integers(len(PROGRAM_CATALOGUE)))]

    max_qubits = max(1, min(backend.qubits, 127))
    qubits = int(rng.integers(2, max_qubits + 1)) if max_qubits >= 2 else 1

    tag_count = int(rng.integers(1, 3))
    tags = [str(tag) for tag in rng.choice(TAG_POOL, size=tag_count, replace=False)]

    return {
        "backend": backend.name,
        "name": name,
        "qubits": qubits,
        "shots": int(rng.choice(SHOT_CHOICES)),
        "program": _as_qasm(body, qubits),
        "tags": tags,
    }


def program_gates(program: Optional[str]) -> Set[str]:
    """Gate names used by an OpenQASM body, e.g. {'h', 'cx', 'measure'}."""
    gates = set()
    for line in (program or "").splitlines():
        token = line.strip().split(" ", 1)[0]
        gates.add(token.split("(", 1)[0].lower())
    return gates


def ideal_distribution(program: Optional[str]) -> Dict[str, float]:
    """Ideal outcome probabilities for the circuit family ``program`` belongs to."""
    gates = program_gates(program)
    if "h" in gates and "cx" in gates:
        return {"00": 0.5, "11": 0.5, "01": 0.0, "10": 0.0}
    if "h" in gates:
        return {"0": 0.5, "1": 0.5}
    if "x" in gates:
        return {"0": 0.0, "1": 1.0}
    return {"00": 0.94, "01": 0.02, "10": 0.02, "11": 0.02}


def synthetic_results(
    rng: np.random.Generator,
    program: Optional[str],
    shots: int,
) -> Dict[str, Any]:
    """
    Sample a measurement-count payload for a finished job.

    Returns:
        {'counts': {bitstring: int}, 'shots': int, 'success_probability': float}
    """
    ideal = ideal_distribution(program)
    outcomes = list(ideal.keys())
    probabilities = np.array([ideal[o] for o in outcomes], dtype=float)
    probabilities = (1.0 - NOISE_LEVEL) * probabilities + NOISE_LEVEL / len(outcomes)
    probabilities = probabilities / probabilities.sum()

    samples = rng.multinomial(shots, probabilities)
    counts = {outcome: int(n) for outcome, n in zip(outcomes, samples)}

    # Fraction of shots landing on outcomes the ideal circuit can produce
    expected = [o for o in outcomes if ideal[o] > 0]
    success = sum(counts[o] for o in expected) / shots if shots else 0.0

    return {
        "counts": counts,
        "shots": int(shots),
        "success_probability": round(float(success), 4),
    }


def synthetic_error(rng: np.random.Generator) -> str:
    return FAILURE_MESSAGES[int(rng.integers(len(FAILURE_MESSAGES)))]


def demo_jobs(
    rng: np.random.Generator,
    backends: Sequence[Backend],
    count: int,
    now: datetime,
    days: int = 7,
    status_weights: Optional[Dict[JobStatus, float]] = None,
) -> List[Job]:
    """
    Build ``count`` jobs with submission times spread over the last ``days``.

    Timestamps agree with the drawn status: running and finished jobs have a
    start time after submission, finished jobs an end time and duration,
    failed jobs an error message and done jobs a result payload. Queue
    positions are left for the importer to assign.
    """
    if count <= 0 or not backends:
        return []

    weights = status_weights or {
        JobStatus.DONE: 0.55,
        JobStatus.FAILED: 0.1,
        JobStatus.RUNNING: 0.1,
        JobStatus.QUEUED: 0.2,
        JobStatus.CANCELLED: 0.05,
    }
    statuses = list(weights.keys())
    p = np.array([weights[s] for s in statuses], dtype=float)
    p = p / p.sum()

    horizon_s = days * 24 * 3600
    jobs: List[Job] = []
    for index in range(count):
        spec = random_job_spec(rng, backends)
        status = statuses[int(rng.choice(len(statuses), p=p))]

        # Active jobs were submitted recently; finished ones anywhere in the window
        if status in (JobStatus.QUEUED, JobStatus.RUNNING):
            age_s = float(rng.uniform(60, 3600))
        else:
            age_s = float(rng.uniform(3600, horizon_s))
        submitted = now - timedelta(seconds=age_s)

        start_time = end_time = None
        duration = None
        results = error = None
        if status in (JobStatus.RUNNING, JobStatus.DONE, JobStatus.FAILED):
            wait_s = float(rng.uniform(5, min(age_s / 2, 1800)))
            start_time = submitted + timedelta(seconds=wait_s)
        if status in (JobStatus.DONE, JobStatus.FAILED):
            run_s = int(rng.integers(2, 600))
            end_time = min(start_time + timedelta(seconds=run_s), now)
            duration = max(0, int((end_time - start_time).total_seconds()))
        if status == JobStatus.DONE:
            results = synthetic_results(rng, spec["program"], spec["shots"])
        if status == JobStatus.FAILED:
            error = synthetic_error(rng)

        jobs.append(Job(
            id=f"job_{index:03x}{int(rng.integers(16 ** 5)):05x}",
            status=status,
            submission_time=submitted,
            start_time=start_time,
            end_time=end_time,
            duration=duration,
            results=results,
            error=error,
            **spec,
        ))

    return jobs
