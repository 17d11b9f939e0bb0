"""
IBM Quantum cloud client for the Quantum Job Dashboard.

Optional live data source. When an API key is configured the client
exchanges it for an IBM Cloud IAM bearer token and reads jobs and backends
from the IBM Quantum REST API. Without a key, or when every endpoint fails,
it returns generated sample data so the dashboard keeps working offline.

Records coming back from IBM are loosely shaped (field names differ between
API generations), so each one is normalised into a ProviderJob or
ProviderBackend before the rest of the application sees it.

Status Mapping:
---------------
Jobs:     pending -> queued, validating -> running, done -> completed,
          error -> failed, canceled -> cancelled (unknown -> queued)
Backends: true/false -> online/offline; 'online', 'offline' and
          'maintenance' pass through (unknown -> offline)

Example Usage:
--------------
```python
from quantum_dashboard.config import settings
from quantum_dashboard.providers.ibm_quantum import IBMQuantumClient, to_dashboard_job

client = IBMQuantumClient(settings.ibm_quantum)
if client.is_configured():
    for provider_job in client.get_jobs(limit=20):
        job = to_dashboard_job(provider_job)
```

Note: Only read operations are implemented. Job submission and
cancellation on IBM hardware are not part of the dashboard.
"""

from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence
from dataclasses import dataclass, field, asdict
from datetime import datetime, timedelta
from enum import Enum
import logging
import time

import numpy as np
import requests

from quantum_dashboard.config import IBMQuantumConfig
from quantum_dashboard.scheduler.lifecycle import whole_seconds_between
from quantum_dashboard.store.models import Job, JobStatus


logger = logging.getLogger(__name__)


# =============================================================================
# EXCEPTIONS
# =============================================================================

class IBMQuantumError(Exception):
    """Base exception for IBM Quantum client errors."""
    pass


class IBMQuantumAuthError(IBMQuantumError):
    """Raised when the API key cannot be exchanged for a bearer token."""
    pass


class IBMQuantumRequestError(IBMQuantumError):
    """Raised when an API request fails or returns an error status."""
    pass


# =============================================================================
# PROVIDER RECORDS
# =============================================================================

class ProviderJobStatus(str, Enum):
    """Job status as reported by the provider."""
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ProviderBackendStatus(str, Enum):
    """Backend status as reported by the provider."""
    ONLINE = "online"
    OFFLINE = "offline"
    MAINTENANCE = "maintenance"


JOB_STATUS_MAP = {
    "queued": ProviderJobStatus.QUEUED,
    "pending": ProviderJobStatus.QUEUED,
    "running": ProviderJobStatus.RUNNING,
    "validating": ProviderJobStatus.RUNNING,
    "completed": ProviderJobStatus.COMPLETED,
    "done": ProviderJobStatus.COMPLETED,
    "failed": ProviderJobStatus.FAILED,
    "error": ProviderJobStatus.FAILED,
    "cancelled": ProviderJobStatus.CANCELLED,
    "canceled": ProviderJobStatus.CANCELLED,
}

SAMPLE_BACKENDS = [
    ("ibm_brisbane", ProviderBackendStatus.ONLINE, 127),
    ("ibm_kyoto", ProviderBackendStatus.ONLINE, 127),
    ("ibm_osaka", ProviderBackendStatus.ONLINE, 127),
    ("ibm_cairo", ProviderBackendStatus.MAINTENANCE, 127),
    ("ibm_sherbrooke", ProviderBackendStatus.ONLINE, 133),
]

DEFAULT_BASIS_GATES = ["cx", "id", "rz", "sx", "x"]


@dataclass
class ProviderJob:
    """A job record normalised from the IBM Quantum API."""
    id: str
    name: str
    backend: str
    status: ProviderJobStatus
    created: datetime
    updated: Optional[datetime] = None
    runtime: Optional[float] = None
    qubits: int = 1
    shots: int = 1024
    program: str = "quantum_circuit"
    results: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        data["created"] = self.created.isoformat()
        data["updated"] = self.updated.isoformat() if self.updated else None
        return data


@dataclass
class ProviderBackend:
    """A backend record normalised from the IBM Quantum API."""
    name: str
    status: ProviderBackendStatus
    pending_jobs: int
    num_qubits: int
    quantum_volume: Optional[int] = None
    basis_gates: List[str] = field(default_factory=lambda: list(DEFAULT_BASIS_GATES))

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


def map_job_status(raw: Any) -> ProviderJobStatus:
    """Map an IBM job status string onto ProviderJobStatus (unknown -> queued)."""
    if not isinstance(raw, str):
        return ProviderJobStatus.QUEUED
    return JOB_STATUS_MAP.get(raw.strip().lower(), ProviderJobStatus.QUEUED)


def map_backend_status(raw: Any) -> ProviderBackendStatus:
    """Map an IBM backend status (bool or string) onto ProviderBackendStatus."""
    if isinstance(raw, bool):
        return ProviderBackendStatus.ONLINE if raw else ProviderBackendStatus.OFFLINE
    if isinstance(raw, str):
        try:
            return ProviderBackendStatus(raw.strip().lower())
        except ValueError:
            pass
    return ProviderBackendStatus.OFFLINE


def parse_timestamp(raw: Any) -> Optional[datetime]:
    """
    Parse an ISO 8601 timestamp into a naive local datetime.

    Returns None for missing or unparseable values.
    """
    if isinstance(raw, datetime):
        moment = raw
    elif isinstance(raw, str) and raw:
        try:
            moment = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            logger.debug(f"Unparseable timestamp from IBM Quantum: {raw!r}")
            return None
    else:
        return None

    if moment.tzinfo is not None:
        moment = moment.astimezone().replace(tzinfo=None)
    return moment


def _first(record: Dict[str, Any], *paths: str) -> Any:
    """First non-empty value among dotted ``paths`` into a nested record."""
    for path in paths:
        value: Any = record
        for part in path.split("."):
            if isinstance(value, dict):
                value = value.get(part)
            elif isinstance(value, list) and part.isdigit() and int(part) < len(value):
                value = value[int(part)]
            else:
                value = None
                break
        if value not in (None, ""):
            return value
    return None


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


# =============================================================================
# CLIENT
# =============================================================================

class IBMQuantumClient:
    """
    Read-only client for the IBM Quantum REST API.

    Attributes:
        config (IBMQuantumConfig): Credentials, URLs and timeouts
        rng (np.random.Generator): Random source for sample data
    """

    USER_AGENT = "Quantum-Job-Dashboard/0.1"

    def __init__(
        self,
        config: Optional[IBMQuantumConfig] = None,
        rng: Optional[np.random.Generator] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config or IBMQuantumConfig()
        self.rng = rng if rng is not None else np.random.default_rng()
        self.clock = clock or datetime.now

        self._bearer_token: Optional[str] = None
        self._token_expiry = 0.0
        self.last_sync: Optional[datetime] = None

        if self.is_configured():
            logger.info(f"IBM Quantum API configured (base URL: {self.config.base_url})")
        else:
            logger.info("IBM Quantum API token not set; provider will serve sample data")

    def is_configured(self) -> bool:
        return self.config.is_configured

    def get_api_status(self) -> Dict[str, Any]:
        """Configuration summary for the sync status endpoint."""
        return {
            "configured": self.is_configured(),
            "status": "Configured" if self.is_configured() else "Not Configured",
            "lastSync": self.last_sync.isoformat() if self.last_sync else None,
            "endpoints": {
                "api": self.config.base_url,
                "legacy": self.config.legacy_url,
                "auth": self.config.iam_url,
            },
        }

    # =========================================================================
    # HTTP
    # =========================================================================

    def _get_bearer_token(self) -> str:
        """
        Exchange the API key for an IAM bearer token, reusing a cached one.

        Raises:
            IBMQuantumAuthError: If the exchange fails
        """
        if self._bearer_token and time.monotonic() < self._token_expiry:
            return self._bearer_token

        logger.info("Requesting IBM Cloud IAM bearer token")
        try:
            response = requests.post(
                self.config.iam_url,
                data={
                    "grant_type": "urn:ibm:params:oauth:grant-type:apikey",
                    "apikey": self.config.api_token.get_secret_value(),
                },
                headers={
                    "Content-Type": "application/x-www-form-urlencoded",
                    "Accept": "application/json",
                },
                timeout=self.config.timeout_s,
            )
            response.raise_for_status()
            token = response.json().get("access_token")
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"Failed to obtain IBM Cloud bearer token: {e}")
            raise IBMQuantumAuthError("Failed to authenticate with IBM Cloud") from e

        if not token:
            raise IBMQuantumAuthError("IBM Cloud IAM response did not contain an access token")

        self._bearer_token = token
        self._token_expiry = time.monotonic() + self.config.token_ttl_s
        return token

    def _request(self, url: str) -> Dict[str, Any]:
        """
        Authenticated GET returning the decoded JSON body.

        Raises:
            IBMQuantumError: If the client is not configured
            IBMQuantumAuthError: If authentication fails
            IBMQuantumRequestError: On timeout, connection failure or
                an HTTP error status
        """
        if not self.is_configured():
            raise IBMQuantumError("IBM Quantum API key not configured")

        headers = {
            "Authorization": f"Bearer {self._get_bearer_token()}",
            "Accept": "application/json",
            "User-Agent": self.USER_AGENT,
        }

        try:
            response = requests.get(url, headers=headers, timeout=self.config.timeout_s)
        except requests.exceptions.Timeout as e:
            raise IBMQuantumRequestError("Request timeout - IBM Quantum API is not responding") from e
        except requests.exceptions.RequestException as e:
            raise IBMQuantumRequestError(f"IBM Quantum API request failed: {e}") from e

        if response.status_code >= 400:
            raise IBMQuantumRequestError(
                f"IBM Quantum API returned {response.status_code} for {url}"
            )

        try:
            return response.json()
        except ValueError as e:
            raise IBMQuantumRequestError(f"Invalid JSON from {url}") from e

    def _probe(self, endpoints: Sequence[str], keys: Iterable[str]) -> Optional[List[Dict[str, Any]]]:
        """Try ``endpoints`` in order; return the first list found under one of ``keys``."""
        keys = tuple(keys)
        for endpoint in endpoints:
            logger.info(f"Trying IBM Quantum endpoint: {endpoint}")
            try:
                data = self._request(endpoint)
            except IBMQuantumError as e:
                logger.info(f"Endpoint failed: {endpoint} ({e})")
                continue

            if isinstance(data, dict):
                for key in keys:
                    if isinstance(data.get(key), list):
                        logger.info(f"Fetched {len(data[key])} records from {endpoint}")
                        return data[key]
            logger.info(f"Endpoint {endpoint} returned data in an unexpected format")
        return None

    # =========================================================================
    # JOBS AND BACKENDS
    # =========================================================================

    def fetch_jobs(self, limit: Optional[int] = None) -> List[ProviderJob]:
        """
        Recent jobs from IBM Quantum, without the sample fallback.

        Records that are not JSON objects are skipped.

        Args:
            limit: Maximum number of jobs (default: config.job_limit)

        Raises:
            IBMQuantumError: If the client is not configured
            IBMQuantumRequestError: If every job endpoint fails
        """
        limit = limit or self.config.job_limit
        if not self.is_configured():
            raise IBMQuantumError("IBM Quantum API key not configured")

        endpoints = [
            f"{self.config.base_url}/jobs?limit={limit}",
            f"{self.config.base_url}/jobs",
            f"{self.config.legacy_url}/jobs?limit={limit}",
        ]
        records = self._probe(endpoints, ("jobs", "data"))
        if records is None:
            raise IBMQuantumRequestError("All IBM Quantum job endpoints failed")

        records = [record for record in records if isinstance(record, dict)]
        jobs = [self._parse_job(record, index) for index, record in enumerate(records[:limit])]
        self.last_sync = self.clock()
        return jobs

    def get_jobs(self, limit: Optional[int] = None) -> List[ProviderJob]:
        """
        Recent jobs from IBM Quantum, or sample jobs when unavailable.

        Args:
            limit: Maximum number of jobs (default: config.job_limit)
        """
        limit = limit or self.config.job_limit
        if not self.is_configured():
            logger.warning("IBM Quantum API key not available; returning sample jobs")
            return self.sample_jobs(limit)

        try:
            return self.fetch_jobs(limit)
        except IBMQuantumError as e:
            logger.warning(f"{e}; returning sample jobs")
            return self.sample_jobs(limit)

    def get_backends(self) -> List[ProviderBackend]:
        """Backends from IBM Quantum, or the sample fleet when unavailable."""
        if not self.is_configured():
            logger.warning("IBM Quantum API key not available; returning sample backends")
            return self.sample_backends()

        endpoints = [
            f"{self.config.base_url}/backends",
            f"{self.config.legacy_url}/backends",
        ]
        records = self._probe(endpoints, ("backends", "devices"))
        if records is None:
            logger.warning("All IBM Quantum backend endpoints failed; returning sample backends")
            return self.sample_backends()

        return [self._parse_backend(record) for record in records if isinstance(record, dict)]

    def get_job(self, job_id: str) -> Optional[ProviderJob]:
        """One job by id, or None when unconfigured or the request fails."""
        if not self.is_configured():
            logger.warning("IBM Quantum API key not available; cannot fetch job by id")
            return None
        try:
            record = self._request(f"{self.config.base_url}/jobs/{job_id}")
        except IBMQuantumError as e:
            logger.warning(f"Failed to fetch IBM Quantum job {job_id}: {e}")
            return None
        if not isinstance(record, dict):
            logger.warning(f"Unexpected payload for IBM Quantum job {job_id}")
            return None
        return self._parse_job(record, 0)

    def get_live_summary(self) -> Dict[str, Any]:
        """Jobs, backends and headline counts for the live data endpoint."""
        jobs = self.get_jobs()
        backends = self.get_backends()
        return {
            "timestamp": self.clock().isoformat(),
            "jobs": [
                {
                    "id": job.id,
                    "name": job.name,
                    "backend": job.backend,
                    "status": job.status.value,
                    "created": job.created.isoformat(),
                    "qubits": job.qubits,
                    "shots": job.shots,
                }
                for job in jobs
            ],
            "backends": [
                {
                    "name": backend.name,
                    "status": backend.status.value,
                    "qubits": backend.num_qubits,
                    "queue": backend.pending_jobs,
                }
                for backend in backends
            ],
            "summary": {
                "totalJobs": len(jobs),
                "runningJobs": sum(1 for j in jobs if j.status == ProviderJobStatus.RUNNING),
                "queuedJobs": sum(1 for j in jobs if j.status == ProviderJobStatus.QUEUED),
                "availableBackends": sum(
                    1 for b in backends if b.status == ProviderBackendStatus.ONLINE
                ),
            },
        }

    def _parse_job(self, record: Dict[str, Any], index: int) -> ProviderJob:
        job_id = str(_first(record, "id") or f"ibm_job_{index}")
        created = parse_timestamp(_first(record, "created", "creation_date")) or self.clock()
        runtime = _first(record, "running_time", "usage.seconds", "runtime")
        error = _first(record, "error_message", "failure.error_message", "error")

        return ProviderJob(
            id=job_id,
            name=str(_first(record, "program.id", "program_id", "name") or f"IBM Job {job_id[-8:]}"),
            backend=str(_first(record, "backend.name", "backend_name", "backend", "device") or "unknown"),
            status=map_job_status(_first(record, "status", "state")),
            created=created,
            updated=parse_timestamp(_first(record, "updated", "time_per_step.COMPLETED", "modified")),
            runtime=float(runtime) if isinstance(runtime, (int, float)) else None,
            qubits=_as_int(_first(record, "params.circuits.0.num_qubits", "num_qubits"), 1),
            shots=_as_int(_first(record, "params.shots", "shots"), 1024),
            program=str(_first(record, "program.id", "program_id") or "quantum_circuit"),
            results=record.get("results") if isinstance(record.get("results"), dict) else None,
            error=str(error) if error is not None else None,
        )

    def _parse_backend(self, record: Dict[str, Any]) -> ProviderBackend:
        raw_status = record.get("status")
        if raw_status is None or isinstance(raw_status, dict):
            raw_status = record.get("operational")

        return ProviderBackend(
            name=str(_first(record, "name", "backend_name") or "unknown_backend"),
            status=map_backend_status(raw_status),
            pending_jobs=_as_int(_first(record, "pending_jobs", "length_queue", "queue_length"), 0),
            num_qubits=_as_int(_first(record, "n_qubits", "num_qubits", "configuration.n_qubits"), 1),
            quantum_volume=_first(record, "quantum_volume", "props.quantum_volume"),
            basis_gates=list(
                _first(record, "basis_gates", "configuration.basis_gates") or DEFAULT_BASIS_GATES
            ),
        )

    # =========================================================================
    # SAMPLE DATA
    # =========================================================================

    def sample_jobs(self, count: int) -> List[ProviderJob]:
        """Generated jobs spread over the last seven days."""
        logger.info(f"Generating {count} sample IBM Quantum jobs")
        now = self.clock()
        statuses = list(ProviderJobStatus)
        jobs = []
        for i in range(count):
            status = statuses[int(self.rng.integers(len(statuses)))]
            created = now - timedelta(seconds=float(self.rng.uniform(0, 7 * 24 * 3600)))
            runtime = float(self.rng.integers(30, 330)) if status == ProviderJobStatus.COMPLETED else None
            jobs.append(ProviderJob(
                id=f"ibm_sample_{i}_{int(self.rng.integers(16 ** 6)):06x}",
                name=f"IBM Quantum Circuit {i + 1}",
                backend=SAMPLE_BACKENDS[int(self.rng.integers(len(SAMPLE_BACKENDS)))][0],
                status=status,
                created=created,
                updated=created if status != ProviderJobStatus.QUEUED else None,
                runtime=runtime,
                qubits=int(self.rng.integers(5, 105)),
                shots=int(2 ** self.rng.integers(10, 16)),
                program="sample_quantum_circuit",
                results={"counts": {"000": 512, "111": 512}} if status == ProviderJobStatus.COMPLETED else None,
                error="Sample quantum circuit error for demo" if status == ProviderJobStatus.FAILED else None,
            ))
        return jobs

    def sample_backends(self) -> List[ProviderBackend]:
        logger.info("Generating sample IBM Quantum backends")
        backends = []
        for name, status, qubits in SAMPLE_BACKENDS:
            pending = 0 if status != ProviderBackendStatus.ONLINE else int(self.rng.integers(0, 15))
            backends.append(ProviderBackend(
                name=name,
                status=status,
                pending_jobs=pending,
                num_qubits=qubits,
            ))
        return backends

    def __repr__(self) -> str:
        return f"IBMQuantumClient(configured={self.is_configured()})"


# =============================================================================
# CONVERSION
# =============================================================================

def to_dashboard_job(provider_job: ProviderJob) -> Job:
    """
    Convert a provider record into a dashboard Job.

    Timestamps are made consistent with the status: running jobs have a
    start time, finished jobs a start and end time plus a duration, and only
    failed jobs carry an error. Queue positions are left to the importer.
    """
    if provider_job.status == ProviderJobStatus.COMPLETED:
        status = JobStatus.DONE
    else:
        status = JobStatus(provider_job.status.value)

    created = provider_job.created
    start_time = end_time = None
    duration = None

    if status == JobStatus.RUNNING:
        start_time = provider_job.updated or created
    elif status in (JobStatus.DONE, JobStatus.FAILED):
        runtime = timedelta(seconds=provider_job.runtime or 0)
        end_time = provider_job.updated or created + runtime
        start_time = max(created, end_time - runtime)
        duration = whole_seconds_between(start_time, end_time)

    return Job(
        id=provider_job.id,
        name=provider_job.name,
        backend=provider_job.backend,
        status=status,
        submission_time=created,
        start_time=start_time,
        end_time=end_time,
        duration=duration,
        qubits=min(max(provider_job.qubits, 1), 1000),
        shots=min(max(provider_job.shots, 1), 100000),
        program=provider_job.program,
        results=provider_job.results if status == JobStatus.DONE else None,
        error=str(provider_job.error) if status == JobStatus.FAILED and provider_job.error else None,
        tags=["ibm-quantum"],
    )
