"""
FastAPI REST API for the Quantum Job Dashboard.

This module serves the JSON API consumed by the dashboard UI: job listing,
search and lifecycle transitions, backends and sessions, analytics, bulk
exports, the simulated scheduler's state, and the optional IBM Quantum sync.

The API exposes:
- Job endpoints (paginate, search, filter, create, transition, delete)
- Backend and session endpoints
- Analytics (headline stats, daily trends, breakdowns, durations)
- CSV / JSON export of every job
- Scheduler and IBM Quantum status

Application state (store, lifecycle engine, scheduler, analytics, provider
client) lives on ``app.state`` and is handed to routes through FastAPI
dependencies, so tests can install fresh, isolated instances.

All endpoints are documented via OpenAPI/Swagger at /docs.

Example Usage:
    # Start the server
    uvicorn quantum_dashboard.api.main:app --host 0.0.0.0 --port 5000 --reload

    # Submit a job
    curl -X POST "http://localhost:5000/api/jobs" \
      -H "Content-Type: application/json" \
      -d '{"backend": "ibm_cairo", "qubits": 5, "shots": 1024, "program": "h q[0];"}'

    # Check system health
    curl http://localhost:5000/health
"""

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from starlette.concurrency import run_in_threadpool
from typing import Any, Callable, Dict, List, Optional
from contextlib import asynccontextmanager
from datetime import datetime
import logging
import traceback
import time
import numpy as np

# Import application components
from quantum_dashboard.config import IBMQuantumConfig, SchedulerConfig, settings
from quantum_dashboard.monitoring.analytics import AnalyticsAggregator
from quantum_dashboard.providers.ibm_quantum import (
    IBMQuantumClient,
    IBMQuantumError,
    to_dashboard_job,
)
from quantum_dashboard.scheduler.lifecycle import JobLifecycleEngine
from quantum_dashboard.scheduler.simulator import JobScheduler, SchedulerAlreadyRunning
from quantum_dashboard.scheduler.synthetic import demo_jobs
from quantum_dashboard.store.entity_store import DuplicateKeyError, EntityStore, InvalidEntityError
from quantum_dashboard.store.models import BackendStatus, JobStatus, SessionStatus

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.api.log_level),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


# =============================================================================
# Utility Functions
# =============================================================================

def convert_numpy_types(obj):
    """
    Recursively convert numpy types to Python native types for JSON serialization.

    Args:
        obj: Object that may contain numpy types

    Returns:
        Object with numpy types converted to Python native types
    """
    if isinstance(obj, np.bool_):
        return bool(obj)
    elif isinstance(obj, np.integer):
        return int(obj)
    elif isinstance(obj, np.floating):
        return float(obj)
    elif isinstance(obj, np.ndarray):
        return obj.tolist()
    elif isinstance(obj, dict):
        return {key: convert_numpy_types(value) for key, value in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [convert_numpy_types(item) for item in obj]
    else:
        return obj


def serialize(entity):
    """Dump an entity (or a list of them) as camelCase JSON-ready data."""
    if isinstance(entity, list):
        return [serialize(item) for item in entity]
    return convert_numpy_types(entity.model_dump(mode="json", by_alias=True))


# =============================================================================
# Pydantic Models (Request Schemas)
# =============================================================================

class RequestModel(BaseModel):
    """Request bodies accept camelCase keys (as sent by the UI) or snake_case."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class JobCreateRequest(RequestModel):
    """Request model for job submission."""
    name: Optional[str] = Field(None, max_length=200, description="Display name")
    backend: str = Field(..., min_length=1, description="Target backend name", examples=["ibm_cairo"])
    qubits: int = Field(..., ge=1, le=1000, description="Number of qubits", examples=[5])
    shots: int = Field(..., ge=1, le=100000, description="Number of shots", examples=[1024])
    program: str = Field(..., min_length=1, description="Program text (e.g. OpenQASM)")
    tags: Optional[List[str]] = Field(None, description="Free-form tags")
    session_id: Optional[str] = Field(None, description="Owning session id")
    status: JobStatus = Field(JobStatus.QUEUED, description="Initial status")

    @field_validator("program")
    @classmethod
    def validate_program(cls, v):
        if not v.strip():
            raise ValueError("program must not be empty")
        return v


class StatusUpdateRequest(RequestModel):
    """Request model for a job status transition."""
    status: JobStatus = Field(..., description="Target status")
    error: Optional[str] = Field(None, description="Failure message (kept only for failed)")


class SessionCreateRequest(RequestModel):
    """Request model for session creation."""
    name: str = Field(..., min_length=1, max_length=200)
    status: SessionStatus = SessionStatus.ACTIVE


class BackendCreateRequest(RequestModel):
    """Request model for backend registration. Queue length is not settable."""
    name: str = Field(..., min_length=1, max_length=100, examples=["ibm_sherbrooke"])
    qubits: int = Field(..., ge=1, examples=[133])
    status: BackendStatus = BackendStatus.AVAILABLE
    average_wait_time: Optional[int] = Field(None, ge=0)
    uptime: Optional[str] = None


class BackendUpdateRequest(RequestModel):
    """Request model for backend attribute updates."""
    status: Optional[BackendStatus] = None
    qubits: Optional[int] = Field(None, ge=1)
    average_wait_time: Optional[int] = Field(None, ge=0)
    uptime: Optional[str] = None


class HealthResponse(BaseModel):
    """Response model for health check."""
    status: str
    version: str
    environment: str
    timestamp: str
    components: Dict[str, str]


# =============================================================================
# Application State
# =============================================================================

def init_app_state(
    state,
    scheduler_config: Optional[SchedulerConfig] = None,
    ibm_config: Optional[IBMQuantumConfig] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> None:
    """
    Build the store, engine, scheduler, analytics and provider client and
    attach them to ``state`` (normally ``app.state``).

    The store starts empty; ``bootstrap`` seeds it at startup.
    """
    scheduler_config = scheduler_config or settings.scheduler
    rng = np.random.default_rng(scheduler_config.seed)

    store = EntityStore()
    engine = JobLifecycleEngine(store, clock=clock)

    state.scheduler_config = scheduler_config
    state.rng = rng
    state.store = store
    state.engine = engine
    state.scheduler = JobScheduler(engine, rng=rng, config=scheduler_config, clock=clock)
    state.analytics = AnalyticsAggregator(engine, clock=clock)
    state.ibm_client = IBMQuantumClient(ibm_config or settings.ibm_quantum, rng=rng, clock=clock)


async def bootstrap(state) -> int:
    """
    Seed the reference backends and sessions, then insert demo jobs.

    Demo jobs come from IBM Quantum when it is configured and from the
    synthetic generator otherwise. Nothing is inserted when the store already
    holds jobs.

    Returns:
        Number of demo jobs inserted
    """
    engine: JobLifecycleEngine = state.engine
    config: SchedulerConfig = state.scheduler_config
    now = engine.clock()

    state.store.seed_defaults(now)
    if config.seed_jobs <= 0 or len(state.store.jobs) > 0:
        return 0

    client: IBMQuantumClient = state.ibm_client
    if client.is_configured():
        provider_jobs = await run_in_threadpool(client.get_jobs, config.seed_jobs)
        jobs = [to_dashboard_job(job) for job in provider_jobs]
    else:
        jobs = demo_jobs(
            state.rng,
            engine.list_backends(),
            config.seed_jobs,
            now,
            days=config.history_days,
        )

    inserted = 0
    for job in jobs:
        try:
            engine.import_job(job)
            inserted += 1
        except DuplicateKeyError:
            logger.warning(f"Skipping duplicate demo job {job.id}")

    state.scheduler.reconcile_backends()
    logger.info(f"Inserted {inserted} demo jobs")
    return inserted


def get_engine(request: Request) -> JobLifecycleEngine:
    return request.app.state.engine


def get_scheduler(request: Request) -> JobScheduler:
    return request.app.state.scheduler


def get_analytics(request: Request) -> AnalyticsAggregator:
    return request.app.state.analytics


def get_ibm_client(request: Request) -> IBMQuantumClient:
    return request.app.state.ibm_client


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Run startup tasks, serve, then run shutdown tasks."""
    await startup_event(app)
    yield
    await shutdown_event(app)


# =============================================================================
# FastAPI Application Setup
# =============================================================================

app = FastAPI(
    title=settings.api.title,
    version=settings.api.version,
    description="""
    **Quantum Job Dashboard REST API**

    Monitoring backend for quantum computing jobs. This API enables:

    - **Job Tracking**: paginate, search and filter jobs; follow them from
      queued to running to done or failed
    - **Backends & Sessions**: the processors jobs run on and the sessions
      that group them
    - **Analytics**: success rate, daily trends, per-backend breakdowns and
      duration statistics
    - **Export**: every job as CSV or JSON
    - **Live Simulation**: a background scheduler advances job state on its own
    - **IBM Quantum**: optional live data when an API token is configured

    ## Quick Start

    1. List jobs: `GET /api/jobs?page=1&limit=10`
    2. Submit a job: `POST /api/jobs`
    3. Move it along: `PATCH /api/jobs/{job_id}/status`
    4. Check the numbers: `GET /api/analytics/stats`
    """,
    debug=settings.api.debug,
    lifespan=lifespan,
    docs_url=settings.api.docs_url,
    redoc_url=settings.api.redoc_url,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.api.cors_origins,
    allow_credentials=settings.api.cors_allow_credentials,
    allow_methods=settings.api.cors_allow_methods,
    allow_headers=settings.api.cors_allow_headers,
)

init_app_state(app.state)


# =============================================================================
# Middleware & Error Handlers
# =============================================================================

@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all incoming requests with timing information."""
    start_time = time.time()

    # Log request
    logger.info(f"Request: {request.method} {request.url.path}")

    # Process request
    response = await call_next(request)

    # Log response
    process_time = (time.time() - start_time) * 1000
    logger.info(f"Response: {response.status_code} - {process_time:.2f}ms")

    # Add custom headers
    response.headers["X-Process-Time"] = f"{process_time:.2f}ms"

    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Reject malformed input with 400 and the field errors."""
    logger.warning(f"Validation error on {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=convert_numpy_types({
            "error": "Validation Error",
            "detail": [
                {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
                for err in exc.errors()
            ],
            "body": exc.body if isinstance(exc.body, (dict, list, str, type(None))) else None,
        })
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions."""
    logger.info(f"HTTP exception: {exc.status_code} - {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.detail,
            "status_code": exc.status_code
        }
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.error(f"Unexpected error: {exc}\n{traceback.format_exc()}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal Server Error",
            "detail": str(exc) if settings.api.debug else "An unexpected error occurred",
            "type": type(exc).__name__
        }
    )


# =============================================================================
# Health Check & Root Endpoints
# =============================================================================

@app.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check(
    request: Request,
    scheduler: JobScheduler = Depends(get_scheduler),
    client: IBMQuantumClient = Depends(get_ibm_client),
):
    """
    Check system health and component availability.

    Useful for load balancer health checks and deployment verification.
    """
    return HealthResponse(
        status="healthy",
        version=settings.api.version,
        environment=settings.environment,
        timestamp=datetime.now().isoformat(),
        components={
            "api": "ready",
            "store": f"{len(request.app.state.store.jobs)} jobs",
            "scheduler": "running" if scheduler.is_running else "stopped",
            "ibm_quantum": "configured" if client.is_configured() else "not_configured",
        }
    )


@app.get("/", tags=["Root"])
async def root():
    """API root endpoint with quick links."""
    return {
        "message": "Welcome to the Quantum Job Dashboard API",
        "version": settings.api.version,
        "documentation": {
            "swagger_ui": f"{settings.api.docs_url}",
            "redoc": f"{settings.api.redoc_url}",
            "openapi_schema": "/openapi.json"
        },
        "endpoints": {
            "health": "/health",
            "jobs": "/api/jobs",
            "search": "/api/jobs/search?q=",
            "backends": "/api/backends",
            "sessions": "/api/sessions",
            "stats": "/api/analytics/stats",
            "trends": "/api/analytics/trends",
            "export_csv": "/api/export/csv",
            "export_json": "/api/export/json",
            "scheduler": "/api/system/scheduler",
        },
    }


# =============================================================================
# Job Endpoints
# =============================================================================

@app.get("/api/jobs", tags=["Jobs"])
async def list_jobs(
    page: int = Query(1, ge=1, description="1-based page number"),
    limit: int = Query(
        settings.api.default_page_size, ge=1, le=settings.api.max_page_size,
        description="Jobs per page",
    ),
    engine: JobLifecycleEngine = Depends(get_engine),
):
    """
    Paginated job list, newest submission first.

    Returns `{jobs, pagination: {currentPage, totalPages, totalJobs, limit}}`.
    """
    result = engine.paginate(page=page, limit=limit)
    return {"jobs": serialize(result["jobs"]), "pagination": result["pagination"]}


@app.get("/api/jobs/search", tags=["Jobs"])
async def search_jobs(
    q: Optional[str] = Query(None, description="Case-insensitive search term"),
    engine: JobLifecycleEngine = Depends(get_engine),
):
    """Substring search over job id, backend, status, name and tags."""
    if not q:
        raise HTTPException(status_code=400, detail="Search query is required")
    return serialize(engine.search_jobs(q))


@app.get("/api/jobs/status/{job_status}", tags=["Jobs"])
async def get_jobs_by_status(
    job_status: str,
    engine: JobLifecycleEngine = Depends(get_engine),
):
    """Jobs currently in one status."""
    try:
        wanted = JobStatus(job_status)
    except ValueError:
        valid = [s.value for s in JobStatus]
        raise HTTPException(status_code=400, detail=f"Invalid status '{job_status}'. Must be one of {valid}")
    return serialize(engine.jobs_by_status(wanted))


@app.get("/api/jobs/{job_id}", tags=["Jobs"])
async def get_job(job_id: str, engine: JobLifecycleEngine = Depends(get_engine)):
    """Single job by id."""
    job = engine.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return serialize(job)


@app.post("/api/jobs", status_code=status.HTTP_201_CREATED, tags=["Jobs"])
async def create_job(
    request: JobCreateRequest,
    engine: JobLifecycleEngine = Depends(get_engine),
):
    """
    Submit a job.

    A queued job is placed at the end of its backend's queue. Qubits must be
    1-1000, shots 1-100000 and the program non-empty; anything else is
    rejected with 400.

    **Example**:
    ```bash
    curl -X POST "http://localhost:5000/api/jobs" \\
      -H "Content-Type: application/json" \\
      -d '{"name": "Bell State", "backend": "ibm_cairo", "qubits": 5,
           "shots": 1024, "program": "h q[0];\\ncx q[0],q[1];"}'
    ```
    """
    job = engine.create_job(
        backend=request.backend,
        qubits=request.qubits,
        shots=request.shots,
        program=request.program,
        name=request.name,
        tags=request.tags,
        session_id=request.session_id,
        status=request.status,
    )
    return serialize(job)


@app.patch("/api/jobs/{job_id}/status", tags=["Jobs"])
async def update_job_status(
    job_id: str,
    request: StatusUpdateRequest,
    engine: JobLifecycleEngine = Depends(get_engine),
):
    """Move a job to a new status."""
    job = engine.transition_status(job_id, request.status, request.error)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return serialize(job)


@app.delete("/api/jobs/{job_id}", tags=["Jobs"])
async def delete_job(job_id: str, engine: JobLifecycleEngine = Depends(get_engine)):
    """Delete a job."""
    if not engine.delete_job(job_id):
        raise HTTPException(status_code=404, detail="Job not found")
    return {"success": True}


# =============================================================================
# Backend & Session Endpoints
# =============================================================================

@app.get("/api/backends", tags=["Backends"])
async def list_backends(engine: JobLifecycleEngine = Depends(get_engine)):
    return serialize(engine.list_backends())


@app.get("/api/backends/{name}", tags=["Backends"])
async def get_backend(name: str, engine: JobLifecycleEngine = Depends(get_engine)):
    backend = engine.get_backend(name)
    if backend is None:
        raise HTTPException(status_code=404, detail="Backend not found")
    return serialize(backend)


@app.post("/api/backends", status_code=status.HTTP_201_CREATED, tags=["Backends"])
async def create_backend(
    request: BackendCreateRequest,
    engine: JobLifecycleEngine = Depends(get_engine),
):
    """Register a backend. Its queue length starts at 0."""
    try:
        backend = engine.create_backend(
            name=request.name,
            qubits=request.qubits,
            status=request.status,
            average_wait_time=request.average_wait_time,
            uptime=request.uptime,
        )
    except DuplicateKeyError:
        raise HTTPException(status_code=409, detail=f"Backend '{request.name}' already exists")
    return serialize(backend)


@app.patch("/api/backends/{name}", tags=["Backends"])
async def update_backend(
    name: str,
    request: BackendUpdateRequest,
    engine: JobLifecycleEngine = Depends(get_engine),
):
    """Update backend attributes. Only the non-null fields sent are changed."""
    try:
        backend = engine.update_backend(
            name, **request.model_dump(exclude_unset=True, exclude_none=True)
        )
    except InvalidEntityError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if backend is None:
        raise HTTPException(status_code=404, detail="Backend not found")
    return serialize(backend)


@app.get("/api/backends/{name}/jobs", tags=["Backends"])
async def get_backend_jobs(name: str, engine: JobLifecycleEngine = Depends(get_engine)):
    """Jobs targeting one backend, newest submission first."""
    if engine.get_backend(name) is None:
        raise HTTPException(status_code=404, detail="Backend not found")
    jobs = sorted(engine.jobs_by_backend(name), key=lambda j: j.submission_time, reverse=True)
    return serialize(jobs)


@app.get("/api/sessions", tags=["Sessions"])
async def list_sessions(engine: JobLifecycleEngine = Depends(get_engine)):
    """Sessions with the most recent activity first."""
    return serialize(engine.list_sessions())


@app.post("/api/sessions", status_code=status.HTTP_201_CREATED, tags=["Sessions"])
async def create_session(
    request: SessionCreateRequest,
    engine: JobLifecycleEngine = Depends(get_engine),
):
    return serialize(engine.create_session(name=request.name, status=request.status))


# =============================================================================
# Analytics & Export Endpoints
# =============================================================================

@app.get("/api/analytics/stats", tags=["Analytics"])
async def get_job_stats(analytics: AnalyticsAggregator = Depends(get_analytics)):
    """`{totalJobs, runningJobs, queuedJobs, successRate}`"""
    return analytics.get_job_stats()


@app.get("/api/analytics/trends", tags=["Analytics"])
async def get_job_trends(
    days: int = Query(7, ge=1, le=90, description="Days in the window, including today"),
    analytics: AnalyticsAggregator = Depends(get_analytics),
):
    """Jobs submitted per calendar day, oldest first."""
    return analytics.get_job_trends(days=days)


@app.get("/api/analytics/breakdown", tags=["Analytics"])
async def get_breakdown(analytics: AnalyticsAggregator = Depends(get_analytics)):
    return {
        "statuses": analytics.get_status_breakdown(),
        "backends": analytics.get_backend_breakdown(),
    }


@app.get("/api/analytics/durations", tags=["Analytics"])
async def get_duration_stats(analytics: AnalyticsAggregator = Depends(get_analytics)):
    return convert_numpy_types(analytics.get_duration_stats())


@app.get("/api/export/csv", tags=["Export"])
async def export_csv(analytics: AnalyticsAggregator = Depends(get_analytics)):
    """Download every job as CSV."""
    return Response(
        content=analytics.export_csv(),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="quantum_jobs.csv"'},
    )


@app.get("/api/export/json", tags=["Export"])
async def export_json(analytics: AnalyticsAggregator = Depends(get_analytics)):
    """Download every job as JSON."""
    return JSONResponse(
        content=analytics.export_records(),
        headers={"Content-Disposition": 'attachment; filename="quantum_jobs.json"'},
    )


# =============================================================================
# Scheduler Endpoints
# =============================================================================

@app.get("/api/system/scheduler", tags=["System"])
async def get_scheduler_status(scheduler: JobScheduler = Depends(get_scheduler)):
    """Background scheduler state and lifetime statistics."""
    stats = scheduler.get_statistics()
    stats["config"] = scheduler.config.model_dump(exclude={"seed"})
    return convert_numpy_types(stats)


@app.post("/api/system/scheduler/tick", tags=["System"])
async def force_scheduler_tick(scheduler: JobScheduler = Depends(get_scheduler)):
    """Run one scheduler tick immediately and return what it did."""
    report = scheduler.tick()
    return convert_numpy_types(report.to_dict())


# =============================================================================
# IBM Quantum Endpoints
# =============================================================================

@app.get("/api/sync/ibm/status", tags=["IBM Quantum"])
async def get_ibm_sync_status(client: IBMQuantumClient = Depends(get_ibm_client)):
    return client.get_api_status()


@app.post("/api/sync/ibm", tags=["IBM Quantum"])
async def sync_ibm_jobs(
    client: IBMQuantumClient = Depends(get_ibm_client),
    engine: JobLifecycleEngine = Depends(get_engine),
):
    """Import IBM Quantum jobs that are not in the store yet."""
    if not client.is_configured():
        logger.info("IBM Quantum API not configured, using simulated data")
        return {"message": "Using simulated data for demonstration", "configured": False}

    try:
        provider_jobs = await run_in_threadpool(client.fetch_jobs)
    except IBMQuantumError as e:
        logger.error(f"IBM Quantum sync failed: {e}")
        raise HTTPException(status_code=502, detail="Failed to sync with IBM Quantum")

    imported = skipped = 0
    for provider_job in provider_jobs:
        if engine.get_job(provider_job.id) is not None:
            skipped += 1
            continue
        engine.import_job(to_dashboard_job(provider_job))
        imported += 1

    logger.info(f"IBM Quantum sync imported {imported} jobs ({skipped} already present)")
    return {
        "message": "Sync completed successfully",
        "configured": True,
        "imported": imported,
        "skipped": skipped,
    }


@app.get("/api/ibm-quantum/live", tags=["IBM Quantum"])
async def get_ibm_live_data(client: IBMQuantumClient = Depends(get_ibm_client)):
    """Live jobs, backends and summary counts straight from IBM Quantum."""
    if not client.is_configured():
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "error": "IBM Quantum API not configured",
                "details": "Set IBM_QUANTUM_API_TOKEN in the environment or .env file",
            },
        )

    return await run_in_threadpool(client.get_live_summary)


# =============================================================================
# Application Lifespan Events
# =============================================================================

async def startup_event(app: FastAPI):
    """Seed the store and start the simulated scheduler."""
    logger.info("=" * 80)
    logger.info("Quantum Job Dashboard API Starting")
    logger.info("=" * 80)
    logger.info(f"Version: {settings.api.version}")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Debug Mode: {settings.api.debug}")
    logger.info(f"API Host: {settings.api.host}:{settings.api.port}")
    logger.info(f"IBM Quantum: {'Configured' if app.state.ibm_client.is_configured() else 'Not configured'}")
    logger.info(f"Scheduler: {'Enabled' if app.state.scheduler_config.enabled else 'Disabled'}")
    logger.info(f"Documentation: http://{settings.api.host}:{settings.api.port}{settings.api.docs_url}")
    logger.info("=" * 80)

    await bootstrap(app.state)

    if app.state.scheduler_config.enabled:
        try:
            await app.state.scheduler.start()
        except SchedulerAlreadyRunning:
            logger.warning("Scheduler was already running at startup")


async def shutdown_event(app: FastAPI):
    """Stop the scheduler before the event loop goes away."""
    logger.info("=" * 80)
    logger.info("Quantum Job Dashboard API Shutting Down")
    logger.info("=" * 80)
    await app.state.scheduler.stop()


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "quantum_dashboard.api.main:app",
        host=settings.api.host,
        port=settings.api.port,
        reload=settings.api.debug,
        log_level=settings.api.log_level.lower(),
    )
