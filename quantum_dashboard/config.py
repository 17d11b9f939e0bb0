"""
Configuration Management for the Quantum Job Dashboard.

This module provides a type-safe, validated configuration system using Pydantic.
Configuration values are loaded from environment variables or .env file with
intelligent defaults for development.

Usage:
    >>> from quantum_dashboard.config import settings
    >>> print(settings.scheduler.min_interval_s)
    >>> print(settings.ibm_quantum.is_configured)
    >>> print(settings.api.default_page_size)
"""

from typing import List, Optional, Literal
from pydantic import Field, SecretStr, field_validator, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


# =============================================================================
# Scheduler Configuration
# =============================================================================

class SchedulerConfig(BaseSettings):
    """
    Simulated scheduler configuration.

    Controls the background ticker that advances job state to imitate a live
    quantum queueing backend: tick period jitter, the probability of each
    per-tick action, and the demo data inserted at startup.

    Environment Variables:
        SCHEDULER_ENABLED: Run the background ticker (default: true)
        SCHEDULER_MIN_INTERVAL_S: Lower bound of the tick period (default: 20)
        SCHEDULER_MAX_INTERVAL_S: Upper bound of the tick period (default: 30)
        SCHEDULER_SEED: Random seed for reproducible simulations (default: none)
        SCHEDULER_SEED_JOBS: Demo jobs inserted at startup (default: 15)

    Example:
        >>> scheduler_config = SchedulerConfig()
        >>> print(scheduler_config.promote_probability)  # 0.4
    """

    # Run the background ticker at all
    enabled: bool = Field(
        default=True,
        description="Start the simulated scheduler on application startup"
    )

    # Tick period is drawn uniformly from [min_interval_s, max_interval_s]
    min_interval_s: float = Field(
        default=20.0,
        gt=0.0,
        description="Minimum seconds between scheduler ticks"
    )

    max_interval_s: float = Field(
        default=30.0,
        gt=0.0,
        description="Maximum seconds between scheduler ticks"
    )

    promote_probability: float = Field(
        default=0.4,
        ge=0.0,
        le=1.0,
        description="Chance per tick of moving one queued job to running"
    )

    resolve_probability: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        description="Chance per tick of resolving one running job"
    )

    success_probability: float = Field(
        default=0.85,
        ge=0.0,
        le=1.0,
        description="Chance that a resolved job ends in done rather than failed"
    )

    spawn_probability: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
        description="Chance per tick of submitting one new synthetic job"
    )

    seed: Optional[int] = Field(
        default=None,
        description="Seed for the scheduler random generator (None = entropy)"
    )

    # Demo data inserted when the API starts
    seed_jobs: int = Field(
        default=15,
        ge=0,
        le=1000,
        description="Number of demo jobs inserted at startup (0 disables)"
    )

    history_days: int = Field(
        default=7,
        ge=1,
        le=90,
        description="Demo jobs are spread over this many past days"
    )

    @field_validator("max_interval_s")
    @classmethod
    def validate_max_ge_min(cls, v: float, info) -> float:
        """Ensure max_interval_s >= min_interval_s."""
        if "min_interval_s" in info.data:
            minimum = info.data["min_interval_s"]
            if v < minimum:
                raise ValueError(
                    f"max_interval_s ({v}) must be >= min_interval_s ({minimum})"
                )
        return v

    model_config = SettingsConfigDict(
        env_prefix="SCHEDULER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


# =============================================================================
# IBM Quantum Provider Configuration
# =============================================================================

class IBMQuantumConfig(BaseSettings):
    """
    IBM Quantum cloud API configuration.

    The provider is optional. Without a token the dashboard runs entirely on
    synthetic data; with one, live jobs and backends are fetched from IBM.

    Environment Variables:
        IBM_QUANTUM_API_TOKEN: IBM Cloud API key (default: unset)
        IBM_QUANTUM_BASE_URL: Quantum API base URL
        IBM_QUANTUM_TIMEOUT_S: HTTP timeout in seconds (default: 30)

    Example:
        >>> ibm_config = IBMQuantumConfig()
        >>> print(ibm_config.is_configured)  # False without a token
    """

    api_token: Optional[SecretStr] = Field(
        default=None,
        description="IBM Cloud API key exchanged for an IAM bearer token"
    )

    base_url: str = Field(
        default="https://quantum.cloud.ibm.com/api/v1",
        description="Primary IBM Quantum API base URL"
    )

    legacy_url: str = Field(
        default="https://us-east.quantum-computing.cloud.ibm.com/api/v1",
        description="Legacy IBM Quantum API base URL, probed after the primary"
    )

    iam_url: str = Field(
        default="https://iam.cloud.ibm.com/identity/token",
        description="IBM Cloud IAM token endpoint"
    )

    timeout_s: float = Field(
        default=30.0,
        gt=0.0,
        description="HTTP request timeout in seconds"
    )

    # IAM tokens live for 60 minutes; refresh a little earlier
    token_ttl_s: int = Field(
        default=3000,
        ge=60,
        description="Seconds a bearer token is reused before refreshing"
    )

    job_limit: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Maximum number of jobs fetched per request"
    )

    @computed_field
    @property
    def is_configured(self) -> bool:
        """Check if an API token is available."""
        return self.api_token is not None and bool(self.api_token.get_secret_value())

    model_config = SettingsConfigDict(
        env_prefix="IBM_QUANTUM_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


# =============================================================================
# API Configuration
# =============================================================================

class APIConfig(BaseSettings):
    """
    FastAPI application configuration.

    Controls API server settings, CORS, logging, and pagination for the
    REST API consumed by the dashboard UI.

    Environment Variables:
        API_HOST: Server bind address (default: 0.0.0.0)
        API_PORT: Server port (default: 5000)
        API_DEBUG: Enable debug mode (default: true)
        API_LOG_LEVEL: Logging level (default: INFO)

    Example:
        >>> api_config = APIConfig()
        >>> app = FastAPI(
        ...     title=api_config.title,
        ...     debug=api_config.debug,
        ...     docs_url=api_config.docs_url
        ... )
    """

    # API server bind address (0.0.0.0 = all interfaces, 127.0.0.1 = localhost only)
    host: str = Field(
        default="0.0.0.0",
        description="API server bind address"
    )

    port: int = Field(
        default=5000,
        ge=1024,
        le=65535,
        description="API server port"
    )

    title: str = Field(
        default="Quantum Job Dashboard API",
        description="API title displayed in docs"
    )

    version: str = Field(
        default="0.1.0",
        description="API version"
    )

    # Enable debug mode (detailed errors, auto-reload)
    debug: bool = Field(
        default=True,
        description="Enable debug mode with detailed errors"
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level"
    )

    docs_url: str = Field(
        default="/docs",
        description="Swagger UI documentation endpoint"
    )

    redoc_url: str = Field(
        default="/redoc",
        description="ReDoc documentation endpoint"
    )

    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="CORS allowed origins for frontend access"
    )

    cors_allow_credentials: bool = Field(
        default=True,
        description="Allow cookies in CORS requests"
    )

    cors_allow_methods: List[str] = Field(
        default=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        description="Allowed HTTP methods for CORS"
    )

    cors_allow_headers: List[str] = Field(
        default=["*"],
        description="Allowed headers for CORS"
    )

    # Pagination defaults for GET /api/jobs
    default_page_size: int = Field(
        default=10,
        ge=1,
        description="Jobs per page when the client sends no limit"
    )

    max_page_size: int = Field(
        default=100,
        ge=1,
        description="Largest page a client may request"
    )

    model_config = SettingsConfigDict(
        env_prefix="API_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


# =============================================================================
# Global Settings Container
# =============================================================================

class Settings(BaseSettings):
    """
    Global application settings container.

    Aggregates all configuration sections into a single settings object
    for convenient access throughout the application.

    Usage:
        >>> from quantum_dashboard.config import settings
        >>>
        >>> # Scheduler tuning
        >>> p = settings.scheduler.promote_probability
        >>>
        >>> # Optional provider
        >>> if settings.ibm_quantum.is_configured:
        ...     print("Live IBM Quantum data enabled")
        >>>
        >>> # API configuration
        >>> api_host = settings.api.host
    """

    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)

    ibm_quantum: IBMQuantumConfig = Field(default_factory=IBMQuantumConfig)

    api: APIConfig = Field(default_factory=APIConfig)

    # Application environment
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
        validation_alias="APP_ENV"
    )

    @computed_field
    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @computed_field
    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True
    )


# =============================================================================
# Global Configuration Instance
# =============================================================================

# Singleton settings instance - import this throughout the application
settings = Settings()
