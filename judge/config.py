"""Centralized configuration management using Pydantic Settings.

This module provides typed configuration for the execution engine,
loaded from environment variables with sensible defaults.

Usage:
    from judge.config import get_settings
    settings = get_settings()
    memory = settings.sandbox.memory
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _parse_bool(v):
    if isinstance(v, str):
        return v.lower() in ("1", "true", "yes")
    return bool(v)


class RedisSettings(BaseSettings):
    """Redis connection configuration."""

    model_config = SettingsConfigDict(env_prefix="REDIS_", extra="ignore")

    host: str = Field(default="redis", description="Redis host")
    port: int = Field(default=6379, description="Redis port")
    password: str = Field(default="", description="Redis password")
    max_connections: int = Field(default=200, description="Maximum pool connections")
    pool_timeout_sec: float = Field(default=5.0, description="Pool timeout in seconds")
    health_check_interval: int = Field(default=30, description="Health check interval in seconds")
    retry_on_timeout: bool = Field(default=True, description="Retry on timeout")
    socket_timeout: float = Field(default=5.0, description="Socket timeout in seconds")
    socket_connect_timeout: float = Field(default=5.0, description="Socket connect timeout in seconds")


class PostgresSettings(BaseSettings):
    """PostgreSQL connection configuration (problem catalog and submissions)."""

    model_config = SettingsConfigDict(
        env_prefix="POSTGRES_",
        extra="ignore",
        populate_by_name=True,
    )

    host: str = Field(default="postgres", description="PostgreSQL host")
    port: int = Field(default=5432, description="PostgreSQL port")
    user: str = Field(default="judge", description="PostgreSQL user")
    password: str = Field(default="", description="PostgreSQL password")
    database: str = Field(
        default="judge",
        validation_alias="POSTGRES_DB",
        description="Database name",
    )
    pool_min_size: int = Field(default=2, description="Minimum pool size")
    pool_max_size: int = Field(default=10, description="Maximum pool size")
    pool_timeout: int = Field(default=30, description="Timeout for acquiring connections")
    pool_max_lifetime: int = Field(
        default=1800, description="Maximum connection lifetime in seconds"
    )
    pool_max_idle: int = Field(
        default=300, description="Maximum idle time before closing connection"
    )
    pool_reconnect_timeout: int = Field(
        default=300, description="Seconds to keep retrying a lost connection"
    )

    def get_dsn(self) -> str:
        """Generate PostgreSQL DSN connection string."""
        return (
            f"host={self.host} port={self.port} user={self.user} "
            f"password={self.password} dbname={self.database} sslmode=disable"
        )


class SandboxSettings(BaseSettings):
    """Container sandbox resource ceilings and workspace layout."""

    model_config = SettingsConfigDict(env_prefix="SANDBOX_", extra="ignore")

    docker_bin: str = Field(default="docker", description="Docker CLI executable")
    cpus: float = Field(default=1.0, description="CPU share per container")
    memory: str = Field(default="512m", description="Memory ceiling per container")
    pids_limit: int = Field(default=256, description="Process-count ceiling per container")
    mount_path: str = Field(default="/code", description="Workspace mount point inside the container")
    workspace_root: str | None = Field(default=None, description="Base directory for job workspaces")
    max_output_bytes: int = Field(default=1_000_000, description="Per-stream output cap")
    warmup_enabled: bool = Field(default=True, description="Prime slow toolchains once per process")

    @field_validator("warmup_enabled", mode="before")
    @classmethod
    def parse_warmup(cls, v):
        return _parse_bool(v)


class LanguageImageSettings(BaseSettings):
    """Per-language container image overrides."""

    model_config = SettingsConfigDict(extra="ignore")

    python: str = Field(default="python:3.11-slim", alias="py_image")
    cpp: str = Field(default="gcc:12.2.0", alias="cpp_image")
    java: str = Field(default="eclipse-temurin:17-jdk-jammy", alias="java_image")


class TimeoutSettings(BaseSettings):
    """Stage and job timeouts, in milliseconds."""

    model_config = SettingsConfigDict(env_prefix="EXEC_", extra="ignore")

    compile_timeout_ms: int = Field(default=15000)
    run_timeout_ms: int = Field(default=8000)
    java_run_timeout_ms: int = Field(default=15000)
    # floors for the outer job deadline, which never drops below a profile's
    # stage budget plus job_overhead_ms
    single_run_timeout_ms: int = Field(default=15000)
    batch_case_timeout_ms: int = Field(default=20000)
    job_overhead_ms: int = Field(default=10000)
    warmup_timeout_ms: int = Field(default=15000)


class ExecutorSettings(BaseSettings):
    """Backend chain and admission configuration."""

    model_config = SettingsConfigDict(env_prefix="EXECUTOR_", extra="ignore")

    backends_raw: str = Field(default="local,piston", validation_alias="EXECUTOR_BACKENDS")
    piston_url: str = Field(default="https://emkc.org/api/v2/piston")
    jdoodle_url: str = Field(default="https://jdoodle-compiler.p.rapidapi.com")
    jdoodle_api_key: str = Field(default="")
    request_timeout_sec: float = Field(default=15.0)
    max_concurrent_jobs: int = Field(default=4, ge=1)

    @property
    def backends(self) -> list[str]:
        """Parse comma-separated backend names into an ordered list."""
        return [b.strip().lower() for b in self.backends_raw.split(",") if b.strip()]


class SessionSettings(BaseSettings):
    """Session store configuration."""

    model_config = SettingsConfigDict(env_prefix="SESSION_", extra="ignore")

    key_prefix: str = Field(default="compiler:session:")
    ttl_sec: int = Field(default=86400, description="Session expiry in seconds")


class EventSettings(BaseSettings):
    """Event broadcast configuration."""

    model_config = SettingsConfigDict(env_prefix="EVENTS_", extra="ignore")

    queue_size: int = Field(default=1000, ge=1)
    session_channel: str = Field(default="compiler:session:update")
    submission_event: str = Field(default="compiler:submission:update")
    user_channel_prefix: str = Field(default="user:")


class RateLimitSettings(BaseSettings):
    """Per-client request ceilings for each bucket, per window."""

    model_config = SettingsConfigDict(env_prefix="RATE_LIMIT_", extra="ignore")

    enabled: bool = Field(default=True)
    window_sec: int = Field(default=60)
    run: int = Field(default=60)
    result: int = Field(default=120)
    submit: int = Field(default=20)

    @field_validator("enabled", mode="before")
    @classmethod
    def parse_enabled(cls, v):
        return _parse_bool(v)


class CorsSettings(BaseSettings):
    """CORS configuration."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    origins_raw: str = Field(
        default="http://localhost:3000",
        validation_alias="CORS_ORIGINS",
    )

    @property
    def origins(self) -> list[str]:
        """Parse comma-separated origins into list."""
        return [o.strip() for o in self.origins_raw.split(",") if o.strip()]

    @property
    def allow_credentials(self) -> bool:
        """Credentials not allowed with wildcard origins."""
        return self.origins != ["*"]


class DebugSettings(BaseSettings):
    """Debug flags configuration."""

    model_config = SettingsConfigDict(extra="ignore")

    request: bool = Field(default=False, alias="request_debug")
    sandbox: bool = Field(default=False, alias="sandbox_debug")

    @field_validator("*", mode="before")
    @classmethod
    def parse_bool(cls, v):
        return _parse_bool(v)


class FeatureSettings(BaseSettings):
    """Feature flags configuration."""

    model_config = SettingsConfigDict(extra="ignore")

    db: bool = Field(default=False, alias="enable_db")
    prime_warm_pool: bool = Field(default=False, alias="prime_warm_pool")

    @field_validator("*", mode="before")
    @classmethod
    def parse_bool(cls, v):
        return _parse_bool(v)


class Settings:
    """Main application settings combining all configuration sections.

    This is not a BaseSettings subclass to avoid env var conflicts.
    Each subsetting is loaded independently with its own prefix.
    """

    def __init__(self) -> None:
        self.redis = RedisSettings()
        self.postgres = PostgresSettings()
        self.sandbox = SandboxSettings()
        self.images = LanguageImageSettings()
        self.timeouts = TimeoutSettings()
        self.executor = ExecutorSettings()
        self.session = SessionSettings()
        self.events = EventSettings()
        self.rate_limit = RateLimitSettings()
        self.cors = CorsSettings()
        self.debug = DebugSettings()
        self.features = FeatureSettings()


@lru_cache
def get_settings() -> Settings:
    """Get cached Settings instance (singleton pattern)."""
    return Settings()


def clear_settings_cache() -> None:
    """Clear cached settings (useful for testing)."""
    get_settings.cache_clear()
