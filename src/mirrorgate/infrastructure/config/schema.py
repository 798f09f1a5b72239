"""Pydantic configuration models with validation."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import (
    AliasChoices,
    AliasPath,
    BaseModel,
    Field,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

Environment = Literal["dev", "test", "prod"]
LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]
LogFormat = Literal["json", "console"]
SnapshotMode = Literal["probe", "file"]
DropPolicy = Literal["drop", "penalize"]

DEFAULT_SOURCE_URL = (
    "https://raw.githubusercontent.com/TeamPiped/documentation/refs/heads/main/"
    "content/docs/public-instances/index.md"
)


def _normalize_path(value: Any) -> Path:
    """
    Normalize a path-like value without causing filesystem side-effects.

    This function MUST NOT create directories or files.
    """
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise TypeError(f"Expected path-like value, got: {type(value)!r}")


class RegistryConfig(BaseModel):
    """Where instances are discovered from."""

    source_url: Optional[str] = Field(
        default=DEFAULT_SOURCE_URL,
        description="Registry document URL (markdown table or JSON list).",
    )
    fallback_url: Optional[str] = Field(
        default=None,
        description="Single instance used when discovery yields nothing.",
    )
    default_api_path: str = Field(
        default="/api/v1",
        description="API sub-path appended to origins found by the permissive scan.",
    )

    @model_validator(mode="after")
    def _require_source_or_fallback(self) -> "RegistryConfig":
        if not self.source_url and not self.fallback_url:
            raise ValueError(
                "registry.source_url or registry.fallback_url must be set"
            )
        return self


class SnapshotConfig(BaseModel):
    """Snapshot caching and persistence."""

    ttl_seconds: int = Field(
        default=300,
        description="How long a cached snapshot is served before a rebuild.",
    )
    path: Path = Field(
        default=Path("./public/instances.json"),
        description="Snapshot artifact written by `mirrorgate check`.",
    )
    mode: SnapshotMode = Field(
        default="probe",
        description="'probe' rebuilds by probing; 'file' reloads the artifact.",
    )
    refresh_interval_seconds: int = Field(
        default=0,
        description="Background rebuild interval while serving. 0 = disabled.",
    )

    @field_validator("path", mode="before")
    @classmethod
    def _validate_path(cls, v: Any) -> Path:
        return _normalize_path(v)

    @field_validator("ttl_seconds", "refresh_interval_seconds")
    @classmethod
    def _validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("must be >= 0")
        return v


class ProbingConfig(BaseModel):
    """Health-check pipeline tuning.

    All delays are in seconds.  The jitter window is sampled uniformly
    between every two requests sent to the same instance.
    """

    preflight_path: str = Field(default="/healthcheck")
    preflight_timeout_seconds: float = Field(default=5.0)
    preflight_backoff_seconds: float = Field(default=5.0)

    version_paths: list[str] = Field(
        default=["/version", "/api/v1/version", "/api/version"],
    )
    version_timeout_seconds: float = Field(default=5.0)
    version_concurrency: int = Field(default=20)

    terms_per_instance: int = Field(
        default=3,
        description="Distinct terms drawn from the term pool per instance.",
    )
    request_timeout_seconds: float = Field(default=10.0)
    server_error_retry_delay_seconds: float = Field(default=1.0)
    jitter_min_seconds: float = Field(default=0.3)
    jitter_max_seconds: float = Field(default=2.5)

    suggestion_path: str = Field(default="/suggestions")
    suggestion_query_key: str = Field(default="query")
    search_path: str = Field(default="/search")
    search_query_key: str = Field(default="q")
    search_filters: list[str] = Field(default=["all", "videos", "music_songs"])

    drop_policy: DropPolicy = Field(
        default="drop",
        description=(
            "'drop' removes instances with zero suggestion or search successes; "
            "'penalize' keeps them and lets their rates sink them in the ranking."
        ),
    )

    @field_validator("terms_per_instance", "version_concurrency")
    @classmethod
    def _validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be >= 1")
        return v

    @model_validator(mode="after")
    def _validate_jitter(self) -> "ProbingConfig":
        if self.jitter_min_seconds < 0 or self.jitter_max_seconds < self.jitter_min_seconds:
            raise ValueError("jitter window must satisfy 0 <= min <= max")
        return self


class ProxyConfig(BaseModel):
    """Failover proxy surface."""

    allowed_methods: list[str] = Field(
        default=["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    )
    allowed_headers: list[str] = Field(
        default=["Content-Type", "Authorization", "Range", "X-Requested-With"],
    )
    forwarded_by: str = Field(
        default="mirrorgate",
        description="Value of the x-forwarded-by header sent upstream.",
    )


class AppConfig(BaseModel):
    """
    Canonical application configuration (validated, final).

    Note:
    - YAML is expected to be sectioned (registry/http/snapshot/probing/proxy/logging).
    - Environment variables are handled by EnvOverrides(BaseSettings) to allow strict
      precedence control (defaults < YAML < ENV < CLI) in load.py.
    """

    app_name: str = Field(default="mirrorgate", description="Application name.")
    environment: Environment = Field(
        default="dev",
        description="Runtime environment (affects defaults like log format).",
    )

    # HTTP (YAML section: http.*)
    http_timeout_seconds: float = Field(
        default=15.0,
        validation_alias=AliasChoices(
            "http_timeout_seconds",
            AliasPath("http", "timeout_seconds"),
        ),
        description="Per-attempt timeout for proxied upstream requests.",
    )
    http_user_agent: str = Field(
        default="mirrorgate/0.1.0",
        validation_alias=AliasChoices(
            "http_user_agent",
            AliasPath("http", "user_agent"),
        ),
        description="User-Agent for registry fetches and probes.",
    )

    # Logging (YAML section: logging.*)
    log_level: LogLevel = Field(
        default="INFO",
        validation_alias=AliasChoices(
            "log_level",
            AliasPath("logging", "level"),
        ),
    )
    log_format: Optional[LogFormat] = Field(
        default=None,
        validation_alias=AliasChoices(
            "log_format",
            AliasPath("logging", "format"),
        ),
        description=(
            "Log renderer format (console/json). If unset, derived from environment."
        ),
    )

    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    snapshot: SnapshotConfig = Field(default_factory=SnapshotConfig)
    probing: ProbingConfig = Field(default_factory=ProbingConfig)
    proxy: ProxyConfig = Field(default_factory=ProxyConfig)

    @field_validator("http_timeout_seconds")
    @classmethod
    def _validate_http_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("http_timeout_seconds must be > 0")
        return v

    @model_validator(mode="after")
    def _derive_defaults(self) -> "AppConfig":
        # Default log format: console in dev/test, json in prod.
        if self.log_format is None:
            self.log_format = "json" if self.environment == "prod" else "console"
        return self

    def to_sectioned_dict(self) -> dict[str, Any]:
        """
        Dump configuration in the sectioned shape used by config.yaml/docs.
        """
        snapshot = self.snapshot.model_dump()
        snapshot["path"] = str(self.snapshot.path)
        return {
            "app_name": self.app_name,
            "environment": self.environment,
            "http": {
                "timeout_seconds": self.http_timeout_seconds,
                "user_agent": self.http_user_agent,
            },
            "logging": {"level": self.log_level, "format": self.log_format},
            "registry": self.registry.model_dump(),
            "snapshot": snapshot,
            "probing": self.probing.model_dump(),
            "proxy": self.proxy.model_dump(),
        }


class EnvOverrides(BaseSettings):
    """
    Environment-variable overrides (all optional).

    Supported env var examples (flat, explicit):
    - MIRRORGATE_REGISTRY_SOURCE_URL
    - MIRRORGATE_REGISTRY_FALLBACK_URL
    - MIRRORGATE_SNAPSHOT_TTL_SECONDS
    - MIRRORGATE_HTTP_TIMEOUT_SECONDS
    - MIRRORGATE_LOG_LEVEL
    """

    model_config = SettingsConfigDict(
        env_prefix="MIRRORGATE_",
        extra="ignore",
        case_sensitive=False,
    )

    app_name: Optional[str] = None
    environment: Optional[Environment] = None

    http_timeout_seconds: Optional[float] = None
    http_user_agent: Optional[str] = None

    log_level: Optional[LogLevel] = None
    log_format: Optional[LogFormat] = None

    registry_source_url: Optional[str] = None
    registry_fallback_url: Optional[str] = None

    snapshot_ttl_seconds: Optional[int] = None
    snapshot_path: Optional[Path] = None
    snapshot_mode: Optional[SnapshotMode] = None
    snapshot_refresh_interval_seconds: Optional[int] = None

    @field_validator("snapshot_path", mode="before")
    @classmethod
    def _validate_paths(cls, v: Any) -> Any:
        if v is None:
            return None
        return _normalize_path(v)

    def to_update_dict(self) -> dict[str, Any]:
        """
        Return only values that were actually provided (non-None), for merging.
        """
        return self.model_dump(exclude_none=True)
