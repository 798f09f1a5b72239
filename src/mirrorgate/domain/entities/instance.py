"""Domain entities for instance discovery, probing and ranking.

Pure value objects without framework dependencies or I/O.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal

ProbeKind = Literal["preflight", "version", "suggestion", "search"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class InstanceDescriptor:
    """One instance as discovered in the registry document.

    ``api_url`` is the normalized origin + path (no trailing slash) and
    is the dedup key across the registry.
    """

    name: str
    api_url: str
    cdn: str | None = None
    locations: str | None = None
    raw: str = ""


@dataclass(frozen=True)
class VersionInfo:
    """Self-reported backend version of an instance."""

    version_raw: str | None = None
    is_latest: bool = False


@dataclass(frozen=True)
class VersionSurvey:
    """Per-instance versions plus the normalized latest one (e.g. ``1.3.0``)."""

    versions: Mapping[str, VersionInfo] = field(default_factory=dict)
    latest: str | None = None


@dataclass(frozen=True)
class ProbeAttempt:
    """Raw outcome of a single HTTP call made while checking an instance."""

    kind: ProbeKind
    url: str
    ok: bool
    status_code: int | None = None
    elapsed_ms: float = 0.0
    body_sample: str = ""
    error: str | None = None  # "timeout", "network_error", "server_error", ...
    term: str | None = None


@dataclass(frozen=True)
class Metrics:
    """Aggregate probe metrics for one check run of one instance."""

    suggestion_success_count: int = 0
    search_success_count: int = 0
    suggestion_success_rate: float = 0.0
    search_success_rate: float = 0.0
    combined_success_rate: float = 0.0
    avg_suggestion_ms: int | None = None
    avg_search_ms: int | None = None
    combined_latency_ms: int | None = None


@dataclass(frozen=True)
class RankedInstance:
    """Descriptor + version + metrics: the unit stored in a Snapshot."""

    descriptor: InstanceDescriptor
    version: VersionInfo = field(default_factory=VersionInfo)
    metrics: Metrics = field(default_factory=Metrics)
    checked_at: datetime = field(default_factory=_utcnow)
    attempts: tuple[ProbeAttempt, ...] = ()

    @property
    def api_url(self) -> str:
        return self.descriptor.api_url

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def cdn(self) -> str | None:
        return self.descriptor.cdn

    @property
    def is_latest(self) -> bool:
        return self.version.is_latest


@dataclass(frozen=True)
class Snapshot:
    """Ranked result of one full check cycle. Read-only to consumers.

    The order of ``instances`` is significant: index 0 is the most
    preferred instance.
    """

    generated_at: datetime
    source: str
    version_priority: str | None = None
    instances: tuple[RankedInstance, ...] = ()

    def __len__(self) -> int:
        return len(self.instances)


class MirrorgateError(Exception):
    """Base error for mirrorgate domain/use cases."""


class SnapshotUnavailableError(MirrorgateError):
    """No snapshot is cached and building a new one failed."""


class SnapshotWriteError(MirrorgateError):
    """The snapshot artifact could not be persisted."""


class RoutingExhaustedError(MirrorgateError):
    """Every instance failed for one proxied request."""

    def __init__(self, attempts: int, last_error: str | None) -> None:
        super().__init__(
            f"all instances failed after {attempts} attempt(s): {last_error}"
        )
        self.attempts = attempts
        self.last_error = last_error
