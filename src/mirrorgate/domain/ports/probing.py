"""Ports used by the snapshot pipeline."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from mirrorgate.domain.entities.instance import (
    InstanceDescriptor,
    RankedInstance,
    VersionInfo,
    VersionSurvey,
)


@runtime_checkable
class RegistrySourcePort(Protocol):
    """Fetches the raw registry document."""

    @property
    def source_url(self) -> str | None: ...

    async def fetch(self) -> str: ...


@runtime_checkable
class VersionProbePort(Protocol):
    """Probes versions for all instances and marks the latest."""

    async def probe_all(
        self,
        instances: Sequence[InstanceDescriptor],
        concurrency: int = 20,
    ) -> VersionSurvey: ...


@runtime_checkable
class InstanceCheckerPort(Protocol):
    """Checks one instance; returns None when it is dead or dropped."""

    async def check(
        self,
        instance: InstanceDescriptor,
        version: VersionInfo | None = None,
    ) -> RankedInstance | None: ...
