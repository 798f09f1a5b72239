"""Build-snapshot use case: the full discovery, probing and ranking pipeline."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime, timezone

import structlog

from mirrorgate.domain.entities import InstanceDescriptor, RankedInstance, Snapshot
from mirrorgate.domain.ports import (
    InstanceCheckerPort,
    RegistrySourcePort,
    VersionProbePort,
)

log = structlog.get_logger(__name__)

ParseFn = Callable[[str], list[InstanceDescriptor]]
RankFn = Callable[[Iterable[RankedInstance]], list[RankedInstance]]


class BuildSnapshotUseCase:
    """Produces a ranked Snapshot from the registry.

    Flow:
        1. Fetch the registry document
        2. Parse it into deduplicated descriptors
        3. Probe versions for all instances (concurrently) and mark latest
        4. Check instances one at a time (preflight + functional probes)
        5. Rank the survivors
    """

    def __init__(
        self,
        *,
        registry: RegistrySourcePort,
        parse: ParseFn,
        version_probe: VersionProbePort,
        checker: InstanceCheckerPort,
        rank: RankFn,
        version_concurrency: int = 20,
    ) -> None:
        self._registry = registry
        self._parse = parse
        self._version_probe = version_probe
        self._checker = checker
        self._rank = rank
        self._version_concurrency = version_concurrency

    async def build(self) -> Snapshot:
        source = self._registry.source_url or ""
        document = await self._registry.fetch()
        descriptors = self._parse(document)
        log.info("snapshot_build_start", source=source, candidates=len(descriptors))

        if not descriptors:
            return Snapshot(generated_at=datetime.now(timezone.utc), source=source)

        survey = await self._version_probe.probe_all(
            descriptors, concurrency=self._version_concurrency
        )
        versions = survey.versions
        version_priority = survey.latest

        # One instance at a time; never overlap probe traffic.
        checked: list[RankedInstance] = []
        for descriptor in descriptors:
            try:
                result = await self._checker.check(
                    descriptor, versions.get(descriptor.api_url)
                )
            except Exception:
                log.error(
                    "instance_check_error",
                    api_url=descriptor.api_url,
                    exc_info=True,
                )
                continue
            if result is not None:
                checked.append(result)

        ranked = self._rank(checked)
        log.info(
            "snapshot_build_done",
            candidates=len(descriptors),
            kept=len(ranked),
            version_priority=version_priority,
        )
        return Snapshot(
            generated_at=datetime.now(timezone.utc),
            source=source,
            version_priority=version_priority,
            instances=tuple(ranked),
        )
