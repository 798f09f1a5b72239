"""Unit tests for BuildSnapshotUseCase."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

from mirrorgate.application.use_cases import BuildSnapshotUseCase
from mirrorgate.domain.entities import InstanceDescriptor, VersionInfo, VersionSurvey
from mirrorgate.infrastructure.ranking.ranker import rank
from mirrorgate.infrastructure.registry.source_parser import parse

_SOURCE = "https://registry.example/index.md"
_DOC = """\
| Name | API | Locations | CDN |
|------|-----|-----------|-----|
| A | https://a.example | DE | No |
| B | https://b.example | US | Yes |
| C | https://c.example | FR | No |
"""


def _registry(document: str = _DOC) -> MagicMock:
    registry = MagicMock()
    registry.source_url = _SOURCE
    registry.fetch = AsyncMock(return_value=document)
    return registry


def _version_probe(
    latest: str | None = "https://a.example", latest_raw: str = "1.3.0"
) -> MagicMock:
    probe = MagicMock()

    async def _probe_all(instances, concurrency=20):
        return VersionSurvey(
            versions={
                d.api_url: VersionInfo(
                    version_raw=latest_raw if d.api_url == latest else "1.2.0",
                    is_latest=d.api_url == latest,
                )
                for d in instances
            },
            latest="1.3.0" if latest else None,
        )

    probe.probe_all = AsyncMock(side_effect=_probe_all)
    return probe


def _checker(make_ranked, *, dead=(), broken=()) -> MagicMock:
    checker = MagicMock()
    order: list[str] = []

    async def _check(descriptor: InstanceDescriptor, version: VersionInfo | None = None):
        order.append(descriptor.api_url)
        if descriptor.api_url in broken:
            raise RuntimeError("unexpected")
        if descriptor.api_url in dead:
            return None
        return make_ranked(
            descriptor.api_url,
            cdn=descriptor.cdn,
            version=version.version_raw if version else None,
            is_latest=bool(version and version.is_latest),
        )

    checker.check = AsyncMock(side_effect=_check)
    checker.order = order
    return checker


def _use_case(registry, probe, checker) -> BuildSnapshotUseCase:
    return BuildSnapshotUseCase(
        registry=registry,
        parse=parse,
        version_probe=probe,
        checker=checker,
        rank=rank,
        version_concurrency=5,
    )


class TestBuild:
    async def test_full_pipeline(self, make_ranked) -> None:
        probe = _version_probe()
        checker = _checker(make_ranked)

        snapshot = await _use_case(_registry(), probe, checker).build()

        assert snapshot.source == _SOURCE
        assert snapshot.version_priority == "1.3.0"
        # latest first, then CDN-backed, then api_url
        assert [i.api_url for i in snapshot.instances] == [
            "https://a.example",
            "https://b.example",
            "https://c.example",
        ]
        assert snapshot.instances[0].is_latest is True
        probe.probe_all.assert_awaited_once()
        assert probe.probe_all.await_args.kwargs["concurrency"] == 5

    async def test_version_priority_is_normalized(self, make_ranked) -> None:
        probe = _version_probe(latest_raw="v1.3.0-abc123")

        snapshot = await _use_case(_registry(), probe, _checker(make_ranked)).build()

        assert snapshot.version_priority == "1.3.0"
        assert snapshot.instances[0].version.version_raw == "v1.3.0-abc123"

    async def test_checks_in_registry_order(self, make_ranked) -> None:
        checker = _checker(make_ranked)
        await _use_case(_registry(), _version_probe(), checker).build()

        assert checker.order == [
            "https://a.example",
            "https://b.example",
            "https://c.example",
        ]

    async def test_dead_and_broken_instances_skipped(self, make_ranked) -> None:
        checker = _checker(
            make_ranked, dead={"https://b.example"}, broken={"https://a.example"}
        )

        snapshot = await _use_case(_registry(), _version_probe(), checker).build()

        assert [i.api_url for i in snapshot.instances] == ["https://c.example"]

    async def test_no_latest_version(self, make_ranked) -> None:
        snapshot = await _use_case(
            _registry(), _version_probe(latest=None), _checker(make_ranked)
        ).build()

        assert snapshot.version_priority is None
        assert not any(i.is_latest for i in snapshot.instances)

    async def test_empty_registry(self, make_ranked) -> None:
        probe = _version_probe()
        checker = _checker(make_ranked)

        snapshot = await _use_case(_registry(""), probe, checker).build()

        assert len(snapshot) == 0
        assert snapshot.source == _SOURCE
        probe.probe_all.assert_not_awaited()
        checker.check.assert_not_awaited()
