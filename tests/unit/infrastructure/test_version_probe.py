"""Unit tests for VersionProbe and latest-version marking."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import httpx
import respx

from mirrorgate.domain.entities import InstanceDescriptor, VersionInfo
from mirrorgate.infrastructure.probing.version_probe import (
    VersionProbe,
    coerce_version,
    extract_version,
    mark_latest,
)

_API = "https://api.example.com/api/v1"


def _instance(api_url: str = _API) -> InstanceDescriptor:
    return InstanceDescriptor(name="example", api_url=api_url)


class TestExtractVersion:
    def test_known_key_wins(self) -> None:
        body = '{"commit": "abc123", "version": "v1.4.2"}'
        assert extract_version(body) == "v1.4.2"

    def test_build_version_before_tag_and_commit(self) -> None:
        body = '{"commit": "abc", "tag": "t", "build_version": "2024.1"}'
        assert extract_version(body) == "2024.1"

    def test_nested_dotted_value(self) -> None:
        body = '{"info": {"backend": {"release": "piped 0.9.3"}}}'
        assert extract_version(body) == "piped 0.9.3"

    def test_plain_text(self) -> None:
        assert extract_version("Piped backend 1.2.7 (abc)") == "1.2.7"

    def test_nothing_found(self) -> None:
        assert extract_version('{"status": "ok"}') is None
        assert extract_version("hello") is None


class TestCoerceVersion:
    def test_pads_minor_only(self) -> None:
        assert str(coerce_version("v1.2")) == "1.2.0"

    def test_takes_first_dotted_run(self) -> None:
        assert str(coerce_version("release-2.10.3-beta")) == "2.10.3"

    def test_unresolvable(self) -> None:
        assert coerce_version("abcdef") is None
        assert coerce_version(None) is None


class TestMarkLatest:
    def test_marks_only_the_maximum(self) -> None:
        survey = mark_latest(
            {
                "a": VersionInfo(version_raw="1.2.0"),
                "b": VersionInfo(version_raw="1.3.0"),
                "c": VersionInfo(version_raw="1.2.5"),
            }
        )
        assert [url for url, v in survey.versions.items() if v.is_latest] == ["b"]
        assert survey.latest == "1.3.0"

    def test_semver_not_lexicographic(self) -> None:
        result = mark_latest(
            {
                "a": VersionInfo(version_raw="1.9.0"),
                "b": VersionInfo(version_raw="1.10.0"),
            }
        ).versions
        assert result["b"].is_latest is True
        assert result["a"].is_latest is False

    def test_ties_are_all_latest(self) -> None:
        survey = mark_latest(
            {
                "a": VersionInfo(version_raw="v2.0"),
                "b": VersionInfo(version_raw="2.0.0"),
                "c": None,
            }
        )
        result = survey.versions
        assert survey.latest == "2.0.0"
        assert result["a"].is_latest is True
        assert result["b"].is_latest is True
        assert result["c"].is_latest is False
        assert result["c"].version_raw is None

    def test_no_versions_marks_none(self) -> None:
        survey = mark_latest({"a": None, "b": VersionInfo(version_raw="abcdef")})
        assert not any(v.is_latest for v in survey.versions.values())
        assert survey.versions["b"].version_raw == "abcdef"
        assert survey.latest is None

    def test_latest_is_normalized(self) -> None:
        survey = mark_latest(
            {
                "a": VersionInfo(version_raw="v1.3.0-abc123"),
                "b": VersionInfo(version_raw="1.2.9"),
            }
        )
        assert survey.latest == "1.3.0"
        assert survey.versions["a"].version_raw == "v1.3.0-abc123"
        assert survey.versions["a"].is_latest is True


class TestProbe:
    @respx.mock(assert_all_called=False)
    async def test_first_path_with_version_is_used(
        self, respx_mock: respx.MockRouter
    ) -> None:
        first = respx_mock.get(f"{_API}/version").respond(200, json={"version": "1.1.0"})
        second = respx_mock.get(f"{_API}/api/v1/version").respond(
            200, json={"version": "9.9.9"}
        )
        async with httpx.AsyncClient() as client:
            probe = VersionProbe(client, paths=["/version", "/api/v1/version"])
            result = await probe.probe(_instance())

        assert result == VersionInfo(version_raw="1.1.0")
        assert first.called
        assert not second.called

    @respx.mock
    async def test_falls_through_errors_and_non_2xx(self) -> None:
        respx.get(f"{_API}/version").mock(side_effect=httpx.ConnectError("boom"))
        respx.get(f"{_API}/api/v1/version").respond(404)
        respx.get(f"{_API}/api/version").respond(200, text="backend 3.2")
        async with httpx.AsyncClient() as client:
            probe = VersionProbe(
                client, paths=["/version", "/api/v1/version", "/api/version"]
            )
            result = await probe.probe(_instance())

        assert result is not None
        assert result.version_raw == "3.2"

    @respx.mock
    async def test_2xx_without_version_tries_next_path(self) -> None:
        respx.get(f"{_API}/version").respond(200, json={"status": "ok"})
        respx.get(f"{_API}/api/version").respond(200, json={"tag": "0.5.1"})
        async with httpx.AsyncClient() as client:
            probe = VersionProbe(client, paths=["/version", "/api/version"])
            result = await probe.probe(_instance())

        assert result is not None
        assert result.version_raw == "0.5.1"

    @respx.mock
    async def test_nothing_resolved_returns_none(self) -> None:
        respx.get(host="api.example.com").respond(500)
        async with httpx.AsyncClient() as client:
            result = await VersionProbe(client).probe(_instance())

        assert result is None


class TestProbeAll:
    @respx.mock
    async def test_marks_latest_across_instances(self) -> None:
        respx.get("https://a.example/version").respond(200, json={"version": "1.2.0"})
        respx.get("https://b.example/version").respond(200, json={"version": "1.3.0"})
        respx.get("https://c.example/version").respond(503)
        instances = [
            _instance("https://a.example"),
            _instance("https://b.example"),
            _instance("https://c.example"),
        ]
        async with httpx.AsyncClient() as client:
            probe = VersionProbe(client, paths=["/version"])
            survey = await probe.probe_all(instances, concurrency=2)
        result = survey.versions

        assert list(result) == [
            "https://a.example",
            "https://b.example",
            "https://c.example",
        ]
        assert result["https://b.example"].is_latest is True
        assert result["https://a.example"].is_latest is False
        assert result["https://c.example"] == VersionInfo()
        assert survey.latest == "1.3.0"

    async def test_invalid_url_does_not_abort_cycle(self) -> None:
        async def _get(url: str, **kwargs: object) -> httpx.Response:
            if url.startswith("https://bad"):
                raise httpx.InvalidURL("Invalid port: 'x'")
            return httpx.Response(200, json={"version": "2.0.1"})

        client = MagicMock()
        client.get = AsyncMock(side_effect=_get)
        probe = VersionProbe(client, paths=["/version"])

        survey = await probe.probe_all(
            [_instance("https://bad.example:x"), _instance("https://good.example")]
        )

        assert survey.versions["https://bad.example:x"] == VersionInfo()
        assert survey.versions["https://good.example"].is_latest is True
        assert survey.latest == "2.0.1"
