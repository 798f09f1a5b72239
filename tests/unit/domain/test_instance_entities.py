"""Tests for instance, snapshot and proxy domain entities."""

from __future__ import annotations

import dataclasses

import pytest

from mirrorgate.domain.entities import (
    InstanceDescriptor,
    Metrics,
    MirrorgateError,
    ProxyRequest,
    RankedInstance,
    RoutingExhaustedError,
    Snapshot,
    SnapshotUnavailableError,
    VersionInfo,
)


class TestInstanceDescriptor:
    def test_defaults(self) -> None:
        d = InstanceDescriptor(name="x", api_url="https://x.example")
        assert d.cdn is None
        assert d.locations is None
        assert d.raw == ""

    def test_frozen(self, descriptor: InstanceDescriptor) -> None:
        with pytest.raises(dataclasses.FrozenInstanceError):
            descriptor.api_url = "https://other.example"  # type: ignore[misc]


class TestRankedInstance:
    def test_defaults(self, descriptor: InstanceDescriptor) -> None:
        r = RankedInstance(descriptor=descriptor)
        assert r.version == VersionInfo()
        assert r.metrics == Metrics()
        assert r.attempts == ()
        assert r.checked_at.tzinfo is not None

    def test_properties_delegate(self, descriptor: InstanceDescriptor) -> None:
        r = RankedInstance(
            descriptor=descriptor,
            version=VersionInfo(version_raw="1.3.0", is_latest=True),
        )
        assert r.api_url == "https://pipedapi.kavin.rocks"
        assert r.name == "kavin.rocks"
        assert r.cdn == "Yes"
        assert r.is_latest is True


class TestSnapshot:
    def test_len(self, snapshot: Snapshot) -> None:
        assert len(snapshot) == 3

    def test_empty_snapshot_is_falsy_but_not_none(self, make_snapshot) -> None:
        empty = make_snapshot()
        assert len(empty) == 0
        assert empty is not None


class TestProxyRequest:
    def test_defaults(self) -> None:
        r = ProxyRequest(method="GET")
        assert r.path == ""
        assert r.query == ()
        assert r.headers == ()
        assert r.body == b""


class TestErrors:
    def test_hierarchy(self) -> None:
        assert issubclass(SnapshotUnavailableError, MirrorgateError)
        assert issubclass(RoutingExhaustedError, MirrorgateError)

    def test_routing_exhausted_fields(self) -> None:
        e = RoutingExhaustedError(3, "upstream x returned 503")
        assert e.attempts == 3
        assert e.last_error == "upstream x returned 503"
        assert "3 attempt(s)" in str(e)
