"""Integration tests: full app lifespan with a persisted snapshot.

The app runs in ``file`` mode so startup only reads the artifact; the
proxied upstreams are mocked via respx.
"""

from __future__ import annotations

import json
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path

import pytest
import respx
from fastapi.testclient import TestClient

from mirrorgate.infrastructure.config import AppConfig
from mirrorgate.infrastructure.persistence.snapshot_file import serialize_snapshot
from mirrorgate.interfaces.app import create_app

pytestmark = pytest.mark.integration

_A = "https://a.example/api/v1"
_B = "https://b.example/api/v1"


@pytest.fixture()
def snapshot_path(tmp_path: Path, make_snapshot) -> Path:
    path = tmp_path / "instances.json"
    path.write_text(
        json.dumps(serialize_snapshot(make_snapshot(_A, _B))), encoding="utf-8"
    )
    return path


def _app(snapshot_path: Path) -> TestClient:
    config = AppConfig(
        environment="test",
        snapshot={"path": snapshot_path, "mode": "file", "ttl_seconds": 300},
    )
    return TestClient(create_app(config))


class TestProxyApp:
    def test_ready_with_preloaded_snapshot(self, snapshot_path: Path) -> None:
        with _app(snapshot_path) as client:
            assert client.get("/api/v1/readyz").status_code == 200
            assert client.get("/api/v1/healthz").json() == {
                "status": "ok",
                "instances": 2,
            }
            listed = client.get("/api/v1/instances").json()
            assert [i["api_url"] for i in listed["instances"]] == [_A, _B]

    def test_proxy_fails_over(self, snapshot_path: Path) -> None:
        with respx.mock(assert_all_called=False) as mock:
            mock.get(f"{_A}/trending").respond(503)
            upstream = mock.get(f"{_B}/trending").respond(200, json=[{"title": "x"}])

            with _app(snapshot_path) as client:
                resp = client.get("/proxy/trending?region=DE&ins=0")
                metrics = client.get("/api/v1/stats/metrics").json()

        assert resp.status_code == 200
        assert resp.json() == [{"title": "x"}]
        assert resp.headers["x-mirrorgate-instance"] == _B
        request = upstream.calls.last.request
        assert request.url.params["region"] == "DE"
        assert "ins" not in request.url.params
        assert request.headers["x-forwarded-by"] == "mirrorgate"
        assert metrics["proxy"]["failovers"] == 1

    def test_proxy_exhausted(self, snapshot_path: Path) -> None:
        with respx.mock(assert_all_called=False) as mock:
            mock.get(f"{_A}/trending").respond(500)
            mock.get(f"{_B}/trending").respond(502)

            with _app(snapshot_path) as client:
                resp = client.get("/proxy/trending")

        assert resp.status_code == 502
        body = resp.json()
        assert body["error"] == "all_instances_failed"
        assert body["attempts"] == 2
        assert body["last_error"] == f"upstream {_B} returned 502"

    def test_missing_artifact_not_ready(self, tmp_path: Path) -> None:
        with _app(tmp_path / "missing.json") as client:
            resp = client.get("/api/v1/readyz")

        assert resp.status_code == 503


class TestPreloadFreshness:
    def test_recent_artifact_is_fresh(self, tmp_path: Path, make_snapshot) -> None:
        path = tmp_path / "instances.json"
        recent = replace(make_snapshot(_A), generated_at=datetime.now(timezone.utc))
        path.write_text(json.dumps(serialize_snapshot(recent)), encoding="utf-8")

        with _app(path) as client:
            state = client.app.state
            assert state.instance_cache.is_fresh()
            assert state._warmup_task is None

    def test_old_artifact_is_stale_and_rebuilt(self, snapshot_path: Path) -> None:
        with _app(snapshot_path) as client:
            state = client.app.state
            assert state._warmup_task is not None
            # Served immediately while the rebuild runs
            assert client.get("/api/v1/readyz").status_code == 200
