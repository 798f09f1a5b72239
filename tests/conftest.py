"""Shared test fixtures for the mirrorgate test suite."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import pytest

from mirrorgate.domain.entities import (
    InstanceDescriptor,
    Metrics,
    RankedInstance,
    Snapshot,
    VersionInfo,
)
from mirrorgate.infrastructure.config.schema import AppConfig, ProbingConfig

NOW = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def _make_ranked(
    api_url: str,
    *,
    name: str | None = None,
    cdn: str | None = None,
    version: str | None = None,
    is_latest: bool = False,
    rate: float = 1.0,
    latency_ms: int | None = 100,
    **metrics: Any,
) -> RankedInstance:
    """Build a RankedInstance with just the fields a test cares about."""
    return RankedInstance(
        descriptor=InstanceDescriptor(
            name=name or api_url.split("//", 1)[-1],
            api_url=api_url,
            cdn=cdn,
            raw=f"| {name or api_url} | {api_url} |",
        ),
        version=VersionInfo(version_raw=version, is_latest=is_latest),
        metrics=Metrics(
            suggestion_success_count=metrics.pop("suggestion_success_count", 3),
            search_success_count=metrics.pop("search_success_count", 3),
            suggestion_success_rate=rate,
            search_success_rate=rate,
            combined_success_rate=rate,
            avg_suggestion_ms=latency_ms,
            avg_search_ms=metrics.pop("avg_search_ms", latency_ms),
            combined_latency_ms=latency_ms,
        ),
        checked_at=NOW,
    )


def _make_snapshot(*api_urls: str) -> Snapshot:
    return Snapshot(
        generated_at=NOW,
        source="https://registry.example/index.md",
        version_priority="1.3.0",
        instances=tuple(_make_ranked(url) for url in api_urls),
    )


# ---------------------------------------------------------------------------
# Domain entity fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def descriptor() -> InstanceDescriptor:
    """Minimal valid InstanceDescriptor."""
    return InstanceDescriptor(
        name="kavin.rocks",
        api_url="https://pipedapi.kavin.rocks",
        cdn="Yes",
        locations="Germany",
        raw="| kavin.rocks | https://pipedapi.kavin.rocks | Germany | Yes |",
    )


@pytest.fixture()
def snapshot() -> Snapshot:
    """Snapshot with three ranked instances a, b, c (in that order)."""
    return _make_snapshot(
        "https://a.example/api/v1",
        "https://b.example/api/v1",
        "https://c.example/api/v1",
    )


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def probing_config() -> ProbingConfig:
    """ProbingConfig with every delay disabled."""
    return ProbingConfig(
        preflight_backoff_seconds=0.0,
        server_error_retry_delay_seconds=0.0,
        jitter_min_seconds=0.0,
        jitter_max_seconds=0.0,
        terms_per_instance=3,
    )


@pytest.fixture()
def app_config() -> AppConfig:
    return AppConfig(environment="test")


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_ranked():
    """Factory fixture: ``make_ranked(api_url, cdn=..., rate=..., ...)``."""
    return _make_ranked


@pytest.fixture()
def make_snapshot():
    """Factory fixture: ``make_snapshot(*api_urls)``."""
    return _make_snapshot
