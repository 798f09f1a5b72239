"""Application state container for FastAPI dependency injection."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
from starlette.datastructures import State

from mirrorgate.infrastructure.config import AppConfig

if TYPE_CHECKING:
    import asyncio

    from mirrorgate.domain.ports import SnapshotStorePort
    from mirrorgate.infrastructure.cache.instance_cache import InstanceCache
    from mirrorgate.infrastructure.metrics import MetricsCollector
    from mirrorgate.infrastructure.proxy.failover_router import FailoverRouter
    from mirrorgate.infrastructure.scheduler import SnapshotRefresher


class AppState(State):
    """FastAPI application state with all DI resources.

    Lifecycle managed by composition.py::lifespan().
    """

    # Configuration
    config: AppConfig

    # Infrastructure
    http_client: httpx.AsyncClient
    snapshot_store: SnapshotStorePort

    # Snapshot cache (single shared Snapshot, swapped atomically)
    instance_cache: InstanceCache

    # Failover proxy
    failover_router: FailoverRouter

    # Metrics (zero-impact in-memory counters)
    metrics: MetricsCollector

    # Periodic refresh (optional, snapshot.refresh_interval_seconds > 0)
    snapshot_refresher: SnapshotRefresher | None
    _refresh_task: asyncio.Task | None
    _warmup_task: asyncio.Task | None
