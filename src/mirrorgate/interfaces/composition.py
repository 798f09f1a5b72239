"""Composition root: dependency injection via FastAPI lifespan."""

from __future__ import annotations

import asyncio
import functools
from datetime import datetime, timezone
from contextlib import asynccontextmanager, suppress
from typing import AsyncIterator, cast

import httpx
import structlog
from fastapi import FastAPI

from mirrorgate.application.use_cases import BuildSnapshotUseCase
from mirrorgate.domain.ports import SnapshotBuilderPort
from mirrorgate.infrastructure.cache.instance_cache import InstanceCache
from mirrorgate.infrastructure.config.schema import AppConfig
from mirrorgate.infrastructure.metrics import MetricsCollector
from mirrorgate.infrastructure.persistence.snapshot_file import FileSnapshotStore
from mirrorgate.infrastructure.probing.capability_checker import CapabilityChecker
from mirrorgate.infrastructure.probing.version_probe import VersionProbe
from mirrorgate.infrastructure.proxy.failover_router import FailoverRouter
from mirrorgate.infrastructure.ranking.ranker import rank
from mirrorgate.infrastructure.registry import source_parser
from mirrorgate.infrastructure.registry.client import RegistryClient
from mirrorgate.infrastructure.scheduler import SnapshotRefresher
from mirrorgate.interfaces.app_state import AppState

log = structlog.get_logger(__name__)


def create_http_client(config: AppConfig) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=config.http_timeout_seconds,
        headers={"User-Agent": config.http_user_agent},
    )


def build_pipeline(
    config: AppConfig, http_client: httpx.AsyncClient
) -> BuildSnapshotUseCase:
    """Wire the discovery -> version -> capability -> ranking pipeline."""
    probing = config.probing
    return BuildSnapshotUseCase(
        registry=RegistryClient(
            http_client,
            config.registry.source_url,
            user_agent=config.http_user_agent,
            timeout=config.http_timeout_seconds,
        ),
        parse=functools.partial(
            source_parser.parse,
            fallback_url=config.registry.fallback_url,
            default_api_path=config.registry.default_api_path,
        ),
        version_probe=VersionProbe(
            http_client,
            paths=probing.version_paths,
            timeout=probing.version_timeout_seconds,
            user_agent=config.http_user_agent,
        ),
        checker=CapabilityChecker(
            http_client, probing, user_agent=config.http_user_agent
        ),
        rank=rank,
        version_concurrency=probing.version_concurrency,
    )


async def _warm_up(cache: InstanceCache) -> None:
    try:
        await cache.get_snapshot()
    except Exception:
        log.error("snapshot_warmup_failed", exc_info=True)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Lifespan Hook: Initialize and cleanup all resources (DI Composition Root).

    Order matters:
        1. Metrics (recorded into by cache and router)
        2. HTTP client (shared by probes and proxy)
        3. Snapshot store + builder (probe pipeline or file reload)
        4. Instance cache (preloaded from the artifact when present)
        5. Failover router
        6. Optional periodic refresher
    """
    state = cast(AppState, app.state)
    config = state.config

    # 1) Metrics collector
    state.metrics = MetricsCollector()

    # 2) HTTP client
    state.http_client = create_http_client(config)
    log.info(
        "http_client_initialized",
        timeout_seconds=config.http_timeout_seconds,
    )

    # 3) Snapshot store + builder
    store = FileSnapshotStore(config.snapshot.path)
    state.snapshot_store = store
    builder: SnapshotBuilderPort
    if config.snapshot.mode == "file":
        builder = store
    else:
        builder = build_pipeline(config, state.http_client)
    log.info("snapshot_builder_initialized", mode=config.snapshot.mode)

    # 4) Instance cache
    state.instance_cache = InstanceCache(
        builder, config.snapshot.ttl_seconds, metrics=state.metrics
    )
    persisted = await store.load()
    if persisted is not None:
        age = (datetime.now(timezone.utc) - persisted.generated_at).total_seconds()
        state.instance_cache.put(persisted, age_seconds=age)
        log.info(
            "snapshot_preloaded",
            path=str(store.path),
            instances=len(persisted),
            age_seconds=round(age),
        )

    # 5) Failover router
    state.failover_router = FailoverRouter(
        state.http_client,
        state.instance_cache.get_snapshot,
        timeout=config.http_timeout_seconds,
        forwarded_by=config.proxy.forwarded_by,
        metrics=state.metrics,
    )

    # 6) Background work
    state._warmup_task = None
    if not state.instance_cache.is_fresh():
        state._warmup_task = asyncio.create_task(_warm_up(state.instance_cache))

    state.snapshot_refresher = None
    state._refresh_task = None
    if config.snapshot.refresh_interval_seconds > 0:
        state.snapshot_refresher = SnapshotRefresher(
            cache=state.instance_cache,
            interval_seconds=config.snapshot.refresh_interval_seconds,
            store=store if config.snapshot.mode == "probe" else None,
        )
        state._refresh_task = asyncio.create_task(
            state.snapshot_refresher.run_forever()
        )

    log.info("app_startup_complete")

    try:
        yield
    finally:
        for task in (state._refresh_task, state._warmup_task):
            if task is not None and not task.done():
                task.cancel()
                with suppress(asyncio.CancelledError):
                    await task
        await state.instance_cache.aclose()

        await state.http_client.aclose()
        log.info("http_client_closed")

        log.info("app_shutdown_complete")
