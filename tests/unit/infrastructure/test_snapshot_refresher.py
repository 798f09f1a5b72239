"""Unit tests for SnapshotRefresher."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from mirrorgate.domain.entities import Snapshot
from mirrorgate.infrastructure.cache import InstanceCache
from mirrorgate.infrastructure.scheduler import SnapshotRefresher


def _cache(snapshot: Snapshot) -> MagicMock:
    cache = MagicMock()
    cache.refresh = AsyncMock(return_value=snapshot)
    return cache


class TestTick:
    async def test_rebuilds_and_persists(self, snapshot: Snapshot) -> None:
        cache = _cache(snapshot)
        store = MagicMock()
        store.save = AsyncMock()
        refresher = SnapshotRefresher(cache=cache, interval_seconds=60, store=store)

        await refresher.tick()

        cache.refresh.assert_awaited_once()
        cache.invalidate.assert_not_called()
        store.save.assert_awaited_once_with(snapshot)

    async def test_without_store(self, snapshot: Snapshot) -> None:
        cache = _cache(snapshot)
        await SnapshotRefresher(cache=cache, interval_seconds=60).tick()

        cache.refresh.assert_awaited_once()

    async def test_readers_not_blocked_during_tick(self, make_snapshot) -> None:
        current = make_snapshot("https://a.example")
        rebuilt = make_snapshot("https://b.example")
        release = asyncio.Event()

        async def _slow_build() -> Snapshot:
            await release.wait()
            return rebuilt

        builder = MagicMock()
        builder.build = _slow_build
        cache = InstanceCache(builder, ttl_seconds=60)
        cache.put(current)
        refresher = SnapshotRefresher(cache=cache, interval_seconds=60)

        tick = asyncio.create_task(refresher.tick())
        await asyncio.sleep(0)
        assert cache.rebuilding

        read = await asyncio.wait_for(cache.get_snapshot(), timeout=1)
        assert read is current

        release.set()
        await tick
        assert await cache.get_snapshot() is rebuilt


class TestRunForever:
    async def test_ticks_until_cancelled(self, snapshot: Snapshot) -> None:
        cache = _cache(snapshot)
        refresher = SnapshotRefresher(cache=cache, interval_seconds=0.01)

        task = asyncio.create_task(refresher.run_forever())
        await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert cache.refresh.await_count >= 1

    async def test_tick_error_does_not_stop_loop(self, snapshot: Snapshot) -> None:
        cache = MagicMock()
        cache.refresh = AsyncMock(side_effect=[RuntimeError("boom"), snapshot, snapshot])
        refresher = SnapshotRefresher(cache=cache, interval_seconds=0.005)

        task = asyncio.create_task(refresher.run_forever())
        await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert cache.refresh.await_count >= 2
