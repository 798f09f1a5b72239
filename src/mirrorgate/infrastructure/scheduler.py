"""Background snapshot refresher."""

from __future__ import annotations

import asyncio

import structlog

from mirrorgate.domain.ports.snapshot_store import SnapshotStorePort
from mirrorgate.infrastructure.cache.instance_cache import InstanceCache

log = structlog.get_logger(__name__)


class SnapshotRefresher:
    """Rebuilds the cached snapshot on a fixed interval.

    Call :meth:`run_forever` as an asyncio task during app lifespan.
    Cancellation is clean: the task exits from its current sleep or
    rebuild.
    """

    def __init__(
        self,
        *,
        cache: InstanceCache,
        interval_seconds: float,
        store: SnapshotStorePort | None = None,
    ) -> None:
        self._cache = cache
        self._interval = interval_seconds
        self._store = store

    async def run_forever(self) -> None:
        """Main loop: sleep, rebuild, persist, repeat."""
        log.info("snapshot_refresher_started", interval_seconds=self._interval)
        try:
            while True:
                await asyncio.sleep(self._interval)
                try:
                    await self.tick()
                except Exception:
                    log.error("snapshot_refresher_tick_error", exc_info=True)
        except asyncio.CancelledError:
            log.info("snapshot_refresher_cancelled")
            raise

    async def tick(self) -> None:
        """Run one rebuild and persist the result.

        The current snapshot keeps being served until the new one is
        swapped in.
        """
        snapshot = await self._cache.refresh()
        if self._store is not None:
            await self._store.save(snapshot)
