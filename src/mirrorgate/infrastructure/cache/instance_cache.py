"""In-memory Snapshot cache with TTL and coalesced rebuilds."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from contextlib import suppress

import structlog

from mirrorgate.domain.entities.instance import Snapshot, SnapshotUnavailableError
from mirrorgate.domain.ports.snapshot_builder import SnapshotBuilderPort
from mirrorgate.infrastructure.metrics import MetricsCollector

log = structlog.get_logger(__name__)


class InstanceCache:
    """Holds one Snapshot and the monotonic time it was fetched.

    Usage::

        cache = InstanceCache(builder, ttl_seconds=300)
        snapshot = await cache.get_snapshot()

    A rebuild runs in its own ``asyncio.Task`` owned by the cache.
    Concurrent callers that find the snapshot stale all await that one
    task through ``asyncio.shield``, so a cancelled caller (e.g. a
    disconnected client) never cancels the shared rebuild.  The stored
    reference is swapped in a single assignment and never mutated.

    A failed rebuild keeps serving the previous snapshot (if any) for
    another TTL window.  With nothing to fall back on it raises
    :class:`SnapshotUnavailableError`.
    """

    def __init__(
        self,
        builder: SnapshotBuilderPort,
        ttl_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self._builder = builder
        self._ttl = ttl_seconds
        self._clock = clock
        self._metrics = metrics
        self._snapshot: Snapshot | None = None
        self._fetched_at: float | None = None
        self._rebuild_task: asyncio.Task[Snapshot] | None = None

    def peek(self) -> Snapshot | None:
        """Return the stored snapshot without triggering a rebuild."""
        return self._snapshot

    def is_fresh(self) -> bool:
        if self._snapshot is None or self._fetched_at is None:
            return False
        return (self._clock() - self._fetched_at) < self._ttl

    @property
    def rebuilding(self) -> bool:
        return self._rebuild_task is not None and not self._rebuild_task.done()

    async def get_snapshot(self) -> Snapshot:
        snapshot = self._snapshot
        if snapshot is not None and self.is_fresh():
            return snapshot
        return await asyncio.shield(self._ensure_rebuild())

    async def refresh(self) -> Snapshot:
        """Rebuild now while readers keep getting the current snapshot.

        Joins a rebuild that is already in flight instead of starting a
        second one.
        """
        return await asyncio.shield(self._ensure_rebuild())

    def _ensure_rebuild(self) -> asyncio.Task[Snapshot]:
        task = self._rebuild_task
        if task is None or task.done():
            task = asyncio.create_task(self._rebuild(), name="snapshot-rebuild")
            task.add_done_callback(self._on_rebuild_done)
            self._rebuild_task = task
        return task

    def _on_rebuild_done(self, task: asyncio.Task[Snapshot]) -> None:
        if self._rebuild_task is task:
            self._rebuild_task = None
        # Mark the outcome as retrieved when every waiter was cancelled
        if not task.cancelled():
            task.exception()

    async def _rebuild(self) -> Snapshot:
        t0 = time.perf_counter_ns()
        try:
            snapshot = await self._builder.build()
        except Exception as e:
            if self._metrics is not None:
                self._metrics.record_rebuild(
                    time.perf_counter_ns() - t0, success=False
                )
            if self._snapshot is not None:
                log.warning("snapshot_rebuild_failed_serving_stale", error=str(e))
                self._fetched_at = self._clock()
                return self._snapshot
            log.error("snapshot_rebuild_failed", error=str(e), exc_info=True)
            raise SnapshotUnavailableError(str(e) or type(e).__name__) from e

        self._snapshot = snapshot
        self._fetched_at = self._clock()
        if self._metrics is not None:
            self._metrics.record_rebuild(time.perf_counter_ns() - t0, success=True)
        log.info("snapshot_rebuilt", instances=len(snapshot))
        return snapshot

    def put(self, snapshot: Snapshot, *, age_seconds: float = 0.0) -> None:
        """Install an externally built snapshot (scheduler, startup load).

        ``age_seconds`` backdates the fetch time so a snapshot generated
        earlier only stays fresh for the rest of its TTL window.
        """
        self._snapshot = snapshot
        self._fetched_at = self._clock() - max(age_seconds, 0.0)

    def invalidate(self) -> None:
        """Force the next :meth:`get_snapshot` to rebuild.

        The current snapshot stays available to :meth:`peek` and as the
        fallback if that rebuild fails.
        """
        self._fetched_at = None
        log.debug("snapshot_invalidated")

    async def aclose(self) -> None:
        """Cancel an in-flight rebuild (app shutdown)."""
        task = self._rebuild_task
        if task is not None and not task.done():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
