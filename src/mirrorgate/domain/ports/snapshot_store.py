"""Port for snapshot artifact persistence."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from mirrorgate.domain.entities.instance import Snapshot


@runtime_checkable
class SnapshotStorePort(Protocol):
    """Async interface for saving and loading the Snapshot artifact."""

    async def save(self, snapshot: Snapshot) -> None: ...

    async def load(self) -> Snapshot | None: ...
