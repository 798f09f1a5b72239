"""Port for anything that can produce a fresh Snapshot."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from mirrorgate.domain.entities.instance import Snapshot


@runtime_checkable
class SnapshotBuilderPort(Protocol):
    """Builds a complete, ranked Snapshot.

    Implementations:
      - BuildSnapshotUseCase (full discovery + probing pipeline)
      - FileSnapshotStore (reload the persisted artifact)
    """

    async def build(self) -> Snapshot: ...
