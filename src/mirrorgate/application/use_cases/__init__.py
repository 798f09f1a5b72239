from .build_snapshot import BuildSnapshotUseCase

__all__ = ["BuildSnapshotUseCase"]
