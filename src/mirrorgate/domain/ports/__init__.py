from .probing import InstanceCheckerPort, RegistrySourcePort, VersionProbePort
from .snapshot_builder import SnapshotBuilderPort
from .snapshot_store import SnapshotStorePort

__all__ = [
    "InstanceCheckerPort",
    "RegistrySourcePort",
    "SnapshotBuilderPort",
    "SnapshotStorePort",
    "VersionProbePort",
]
