from .instance import (
    InstanceDescriptor,
    Metrics,
    MirrorgateError,
    ProbeAttempt,
    ProbeKind,
    RankedInstance,
    RoutingExhaustedError,
    Snapshot,
    SnapshotUnavailableError,
    SnapshotWriteError,
    VersionInfo,
    VersionSurvey,
)
from .proxy import ProxyRequest, ProxyResponse

__all__ = [
    "InstanceDescriptor",
    "Metrics",
    "MirrorgateError",
    "ProbeAttempt",
    "ProbeKind",
    "ProxyRequest",
    "ProxyResponse",
    "RankedInstance",
    "RoutingExhaustedError",
    "Snapshot",
    "SnapshotUnavailableError",
    "SnapshotWriteError",
    "VersionInfo",
    "VersionSurvey",
]
