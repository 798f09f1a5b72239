"""Snapshot artifact persistence (JSON file)."""

from __future__ import annotations

import asyncio
import json
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any

import structlog

from mirrorgate.domain.entities.instance import (
    InstanceDescriptor,
    Metrics,
    RankedInstance,
    Snapshot,
    SnapshotUnavailableError,
    SnapshotWriteError,
    VersionInfo,
)

log = structlog.get_logger(__name__)

_METRIC_FIELDS: tuple[str, ...] = (
    "suggestion_success_count",
    "search_success_count",
    "suggestion_success_rate",
    "search_success_rate",
    "combined_success_rate",
    "avg_suggestion_ms",
    "avg_search_ms",
    "combined_latency_ms",
)


def _isoformat(dt: datetime) -> str:
    return dt.isoformat().replace("+00:00", "Z")


def _parse_datetime(value: str) -> datetime:
    # fromisoformat() only accepts a trailing "Z" from 3.11 on.
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def serialize_instance(instance: RankedInstance) -> dict[str, Any]:
    return {
        "name": instance.name,
        "api_url": instance.api_url,
        "cdn": instance.cdn,
        "locations": instance.descriptor.locations,
        "raw": instance.descriptor.raw,
        "version": instance.version.version_raw,
        "isLatest": instance.is_latest,
        "metrics": {f: getattr(instance.metrics, f) for f in _METRIC_FIELDS},
        "checked_at": _isoformat(instance.checked_at),
    }


def serialize_snapshot(snapshot: Snapshot) -> dict[str, Any]:
    """Snapshot -> JSON-ready dict in the published artifact shape."""
    return {
        "generated_at": _isoformat(snapshot.generated_at),
        "source": snapshot.source,
        "version_priority": snapshot.version_priority,
        "instances": [serialize_instance(i) for i in snapshot.instances],
    }


def _deserialize_instance(d: dict[str, Any]) -> RankedInstance:
    metrics = d.get("metrics") or {}
    return RankedInstance(
        descriptor=InstanceDescriptor(
            name=d.get("name") or d["api_url"],
            api_url=d["api_url"],
            cdn=d.get("cdn"),
            locations=d.get("locations"),
            raw=d.get("raw") or "",
        ),
        version=VersionInfo(
            version_raw=d.get("version"),
            is_latest=bool(d.get("isLatest", False)),
        ),
        metrics=Metrics(**{f: metrics[f] for f in _METRIC_FIELDS if f in metrics}),
        checked_at=_parse_datetime(d["checked_at"]),
    )


def deserialize_snapshot(data: dict[str, Any]) -> Snapshot:
    """Inverse of :func:`serialize_snapshot`.  Instance order is preserved."""
    return Snapshot(
        generated_at=_parse_datetime(data["generated_at"]),
        source=data.get("source") or "",
        version_priority=data.get("version_priority"),
        instances=tuple(_deserialize_instance(i) for i in data.get("instances", [])),
    )


class FileSnapshotStore:
    """Reads and writes the Snapshot artifact.

    Writes go to a temp file in the target directory and are moved into
    place with ``os.replace`` so readers never see a partial file.
    File I/O runs in a worker thread.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def _write(self, payload: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    async def save(self, snapshot: Snapshot) -> None:
        payload = json.dumps(serialize_snapshot(snapshot), indent=2, ensure_ascii=False)
        try:
            await asyncio.to_thread(self._write, payload)
        except OSError as e:
            raise SnapshotWriteError(f"cannot write {self.path}: {e}") from e
        log.info("snapshot_written", path=str(self.path), instances=len(snapshot))

    async def load(self) -> Snapshot | None:
        """Return the persisted Snapshot, or None if missing or unreadable."""
        try:
            raw = await asyncio.to_thread(self.path.read_text, encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            log.error("snapshot_read_error", path=str(self.path), error=str(e))
            return None
        try:
            return deserialize_snapshot(json.loads(raw))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            log.error("snapshot_deserialize_error", path=str(self.path), error=str(e))
            return None

    async def build(self) -> Snapshot:
        """``file`` mode: the artifact is the source of truth."""
        snapshot = await self.load()
        if snapshot is None:
            raise SnapshotUnavailableError(f"no readable snapshot at {self.path}")
        return snapshot
