"""Zero-impact in-memory runtime metrics.

All counters are plain Python integers manipulated inside the single-threaded
async event loop without locks or I/O.

``time.perf_counter_ns()`` is used for timing.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field


@dataclass
class UpstreamStats:
    """Accumulated proxy attempts against a single instance."""

    attempts: int = 0
    successes: int = 0
    failures: int = 0
    total_duration_ns: int = 0

    def snapshot(self) -> dict[str, object]:
        """Return a JSON-serializable summary."""
        avg_ms = (
            round(self.total_duration_ns / self.attempts / 1_000_000, 1)
            if self.attempts
            else 0.0
        )
        return {
            "attempts": self.attempts,
            "successes": self.successes,
            "failures": self.failures,
            "avg_duration_ms": avg_ms,
        }


@dataclass
class RebuildStats:
    """Accumulated snapshot rebuilds."""

    runs: int = 0
    failures: int = 0
    total_duration_ns: int = 0

    def snapshot(self) -> dict[str, object]:
        avg_ms = (
            round(self.total_duration_ns / self.runs / 1_000_000, 1)
            if self.runs
            else 0.0
        )
        return {
            "runs": self.runs,
            "failures": self.failures,
            "avg_duration_ms": avg_ms,
        }


@dataclass
class MetricsCollector:
    """Central in-memory metrics collector."""

    _upstreams: dict[str, UpstreamStats] = field(default_factory=dict)
    _rebuilds: RebuildStats = field(default_factory=RebuildStats)
    _requests: int = 0
    _failovers: int = 0
    _exhausted: int = 0
    _start_ns: int = field(default_factory=time.perf_counter_ns)

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record_attempt(self, api_url: str, duration_ns: int, *, success: bool) -> None:
        """Record one upstream attempt made by the failover router."""
        stats = self._upstreams.get(api_url)
        if stats is None:
            stats = UpstreamStats()
            self._upstreams[api_url] = stats

        stats.attempts += 1
        stats.total_duration_ns += duration_ns
        if success:
            stats.successes += 1
        else:
            stats.failures += 1

    def record_request(self, attempts: int, *, exhausted: bool) -> None:
        """Record one routed client request and how many attempts it took."""
        self._requests += 1
        if attempts > 1:
            self._failovers += 1
        if exhausted:
            self._exhausted += 1

    def record_rebuild(self, duration_ns: int, *, success: bool) -> None:
        self._rebuilds.runs += 1
        self._rebuilds.total_duration_ns += duration_ns
        if not success:
            self._rebuilds.failures += 1

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    def snapshot(self) -> dict[str, object]:
        """Return a JSON-serializable snapshot of all metrics."""
        uptime_ns = time.perf_counter_ns() - self._start_ns
        uptime_s = round(uptime_ns / 1_000_000_000, 1)

        return {
            "uptime_seconds": uptime_s,
            "proxy": {
                "requests": self._requests,
                "failovers": self._failovers,
                "exhausted": self._exhausted,
            },
            "upstreams": {
                url: stats.snapshot() for url, stats in sorted(self._upstreams.items())
            },
            "rebuilds": self._rebuilds.snapshot(),
        }
