"""Ranker: deterministic total order over checked instances."""

from __future__ import annotations

import math
from collections.abc import Iterable

from mirrorgate.domain.entities.instance import RankedInstance


def _latency(instance: RankedInstance) -> float:
    m = instance.metrics
    if m.combined_latency_ms is not None:
        return float(m.combined_latency_ms)
    if m.avg_search_ms is not None:
        return float(m.avg_search_ms)
    return math.inf


def sort_key(instance: RankedInstance) -> tuple[bool, bool, float, float, str]:
    """Latest first, then CDN-backed, success rate desc, latency asc, api_url."""
    return (
        not instance.is_latest,
        instance.cdn is None,
        -instance.metrics.combined_success_rate,
        _latency(instance),
        instance.api_url,
    )


def rank(instances: Iterable[RankedInstance]) -> list[RankedInstance]:
    return sorted(instances, key=sort_key)
