"""Capability checker: preflight + functional suggestion/search probes.

One instance is checked at a time and every request to it is separated
by a jittered politeness delay.  The result is either a RankedInstance
carrying metrics, or ``None`` when the instance is dead or dropped.
"""

from __future__ import annotations

import asyncio
import json
import random
import time
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from itertools import cycle
from typing import Any

import httpx
import structlog

from mirrorgate.domain.entities.instance import (
    InstanceDescriptor,
    Metrics,
    ProbeAttempt,
    ProbeKind,
    RankedInstance,
    VersionInfo,
)
from mirrorgate.infrastructure.config.schema import ProbingConfig
from mirrorgate.infrastructure.probing.backoff import JitterBackoff, Sleep
from mirrorgate.infrastructure.probing.term_pool import TERM_POOL, draw_terms

log = structlog.get_logger(__name__)

_BODY_SAMPLE_CHARS = 320

# kind -> predicate on the decoded JSON body
_SHAPES: dict[str, Callable[[Any], bool]] = {
    "suggestion": lambda data: isinstance(data, list),
    "search": lambda data: isinstance(data, dict),
}


def _mean_ms(values: Sequence[float]) -> int | None:
    if not values:
        return None
    return round(sum(values) / len(values))


def compute_metrics(
    suggestions: Sequence[ProbeAttempt],
    searches: Sequence[ProbeAttempt],
) -> Metrics:
    """Aggregate the final attempt of each logical probe into Metrics.

    A probe retried after a 5xx counts once, with its final outcome.
    Latencies average successful attempts only.
    """
    sugg_ok = [a for a in suggestions if a.ok]
    search_ok = [a for a in searches if a.ok]
    total = len(suggestions) + len(searches)
    return Metrics(
        suggestion_success_count=len(sugg_ok),
        search_success_count=len(search_ok),
        suggestion_success_rate=len(sugg_ok) / max(1, len(suggestions)),
        search_success_rate=len(search_ok) / max(1, len(searches)),
        combined_success_rate=(len(sugg_ok) + len(search_ok)) / max(1, total),
        avg_suggestion_ms=_mean_ms([a.elapsed_ms for a in sugg_ok]),
        avg_search_ms=_mean_ms([a.elapsed_ms for a in search_ok]),
        combined_latency_ms=_mean_ms([a.elapsed_ms for a in (*sugg_ok, *search_ok)]),
    )


class CapabilityChecker:
    """Checks one instance end-to-end.

    Strategy:
    1. Preflight HEAD against ``preflight_path`` (GET on 405/501).
       5xx or a network error fails; one retry after a fixed backoff.
    2. For each drawn term, a suggestion then a search request.  A 5xx
       is retried once after a short fixed delay; 4xx, timeouts and
       network errors are not.
    3. Aggregate metrics and apply the drop rule.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        config: ProbingConfig,
        *,
        user_agent: str = "mirrorgate/0.1.0",
        rng: random.Random | None = None,
        sleep: Sleep = asyncio.sleep,
        term_pool: tuple[str, ...] = TERM_POOL,
    ) -> None:
        self._http = http_client
        self._config = config
        self._user_agent = user_agent
        self._rng = rng or random.Random()  # noqa: S311
        self._sleep = sleep
        self._term_pool = term_pool
        self._jitter = JitterBackoff(
            config.jitter_min_seconds,
            config.jitter_max_seconds,
            rng=self._rng,
            sleep=sleep,
        )

    async def check(
        self,
        instance: InstanceDescriptor,
        version: VersionInfo | None = None,
    ) -> RankedInstance | None:
        """Return a RankedInstance, or None when the instance is dropped."""
        trail: list[ProbeAttempt] = []

        if not await self._preflight(instance, trail):
            log.info("instance_dead", api_url=instance.api_url, name=instance.name)
            return None

        terms = draw_terms(
            self._config.terms_per_instance, rng=self._rng, pool=self._term_pool
        )
        filters = cycle(self._config.search_filters or [None])

        suggestions: list[ProbeAttempt] = []
        searches: list[ProbeAttempt] = []
        for term in terms:
            await self._jitter.wait()
            suggestions.append(
                await self._probe(
                    "suggestion",
                    f"{instance.api_url}{self._config.suggestion_path}",
                    {self._config.suggestion_query_key: term},
                    term,
                    trail,
                )
            )

            await self._jitter.wait()
            params = {self._config.search_query_key: term}
            search_filter = next(filters)
            if search_filter:
                params["filter"] = search_filter
            searches.append(
                await self._probe(
                    "search",
                    f"{instance.api_url}{self._config.search_path}",
                    params,
                    term,
                    trail,
                )
            )

        metrics = compute_metrics(suggestions, searches)

        if metrics.suggestion_success_count == 0 or metrics.search_success_count == 0:
            if self._config.drop_policy == "drop":
                log.info(
                    "instance_dropped",
                    api_url=instance.api_url,
                    suggestion_successes=metrics.suggestion_success_count,
                    search_successes=metrics.search_success_count,
                )
                return None
            log.info("instance_penalized", api_url=instance.api_url)

        log.debug(
            "instance_checked",
            api_url=instance.api_url,
            combined_success_rate=round(metrics.combined_success_rate, 3),
            combined_latency_ms=metrics.combined_latency_ms,
            attempts=len(trail),
        )
        return RankedInstance(
            descriptor=instance,
            version=version or VersionInfo(),
            metrics=metrics,
            checked_at=datetime.now(timezone.utc),
            attempts=tuple(trail),
        )

    # ------------------------------------------------------------------
    # Preflight
    # ------------------------------------------------------------------

    async def _preflight(
        self, instance: InstanceDescriptor, trail: list[ProbeAttempt]
    ) -> bool:
        url = f"{instance.api_url}{self._config.preflight_path}"
        for attempt in range(2):
            result = await self._preflight_once(url)
            trail.append(result)
            if result.ok:
                return True
            if attempt == 0:
                log.warning(
                    "preflight_retry",
                    url=url,
                    status=result.status_code,
                    error=result.error,
                    delay=self._config.preflight_backoff_seconds,
                )
                await self._sleep(self._config.preflight_backoff_seconds)
        return False

    async def _preflight_once(self, url: str) -> ProbeAttempt:
        timeout = self._config.preflight_timeout_seconds
        headers = {"User-Agent": self._user_agent}
        t0 = time.monotonic()
        try:
            resp = await self._http.head(
                url, timeout=timeout, follow_redirects=True, headers=headers
            )
            if resp.status_code in (405, 501):
                resp = await self._http.get(
                    url,
                    timeout=timeout,
                    follow_redirects=True,
                    headers={**headers, "Range": "bytes=0-0"},
                )
        except httpx.TimeoutException:
            return self._failed("preflight", url, t0, "timeout")
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            log.debug("preflight_error", url=url, error=str(exc))
            return self._failed("preflight", url, t0, "network_error")

        ok = resp.status_code < 500
        return ProbeAttempt(
            kind="preflight",
            url=url,
            ok=ok,
            status_code=resp.status_code,
            elapsed_ms=(time.monotonic() - t0) * 1000,
            error=None if ok else "server_error",
        )

    # ------------------------------------------------------------------
    # Functional probes
    # ------------------------------------------------------------------

    async def _probe(
        self,
        kind: ProbeKind,
        url: str,
        params: dict[str, str],
        term: str,
        trail: list[ProbeAttempt],
    ) -> ProbeAttempt:
        """Run one logical probe, retrying once on 5xx.  Returns the final attempt."""
        result = await self._attempt(kind, url, params, term)
        trail.append(result)
        if result.error == "server_error":
            log.warning(
                "probe_retry",
                kind=kind,
                url=url,
                status=result.status_code,
                delay=self._config.server_error_retry_delay_seconds,
            )
            await self._sleep(self._config.server_error_retry_delay_seconds)
            result = await self._attempt(kind, url, params, term)
            trail.append(result)
        if not result.ok:
            log.debug(
                "probe_failed",
                kind=kind,
                url=url,
                term=term,
                status=result.status_code,
                error=result.error,
            )
        return result

    async def _attempt(
        self, kind: ProbeKind, url: str, params: dict[str, str], term: str
    ) -> ProbeAttempt:
        t0 = time.monotonic()
        try:
            resp = await self._http.get(
                url,
                params=params,
                timeout=self._config.request_timeout_seconds,
                follow_redirects=True,
                headers={"User-Agent": self._user_agent},
            )
        except httpx.TimeoutException:
            return self._failed(kind, url, t0, "timeout", term=term)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            log.debug("probe_error", kind=kind, url=url, error=str(exc))
            return self._failed(kind, url, t0, "network_error", term=term)

        elapsed_ms = (time.monotonic() - t0) * 1000
        text = resp.text
        error: str | None = None
        if resp.status_code >= 500:
            error = "server_error"
        elif not resp.is_success:
            error = "client_error"
        else:
            try:
                data = json.loads(text)
            except ValueError:
                error = "invalid_json"
            else:
                if not _SHAPES[kind](data):
                    error = "unexpected_shape"

        return ProbeAttempt(
            kind=kind,
            url=str(resp.request.url),
            ok=error is None,
            status_code=resp.status_code,
            elapsed_ms=elapsed_ms,
            body_sample=text[:_BODY_SAMPLE_CHARS],
            error=error,
            term=term,
        )

    @staticmethod
    def _failed(
        kind: ProbeKind,
        url: str,
        t0: float,
        error: str,
        *,
        term: str | None = None,
    ) -> ProbeAttempt:
        return ProbeAttempt(
            kind=kind,
            url=url,
            ok=False,
            elapsed_ms=(time.monotonic() - t0) * 1000,
            error=error,
            term=term,
        )
