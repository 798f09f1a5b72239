"""Failover router: forwards one request across ranked instances in order."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable

import httpx
import structlog

from mirrorgate.domain.entities import (
    ProxyRequest,
    ProxyResponse,
    RoutingExhaustedError,
    Snapshot,
)
from mirrorgate.infrastructure.metrics import MetricsCollector
from mirrorgate.infrastructure.proxy.headers import (
    build_target_url,
    filter_request_headers,
    filter_response_headers,
)

log = structlog.get_logger(__name__)

SnapshotProvider = Callable[[], Awaitable[Snapshot]]

_BODYLESS_METHODS = frozenset({"GET", "HEAD"})


class FailoverRouter:
    """Tries instances starting at a preferred index, one after another.

    An attempt fails on a network error, a timeout or a 5xx status and
    moves on to ``(preferred + attempt) % n``.  Any other status
    (including 3xx and 4xx) is relayed as-is; redirects are never
    followed.  Attempts are strictly sequential and each instance is
    tried at most once per request.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        snapshots: SnapshotProvider,
        *,
        timeout: float = 15.0,
        forwarded_by: str | None = "mirrorgate",
        metrics: MetricsCollector | None = None,
    ) -> None:
        self._http = http_client
        self._snapshots = snapshots
        self._timeout = timeout
        self._forwarded_by = forwarded_by
        self._metrics = metrics

    async def instance_count(self) -> int:
        return len(await self._snapshots())

    async def route(
        self, request: ProxyRequest, preferred_index: int = 0
    ) -> ProxyResponse:
        """Forward *request*; raise RoutingExhaustedError if every instance fails."""
        snapshot = await self._snapshots()
        instances = snapshot.instances
        n = len(instances)
        if n == 0:
            if self._metrics is not None:
                self._metrics.record_request(0, exhausted=True)
            raise RoutingExhaustedError(0, "no instances available")

        method = request.method.upper()
        headers = filter_request_headers(
            request.headers, forwarded_by=self._forwarded_by
        )
        body = None if method in _BODYLESS_METHODS or not request.body else request.body
        start = preferred_index % n

        last_error: str | None = None
        for attempt in range(n):
            instance = instances[(start + attempt) % n]
            url = build_target_url(instance.api_url, request.path, request.query)
            t0 = time.perf_counter_ns()
            try:
                resp = await self._http.send(
                    self._http.build_request(
                        method,
                        url,
                        headers=headers,
                        content=body,
                        timeout=self._timeout,
                    ),
                    follow_redirects=False,
                )
            except httpx.TimeoutException:
                last_error = f"timeout contacting {instance.api_url}"
            except (httpx.HTTPError, httpx.InvalidURL) as exc:
                last_error = f"{type(exc).__name__}: {exc}"
            else:
                if resp.status_code < 500:
                    self._record(instance.api_url, t0, success=True)
                    if self._metrics is not None:
                        self._metrics.record_request(attempt + 1, exhausted=False)
                    if attempt:
                        log.info(
                            "failover_succeeded",
                            api_url=instance.api_url,
                            attempts=attempt + 1,
                        )
                    return ProxyResponse(
                        status_code=resp.status_code,
                        headers=tuple(filter_response_headers(resp.headers.multi_items())),
                        content=resp.content,
                        api_url=instance.api_url,
                        attempts=attempt + 1,
                    )
                last_error = f"upstream {instance.api_url} returned {resp.status_code}"

            self._record(instance.api_url, t0, success=False)
            log.warning(
                "failover_attempt_failed",
                api_url=instance.api_url,
                attempt=attempt + 1,
                of=n,
                error=last_error,
            )

        if self._metrics is not None:
            self._metrics.record_request(n, exhausted=True)
        log.warning("routing_exhausted", attempts=n, last_error=last_error)
        raise RoutingExhaustedError(n, last_error)

    def _record(self, api_url: str, t0: int, *, success: bool) -> None:
        if self._metrics is not None:
            self._metrics.record_attempt(
                api_url, time.perf_counter_ns() - t0, success=success
            )
