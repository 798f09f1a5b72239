"""Version probe: self-reported backend version and latest-version marking."""

from __future__ import annotations

import asyncio
import json
import re
from collections.abc import Callable, Mapping, Sequence
from typing import Any, Optional

import httpx
import semver
import structlog

from mirrorgate.domain.entities.instance import (
    InstanceDescriptor,
    VersionInfo,
    VersionSurvey,
)

log = structlog.get_logger(__name__)

DEFAULT_VERSION_PATHS: tuple[str, ...] = ("/version", "/api/v1/version", "/api/version")

# Checked in this order when the body is a JSON object.
VERSION_KEYS: tuple[str, ...] = ("version", "build_version", "tag", "commit")

_DOTTED_RE = re.compile(r"\d+\.\d+")
_TEXT_VERSION_RE = re.compile(r"\d+\.\d+(?:\.\d+)?")
_COERCE_RE = re.compile(r"\d+(?:\.\d+){1,2}")

# (parsed_json_or_None, text) -> version string or None
Extractor = Callable[[Any, str], Optional[str]]


def _from_known_keys(data: Any, _: str) -> str | None:
    if not isinstance(data, Mapping):
        return None
    for key in VERSION_KEYS:
        value = data.get(key)
        if isinstance(value, (str, int, float)) and not isinstance(value, bool):
            text = str(value).strip()
            if text:
                return text
    return None


def _scan(node: Any) -> str | None:
    if isinstance(node, Mapping):
        children = list(node.values())
    elif isinstance(node, list):
        children = node
    else:
        return None
    for child in children:
        if isinstance(child, str) and _DOTTED_RE.search(child):
            return child.strip()
        found = _scan(child)
        if found is not None:
            return found
    return None


def _from_nested_json(data: Any, _: str) -> str | None:
    return _scan(data)


def _from_text(_: Any, text: str) -> str | None:
    m = _TEXT_VERSION_RE.search(text or "")
    return m.group(0) if m else None


EXTRACTORS: tuple[Extractor, ...] = (_from_known_keys, _from_nested_json, _from_text)


def extract_version(body: str) -> str | None:
    """Apply the extraction strategies in order; the first hit wins."""
    try:
        data: Any = json.loads(body)
    except ValueError:
        data = None
    for extractor in EXTRACTORS:
        found = extractor(data, body)
        if found:
            return found
    return None


def coerce_version(raw: str | None) -> semver.Version | None:
    """Best-effort coercion to semver: ``v1.2`` -> ``1.2.0``."""
    if not raw:
        return None
    m = _COERCE_RE.search(raw)
    if m is None:
        return None
    parts = [int(p) for p in m.group(0).split(".")]
    while len(parts) < 3:
        parts.append(0)
    return semver.Version(major=parts[0], minor=parts[1], patch=parts[2])


def mark_latest(
    versions: Mapping[str, VersionInfo | None],
) -> VersionSurvey:
    """Mark every instance whose coerced version equals the maximum.

    Args:
        versions: Mapping of ``api_url`` -> probed VersionInfo (or None).

    Returns:
        VersionSurvey with ``is_latest`` set per instance and ``latest``
        holding the coerced maximum (``None`` when nothing resolved).
    """
    coerced = {
        url: coerce_version(info.version_raw if info else None)
        for url, info in versions.items()
    }
    candidates = sorted((v for v in coerced.values() if v is not None), reverse=True)
    if not candidates:
        log.info("version_latest_unknown", instances=len(versions))
        return VersionSurvey(
            versions={
                url: VersionInfo(version_raw=info.version_raw if info else None)
                for url, info in versions.items()
            }
        )

    latest = candidates[0]
    log.info("version_latest_detected", version=str(latest))
    return VersionSurvey(
        versions={
            url: VersionInfo(
                version_raw=info.version_raw if info else None,
                is_latest=coerced[url] is not None and coerced[url] == latest,
            )
            for url, info in versions.items()
        },
        latest=str(latest),
    )


class VersionProbe:
    """Queries known version endpoints of an instance.

    The first endpoint returning 2xx *with* an extractable version is
    used; a 2xx body without one moves on to the next path.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        paths: Sequence[str] = DEFAULT_VERSION_PATHS,
        timeout: float = 5.0,
        user_agent: str = "mirrorgate/0.1.0",
    ) -> None:
        self._http = http_client
        self._paths = tuple(paths)
        self._timeout = timeout
        self._user_agent = user_agent

    async def probe(self, instance: InstanceDescriptor) -> VersionInfo | None:
        """Return the instance's VersionInfo, or None if nothing resolved."""
        for path in self._paths:
            url = f"{instance.api_url}{path}"
            try:
                resp = await self._http.get(
                    url,
                    timeout=self._timeout,
                    follow_redirects=True,
                    headers={"User-Agent": self._user_agent},
                )
            except (httpx.HTTPError, httpx.InvalidURL) as exc:
                log.debug(
                    "version_probe_error",
                    url=url,
                    error=str(exc) or type(exc).__name__,
                )
                continue

            if not resp.is_success:
                log.debug("version_probe_status", url=url, status=resp.status_code)
                continue

            raw = extract_version(resp.text)
            if raw:
                log.debug("version_probe_done", api_url=instance.api_url, version=raw)
                return VersionInfo(version_raw=raw)

        return None

    async def probe_all(
        self,
        instances: Sequence[InstanceDescriptor],
        concurrency: int = 20,
    ) -> VersionSurvey:
        """Probe every instance concurrently and mark the latest ones.

        Returns:
            VersionSurvey keyed by ``api_url`` (``version_raw`` may be None).
        """
        sem = asyncio.Semaphore(concurrency)
        results: dict[str, VersionInfo | None] = {d.api_url: None for d in instances}

        async def _probe_one(instance: InstanceDescriptor) -> None:
            async with sem:
                try:
                    results[instance.api_url] = await self.probe(instance)
                except Exception:
                    log.warning(
                        "version_probe_failed", api_url=instance.api_url, exc_info=True
                    )

        tasks = [asyncio.create_task(_probe_one(d)) for d in instances]
        await asyncio.gather(*tasks)

        log.info(
            "version_probe_cycle_done",
            probed=len(results),
            resolved=sum(1 for v in results.values() if v is not None),
        )
        return mark_latest(results)
