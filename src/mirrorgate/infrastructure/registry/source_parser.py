"""Registry document parsing: markdown table or JSON list to descriptors.

Pure functions, no I/O.  Degrades in three steps: table rows, then a
permissive scan for any URL in the document, then the operator fallback
instance.  An empty list is a valid result.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable, Mapping
from typing import Any
from urllib.parse import urlsplit, urlunsplit

import structlog

from mirrorgate.domain.entities.instance import InstanceDescriptor

log = structlog.get_logger(__name__)

_URL_RE = re.compile(r"https?://[^\s|)\]>\"'<]+", re.IGNORECASE)

# Table rows that are header/separator lines at the top of each table.
_HEADER_ROWS = 2

FALLBACK_NAME = "Custom Instance (FALLBACK)"

# CDN column values that mean "no CDN".
_NO_CDN_LABELS = frozenset(
    {"", "-", "no", "none", "unknown", "n/a", "na", "false", "❌", "✗"}
)


def normalize_api_url(value: str | None) -> str | None:
    """Normalize an API URL into ``scheme://host[:port][/path]``.

    Strips whitespace, query and fragment, lower-cases scheme and host,
    and removes trailing slashes.  Returns ``None`` for anything that is
    not an absolute http(s) URL.

    >>> normalize_api_url(" HTTPS://PipedAPI.Example.com/api/v1/?x=1 ")
    'https://pipedapi.example.com/api/v1'
    """
    if not value:
        return None
    compact = "".join(value.split())
    try:
        parts = urlsplit(compact)
        # .port raises ValueError on garbage ports
        parts.port  # noqa: B018
    except ValueError:
        return None
    scheme = parts.scheme.lower()
    if scheme not in ("http", "https") or not parts.hostname:
        return None
    netloc = parts.netloc.rsplit("@", 1)[-1].lower()
    path = parts.path.rstrip("/")
    return urlunsplit((scheme, netloc, path, "", ""))


def _origin(url: str) -> str | None:
    normalized = normalize_api_url(url)
    if normalized is None:
        return None
    parts = urlsplit(normalized)
    return f"{parts.scheme}://{parts.netloc}"


def _host_label(api_url: str) -> str:
    return re.sub(r"^https?://", "", api_url)


def normalize_cdn_label(value: Any) -> str | None:
    """Return the CDN label, or ``None`` for placeholders like 'No' or '-'."""
    if value is None or value is False:
        return None
    label = str(value).strip()
    if label.lower() in _NO_CDN_LABELS:
        return None
    return label


def _split_cells(line: str) -> list[str]:
    cells = [c.strip() for c in line.strip().split("|")]
    # Leading/trailing pipes produce empty edge cells.
    if cells and cells[0] == "":
        cells = cells[1:]
    if cells and cells[-1] == "":
        cells = cells[:-1]
    return cells


def _parse_markdown_rows(document: str) -> list[InstanceDescriptor]:
    """Parse ``Name | API URL | Locations | CDN`` table rows."""
    out: list[InstanceDescriptor] = []
    table_row = 0
    for line in document.splitlines():
        if "|" not in line:
            table_row = 0
            continue
        table_row += 1
        if table_row <= _HEADER_ROWS:
            continue

        match = _URL_RE.search(line)
        if match is None:
            continue
        api_url = normalize_api_url(match.group(0))
        if api_url is None:
            continue

        cells = _split_cells(line)
        name = cells[0] if cells and not _URL_RE.fullmatch(cells[0]) else ""
        locations = cells[2] if len(cells) > 2 and cells[2] else None
        cdn = normalize_cdn_label(cells[3]) if len(cells) > 3 else None
        out.append(
            InstanceDescriptor(
                name=name or _host_label(api_url),
                api_url=api_url,
                cdn=cdn,
                locations=locations,
                raw=line,
            )
        )
    return out


def _parse_json_entries(entries: Iterable[Any]) -> list[InstanceDescriptor]:
    out: list[InstanceDescriptor] = []
    for entry in entries:
        if isinstance(entry, str):
            entry = {"api_url": entry}
        if not isinstance(entry, Mapping):
            continue
        api_url = normalize_api_url(
            entry.get("api_url") or entry.get("apiUrl") or entry.get("url")
        )
        if api_url is None:
            continue
        out.append(
            InstanceDescriptor(
                name=str(entry.get("name") or _host_label(api_url)),
                api_url=api_url,
                cdn=normalize_cdn_label(entry.get("cdn")),
                locations=entry.get("locations") or None,
                raw=str(entry.get("raw") or json.dumps(entry, ensure_ascii=False)),
            )
        )
    return out


def _parse_json(document: str) -> list[InstanceDescriptor] | None:
    """Return descriptors for a JSON document, or ``None`` if not JSON."""
    stripped = document.strip()
    if not stripped or stripped[0] not in "[{":
        return None
    try:
        data = json.loads(stripped)
    except json.JSONDecodeError:
        return None
    if isinstance(data, Mapping):
        data = data.get("instances", [])
    if not isinstance(data, list):
        return []
    return _parse_json_entries(data)


def _permissive_scan(
    document: str, default_api_path: str
) -> list[InstanceDescriptor]:
    """Treat every URL origin in the document as a candidate instance."""
    out: list[InstanceDescriptor] = []
    suffix = "/" + default_api_path.strip("/") if default_api_path.strip("/") else ""
    for match in _URL_RE.finditer(document):
        origin = _origin(match.group(0))
        if origin is None:
            continue
        out.append(
            InstanceDescriptor(
                name=_host_label(origin),
                api_url=origin + suffix,
                raw=origin,
            )
        )
    return out


def dedupe(descriptors: Iterable[InstanceDescriptor]) -> list[InstanceDescriptor]:
    """Keep the first descriptor per ``api_url``, preserving order."""
    seen: set[str] = set()
    out: list[InstanceDescriptor] = []
    for d in descriptors:
        if d.api_url in seen:
            continue
        seen.add(d.api_url)
        out.append(d)
    return out


def parse(
    document: str,
    *,
    fallback_url: str | None = None,
    default_api_path: str = "/api/v1",
) -> list[InstanceDescriptor]:
    """Extract a deduplicated, ordered list of instances from *document*.

    Args:
        document: Registry document (markdown table or JSON).
        fallback_url: Operator fallback used when nothing else parses.
        default_api_path: Sub-path appended to origins from the permissive scan.
    """
    document = document or ""

    parsed = _parse_json(document)
    if parsed is None:
        parsed = _parse_markdown_rows(document)
        if not parsed:
            parsed = _permissive_scan(document, default_api_path)
            if parsed:
                log.info("registry_permissive_scan", candidates=len(parsed))

    if not parsed and fallback_url:
        api_url = normalize_api_url(fallback_url)
        if api_url is not None:
            log.warning("registry_using_fallback", api_url=api_url)
            return [
                InstanceDescriptor(
                    name=FALLBACK_NAME,
                    api_url=api_url,
                    raw=fallback_url,
                )
            ]

    result = dedupe(parsed)
    if not result:
        log.warning("registry_empty")
    return result
