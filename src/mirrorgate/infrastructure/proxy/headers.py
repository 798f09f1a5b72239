"""Header filtering, CORS headers and target URL construction for the proxy."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from urllib.parse import urlencode

HOP_BY_HOP: frozenset[str] = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailer",
        "trailers",
        "transfer-encoding",
        "upgrade",
    }
)

# Never forwarded upstream.  content-length is recomputed from the body.
_REQUEST_DROP: frozenset[str] = HOP_BY_HOP | {"host", "cookie", "content-length"}

# Never relayed back.  httpx has already decoded the body, so the
# original encoding/length no longer describe it.
_RESPONSE_DROP: frozenset[str] = HOP_BY_HOP | {
    "set-cookie",
    "content-length",
    "content-encoding",
}


def _connection_tokens(headers: Sequence[tuple[str, str]]) -> set[str]:
    tokens: set[str] = set()
    for name, value in headers:
        if name.lower() == "connection":
            tokens.update(t.strip().lower() for t in value.split(",") if t.strip())
    return tokens


def filter_request_headers(
    headers: Iterable[tuple[str, str]],
    *,
    forwarded_by: str | None = None,
) -> list[tuple[str, str]]:
    """Strip hop-by-hop, host and cookie headers; add ``x-forwarded-by``."""
    items = list(headers)
    drop = _REQUEST_DROP | _connection_tokens(items)
    out = [(k, v) for k, v in items if k.lower() not in drop]
    if forwarded_by:
        out = [(k, v) for k, v in out if k.lower() != "x-forwarded-by"]
        out.append(("x-forwarded-by", forwarded_by))
    return out


def filter_response_headers(headers: Iterable[tuple[str, str]]) -> list[tuple[str, str]]:
    """Strip hop-by-hop and ``set-cookie`` headers from an upstream response."""
    items = list(headers)
    drop = _RESPONSE_DROP | _connection_tokens(items)
    return [(k, v) for k, v in items if k.lower() not in drop]


def cors_headers(
    methods: Sequence[str],
    allowed_headers: Sequence[str],
) -> dict[str, str]:
    return {
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Methods": ",".join(methods),
        "Access-Control-Allow-Headers": ", ".join(allowed_headers),
    }


def build_target_url(
    api_url: str,
    path: str,
    query: Sequence[tuple[str, str]] = (),
) -> str:
    """Join *api_url* and *path* with exactly one slash, then append *query*.

    >>> build_target_url("https://api.example.com/api/v1/", "/streams/abc", [("a", "1")])
    'https://api.example.com/api/v1/streams/abc?a=1'
    """
    base = api_url.rstrip("/")
    suffix = path.lstrip("/")
    url = f"{base}/{suffix}" if suffix else base
    if query:
        url = f"{url}?{urlencode(list(query))}"
    return url
