"""Value objects for one proxied request and its relayed response."""

from __future__ import annotations

from dataclasses import dataclass

Header = tuple[str, str]


@dataclass(frozen=True)
class ProxyRequest:
    """An inbound request, already stripped of routing-control parameters.

    ``body`` is read once and reused verbatim on every attempt.
    """

    method: str
    path: str = ""
    query: tuple[Header, ...] = ()
    headers: tuple[Header, ...] = ()
    body: bytes = b""


@dataclass(frozen=True)
class ProxyResponse:
    """Upstream response relayed to the caller."""

    status_code: int
    headers: tuple[Header, ...]
    content: bytes
    api_url: str
    attempts: int
