"""Registry document fetcher."""

from __future__ import annotations

import httpx
import structlog

log = structlog.get_logger(__name__)


class RegistryClient:
    """Downloads the registry document (markdown table or JSON list).

    A failed fetch never aborts a check cycle: it is logged and an empty
    document is returned so the parser can fall back.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        source_url: str | None,
        *,
        user_agent: str = "mirrorgate/0.1.0",
        timeout: float = 15.0,
    ) -> None:
        self._http = http_client
        self._source_url = source_url
        self._user_agent = user_agent
        self._timeout = timeout

    @property
    def source_url(self) -> str | None:
        return self._source_url

    async def fetch(self) -> str:
        """Return the registry document text, or ``""`` on any failure."""
        if not self._source_url:
            return ""
        try:
            resp = await self._http.get(
                self._source_url,
                timeout=self._timeout,
                follow_redirects=True,
                headers={"User-Agent": self._user_agent},
            )
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            log.warning(
                "registry_fetch_failed",
                url=self._source_url,
                status=exc.response.status_code,
            )
            return ""
        except httpx.HTTPError as exc:
            log.warning(
                "registry_fetch_failed",
                url=self._source_url,
                error=str(exc) or type(exc).__name__,
            )
            return ""

        log.debug("registry_fetched", url=self._source_url, size=len(resp.text))
        return resp.text
