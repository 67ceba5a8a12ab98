import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from scene.config import settings

logger = logging.getLogger(__name__)


@dataclass
class FetchResult:
    url: str
    status_code: int | None = None
    text: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    error: str | None = None

    @property
    def ok(self) -> bool:
        """Transport succeeded and the final status is 2xx."""
        return self.error is None and self.status_code is not None and 200 <= self.status_code < 300

    @property
    def accepted(self) -> bool:
        """Transport succeeded and the final status is in [200, 400)."""
        return self.error is None and self.status_code is not None and 200 <= self.status_code < 400

    def describe_failure(self) -> str:
        return self.error if self.error is not None else f"HTTP {self.status_code}"


class HttpFetcher:
    """
    Outbound HTTP for the engine. Every call follows redirects and returns a
    FetchResult; network and protocol errors land in FetchResult.error.
    """

    def __init__(
        self,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float | None = None,
        user_agent: str | None = None,
    ) -> None:
        self._transport = transport
        self._timeout = settings.HTTP_TIMEOUT_S if timeout is None else timeout
        self._user_agent = user_agent or settings.USER_AGENT

    async def get_html(self, url: str) -> FetchResult:
        return await self.request("GET", url, headers={"Accept": "text/html"})

    async def post_form(self, url: str, data: dict[str, str]) -> FetchResult:
        return await self.request("POST", url, data=data)

    async def post_json(self, url: str, payload: dict[str, Any]) -> FetchResult:
        return await self.request("POST", url, json=payload)

    async def request(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> FetchResult:
        merged_headers = {"User-Agent": self._user_agent, **(headers or {})}
        try:
            async with httpx.AsyncClient(
                transport=self._transport,
                timeout=self._timeout,
                follow_redirects=True,
            ) as client:
                response = await client.request(method, url, headers=merged_headers, **kwargs)
                return FetchResult(
                    url=str(response.url),
                    status_code=response.status_code,
                    text=response.text,
                    headers=dict(response.headers),
                )
        except Exception as exc:
            logger.debug("[http] %s failed | url=%s | error=%s", method, url, exc)
            return FetchResult(url=url, error=str(exc) or type(exc).__name__)
