"""Plain HTTP page fetching for the search, hop and protection stages.

``requests`` is blocking, so every call is pushed to a worker thread with
``asyncio.to_thread`` to keep the event loop free while the browser stage
runs. Responses are returned whatever their status code; callers decide
what counts as success. Network failures surface as
``requests.RequestException``.
"""

import asyncio
from dataclasses import dataclass

import requests

from models.config import DEFAULT_USER_AGENT

BROWSER_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "Accept-Encoding": "gzip, deflate",
    "DNT": "1",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
}


@dataclass(frozen=True)
class PageResponse:
    url: str
    status_code: int
    text: str

    @property
    def ok(self) -> bool:
        return self.status_code == 200


class PageFetcher:
    """Fetches HTML pages with a spoofed browser user agent."""

    def __init__(self, user_agent: str = DEFAULT_USER_AGENT, max_redirects: int = 5) -> None:
        self.user_agent = user_agent
        self.max_redirects = max_redirects

    def headers(self, referer: str | None = None, full: bool = False) -> dict[str, str]:
        headers = {"User-Agent": self.user_agent}
        if full:
            headers.update(BROWSER_HEADERS)
        if referer:
            headers["Referer"] = referer
        return headers

    def _get(self, url: str, timeout: float, headers: dict[str, str]) -> PageResponse:
        with requests.Session() as session:
            session.max_redirects = self.max_redirects
            response = session.get(url, headers=headers, timeout=timeout)
            return PageResponse(url=response.url, status_code=response.status_code, text=response.text)

    async def get(
        self,
        url: str,
        *,
        timeout: float,
        referer: str | None = None,
        full_headers: bool = False,
    ) -> PageResponse:
        """GET ``url`` off the event loop.

        Raises:
            requests.RequestException: DNS, connection, timeout or redirect errors
        """
        headers = self.headers(referer=referer, full=full_headers)
        return await asyncio.to_thread(self._get, url, timeout, headers)
