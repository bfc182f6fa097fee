from __future__ import annotations
import json
import logging
from dataclasses import dataclass
from typing import Any, Optional
import httpx
from .config import Identity
from .errors import MalformedUpstreamData, UpstreamUnavailable

logger = logging.getLogger("pfprelay.fetcher")


@dataclass(frozen=True)
class FetchedPage:
    url: str
    status: int
    html: str


class UpstreamFetcher:
    """Plain outbound HTTP carrying the disguised identity.

    A client is opened per call; nothing is pooled across requests.
    """

    def __init__(
        self,
        identity: Identity,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.identity = identity
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            headers=self.identity.page_headers(),
            timeout=self.timeout,
            follow_redirects=True,
            transport=self._transport,
        )

    async def _get(self, url: str, params: Optional[dict] = None, accept_status: range = range(200, 300)) -> httpx.Response:
        try:
            async with self._client() as client:
                r = await client.get(url, params=params)
        except httpx.HTTPError as e:
            logger.info("upstream fetch failed url=%s err=%s", url, e.__class__.__name__)
            raise UpstreamUnavailable(f"fetch failed: {e.__class__.__name__}") from e
        if r.status_code not in accept_status:
            logger.info("upstream status url=%s status=%s", url, r.status_code)
            raise UpstreamUnavailable(f"upstream status {r.status_code}", status=r.status_code)
        return r

    async def get_page(self, url: str, accept_status: range = range(200, 300)) -> FetchedPage:
        r = await self._get(url, accept_status=accept_status)
        return FetchedPage(url=str(r.url), status=r.status_code, html=r.text)

    async def get_json(self, url: str, params: Optional[dict] = None) -> Any:
        r = await self._get(url, params=params)
        try:
            return r.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MalformedUpstreamData(f"invalid json from {url}") from e
