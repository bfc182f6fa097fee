from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Optional
import httpx
from .config import Identity
from .errors import InvalidProxyTarget, ProxyFetchFailed
from .types import ProxyRequest

logger = logging.getLogger("pfprelay.proxy")

DEFAULT_CONTENT_TYPE = "image/jpeg"


@dataclass
class ProxiedImage:
    content_type: str
    cache_control: str
    body: AsyncIterator[bytes]
    close: Callable[[], Awaitable[None]]


class ImageProxy:
    """Re-serve an upstream image under our own origin.

    The upstream fetch claims to come from the source platform so hotlink
    checks pass. The body is streamed; the caller must await ``close`` once
    the body has been sent.
    """

    def __init__(
        self,
        identity: Identity,
        timeout: float = 15.0,
        max_redirects: int = 5,
        cache_max_age: int = 86400,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.identity = identity
        self.timeout = timeout
        self.max_redirects = max_redirects
        self.cache_max_age = cache_max_age
        self._transport = transport

    async def open(self, req: ProxyRequest) -> ProxiedImage:
        client = httpx.AsyncClient(
            headers=self.identity.image_headers(),
            timeout=self.timeout,
            follow_redirects=True,
            max_redirects=self.max_redirects,
            transport=self._transport,
        )
        try:
            r = await client.send(client.build_request("GET", req.target_url), stream=True)
        except httpx.InvalidURL as e:
            await client.aclose()
            raise InvalidProxyTarget("Bad URL") from e
        except httpx.HTTPError as e:
            await client.aclose()
            logger.warning("proxy-image failed: %s %s", req.target_url, e.__class__.__name__)
            raise ProxyFetchFailed(f"proxy failed: {e.__class__.__name__}") from e
        except BaseException:
            await client.aclose()
            raise

        if not r.is_success:
            await r.aclose()
            await client.aclose()
            logger.warning("proxy-image failed: %s %s", req.target_url, r.status_code)
            raise ProxyFetchFailed(f"proxy failed: {r.status_code}", status=r.status_code)

        async def close() -> None:
            await r.aclose()
            await client.aclose()

        return ProxiedImage(
            content_type=r.headers.get("content-type") or DEFAULT_CONTENT_TYPE,
            cache_control=f"public, max-age={self.cache_max_age}",
            body=r.aiter_bytes(),
            close=close,
        )

    async def fetch(self, req: ProxyRequest) -> tuple[str, bytes]:
        """Buffered variant for the CLI."""
        image = await self.open(req)
        try:
            chunks = [chunk async for chunk in image.body]
        finally:
            await image.close()
        return image.content_type, b"".join(chunks)
