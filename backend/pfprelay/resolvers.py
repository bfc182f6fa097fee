from __future__ import annotations
import logging
from typing import Optional
from urllib.parse import quote
import httpx
from bs4 import BeautifulSoup
from .browser import BrowserRenderer, RenderedPage
from .chain import ExtractorChain
from .config import Settings
from .errors import ProfileNotFound, UpstreamUnavailable
from .extractors import EmbeddedStateStrategy, OEmbedStrategy, RenderedDomStrategy, profile_url
from .fetcher import UpstreamFetcher
from .normalize import proxy_link
from .types import Platform, ProfileQuery, ResolvedProfile

logger = logging.getLogger("pfprelay.resolvers")

PAYMENT_URL = "https://cash.app/{tag}"
_TITLE_PREFIX = "Pay "
_TITLE_SUFFIX = " on Cash App"


def build_short_video_chain(
    cfg: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    renderer: Optional[BrowserRenderer] = None,
) -> ExtractorChain:
    """Assemble the strategy chain for ``cfg.short_video_mode``.

    ``http``: embedded state from a plain fetch, then oEmbed.
    ``browser``: embedded state from the rendered page, then og:image/regex.
    """
    identity = cfg.identity()
    fetcher = UpstreamFetcher(identity, timeout=cfg.fetch_timeout_s, transport=transport)
    mode = (cfg.short_video_mode or "http").lower()

    if mode == "browser":
        renderer = renderer or BrowserRenderer(
            identity,
            chromium_args=cfg.chromium_args,
            headless=cfg.headless,
            nav_timeout_ms=cfg.browser_nav_timeout_ms,
            selector_timeout_ms=cfg.browser_selector_timeout_ms,
        )

        async def load_rendered(query: ProfileQuery) -> RenderedPage:
            return await renderer.arender(f"{profile_url(query.handle)}?lang=en")

        return ExtractorChain(
            [EmbeddedStateStrategy(), RenderedDomStrategy()],
            load_rendered,
            proxy_base_url=cfg.public_base_url,
        )

    if mode != "http":
        raise ValueError(f"unknown short_video_mode: {cfg.short_video_mode!r}")

    async def load_html(query: ProfileQuery) -> RenderedPage:
        # bot checks often come back as 4xx with parseable HTML
        page = await fetcher.get_page(profile_url(query.handle), accept_status=range(200, 500))
        return RenderedPage(url=page.url, html=page.html)

    return ExtractorChain(
        [EmbeddedStateStrategy(), OEmbedStrategy(fetcher)],
        load_html,
        proxy_base_url=cfg.public_base_url,
    )


class PaymentResolver:
    """Resolve a payment tag. Both implementations return the same shape."""

    async def resolve(self, query: ProfileQuery) -> ResolvedProfile:
        raise NotImplementedError


class StaticPaymentResolver(PaymentResolver):
    """Derive the name from the tag itself; never touches the network."""

    async def resolve(self, query):
        return ResolvedProfile(display_name=query.handle, avatar_url=None)


class ScrapingPaymentResolver(PaymentResolver):
    def __init__(self, fetcher: UpstreamFetcher, proxy_base_url: str = ""):
        self.fetcher = fetcher
        self.proxy_base_url = proxy_base_url

    async def resolve(self, query):
        url = PAYMENT_URL.format(tag=quote(query.tagged, safe="$"))
        try:
            page = await self.fetcher.get_page(url)
        except UpstreamUnavailable as e:
            logger.info("payment tag %r not resolved: %s", query.tagged, e)
            raise ProfileNotFound(query.tagged) from e
        title, image = parse_og_meta(page.html)
        return ResolvedProfile(
            display_name=clean_title(title) or query.handle,
            avatar_url=proxy_link(image, self.proxy_base_url),
        )


def parse_og_meta(html: str) -> tuple[Optional[str], Optional[str]]:
    soup = BeautifulSoup(html or "", "html.parser")

    def og(prop: str) -> Optional[str]:
        tag = soup.find("meta", attrs={"property": prop})
        content = tag.get("content") if tag else None
        return content.strip() if isinstance(content, str) and content.strip() else None

    return og("og:title"), og("og:image")


def clean_title(title: Optional[str]) -> Optional[str]:
    if not title:
        return None
    name = title
    if name.startswith(_TITLE_PREFIX):
        name = name[len(_TITLE_PREFIX):]
    if name.endswith(_TITLE_SUFFIX):
        name = name[: -len(_TITLE_SUFFIX)]
    return name.strip() or None


def build_payment_resolver(cfg: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> PaymentResolver:
    mode = (cfg.payment_mode or "static").lower()
    if mode == "static":
        return StaticPaymentResolver()
    if mode == "scrape":
        fetcher = UpstreamFetcher(cfg.identity(), timeout=cfg.fetch_timeout_s, transport=transport)
        return ScrapingPaymentResolver(fetcher, proxy_base_url=cfg.public_base_url)
    raise ValueError(f"unknown payment_mode: {cfg.payment_mode!r}")


def payment_query(raw: Optional[str]) -> ProfileQuery:
    return ProfileQuery.parse(Platform.PAYMENT, raw)


def short_video_query(raw: Optional[str]) -> ProfileQuery:
    return ProfileQuery.parse(Platform.SHORT_VIDEO, raw)
