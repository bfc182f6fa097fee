from __future__ import annotations
import logging
from typing import Awaitable, Callable, Sequence
from .browser import RenderedPage
from .errors import RelayError
from .extractors import ProfileDocument, Strategy
from .normalize import proxy_link
from .types import ProfileQuery, ResolvedProfile

logger = logging.getLogger("pfprelay.chain")

PageLoader = Callable[[ProfileQuery], Awaitable[RenderedPage]]


class ExtractorChain:
    """Run strategies in order; the first avatar candidate wins outright.

    Results are never merged across strategies. Every strategy failure is
    logged and absorbed, so ``resolve`` does not raise for upstream trouble.
    """

    def __init__(self, strategies: Sequence[Strategy], load_page: PageLoader, proxy_base_url: str = ""):
        self.strategies = list(strategies)
        self.load_page = load_page
        self.proxy_base_url = proxy_base_url

    async def resolve(self, query: ProfileQuery) -> ResolvedProfile:
        doc = ProfileDocument(lambda: self.load_page(query))
        for strategy in self.strategies:
            attempt = None
            try:
                attempt = await strategy.attempt(query, doc)
            except RelayError as e:
                logger.info("strategy=%s handle=%r failed: %s", strategy.name, query.handle, e)
            except Exception as e:
                logger.warning("strategy=%s handle=%r error: %r", strategy.name, query.handle, e)
            avatar = proxy_link(attempt.avatar, self.proxy_base_url) if attempt else None
            if avatar:
                logger.info("resolved handle=%r via %s (match=%s)", query.handle, strategy.name, attempt.match)
                return ResolvedProfile(
                    display_name=attempt.name or query.tagged,
                    avatar_url=avatar,
                    blocked=False,
                    source=attempt.strategy,
                    match=attempt.match,
                )
        logger.info("no avatar for handle=%r; reporting blocked", query.handle)
        return ResolvedProfile(display_name=query.tagged, avatar_url=None, blocked=True)
