"""Avatar extraction strategies for short-video profiles.

Each strategy looks at one kind of upstream material and either produces
an ``ExtractionAttempt`` carrying an avatar candidate or gives up. The
chain in ``chain.py`` evaluates them in priority order.
"""
from __future__ import annotations
import json
import logging
import re
from typing import Any, Awaitable, Callable, Dict, Iterator, Optional, Tuple
from urllib.parse import quote
from .detect import is_human_check
from .browser import RenderedPage
from .errors import UpstreamUnavailable
from .fetcher import UpstreamFetcher
from .types import ExtractionAttempt, Match, ProfileQuery

logger = logging.getLogger("pfprelay.extractors")

PROFILE_URL = "https://www.tiktok.com/@{handle}"
OEMBED_URL = "https://www.tiktok.com/oembed"

# resolution preference, highest quality first
AVATAR_FIELDS = ("avatarLarger", "avatarMedium", "avatarThumb")
NAME_FIELDS = ("nickname",)

_STATE_SCRIPTS = (
    re.compile(r'<script[^>]+id="SIGI_STATE"[^>]*>(.*?)</script>', re.S),
    re.compile(r'<script[^>]+id="__UNIVERSAL_DATA_FOR_REHYDRATION__"[^>]*>(.*?)</script>', re.S),
)
_AVATAR_PATTERNS = tuple(re.compile(r'"%s":"([^"]+)"' % f) for f in AVATAR_FIELDS)


def profile_url(handle: str) -> str:
    return PROFILE_URL.format(handle=quote(handle, safe=""))


def first_string(record: Any, fields: Tuple[str, ...]) -> Optional[str]:
    if not isinstance(record, dict):
        return None
    for f in fields:
        v = record.get(f)
        if isinstance(v, str) and v.strip():
            return v.strip()
    return None


def find_embedded_state(html: str | None) -> Optional[Dict[str, Any]]:
    """Return the first embedded JSON state blob that parses, else None."""
    if not html:
        return None
    for pattern in _STATE_SCRIPTS:
        m = pattern.search(html)
        if not m or not m.group(1).strip():
            continue
        try:
            state = json.loads(m.group(1))
        except ValueError:
            logger.info("embedded state did not parse (%s)", pattern.pattern[:40])
            continue
        if isinstance(state, dict):
            return state
    return None


def _page_user(state: Dict[str, Any]) -> Optional[dict]:
    info = state.get("userInfo")
    if not isinstance(info, dict):
        scope = state.get("__DEFAULT_SCOPE__")
        detail = scope.get("webapp.user-detail") if isinstance(scope, dict) else None
        info = detail.get("userInfo") if isinstance(detail, dict) else None
    user = info.get("user") if isinstance(info, dict) else None
    return user if isinstance(user, dict) else None


def user_records(state: Dict[str, Any], handle: str) -> Iterator[Tuple[dict, Match]]:
    """Yield candidate user records, most trustworthy first.

    Exact key match, then the page's own ``userInfo.user``, then whatever
    record happens to come first in ``UserModule.users``. The last one is a
    guess and is tagged ``fallback`` so callers can tell.
    """
    module = state.get("UserModule")
    users = module.get("users") if isinstance(module, dict) else None
    if not isinstance(users, dict):
        users = {}

    exact = users.get(handle)
    if not isinstance(exact, dict):
        wanted = handle.lower()
        exact = next(
            (u for k, u in users.items() if isinstance(u, dict) and str(k).lower() == wanted),
            None,
        )
    if exact is not None:
        yield exact, "exact"

    page_user = _page_user(state)
    if page_user is not None and page_user is not exact:
        yield page_user, "exact"

    first = next((u for u in users.values() if isinstance(u, dict)), None)
    if first is not None and first is not exact:
        yield first, "fallback"


def attempt_from_state(strategy: str, state: Optional[Dict[str, Any]], handle: str) -> Optional[ExtractionAttempt]:
    if not state:
        return None
    for record, match in user_records(state, handle):
        avatar = first_string(record, AVATAR_FIELDS)
        if avatar:
            if match == "fallback":
                logger.warning("handle %r not in state; using first user record (%s)",
                               handle, record.get("uniqueId"))
            return ExtractionAttempt(
                strategy=strategy,
                avatar=avatar,
                name=first_string(record, NAME_FIELDS),
                match=match,
            )
    return None


def scan_avatar(html: str | None) -> Optional[str]:
    """Regex scan of raw markup for avatar fields, in resolution order."""
    if not html:
        return None
    for pattern in _AVATAR_PATTERNS:
        m = pattern.search(html)
        if m:
            return m.group(1)
    return None


class ProfileDocument:
    """The profile page for one request, loaded at most once.

    Strategies that need the page share it; a load failure is remembered
    and re-raised to every strategy that asks.
    """

    def __init__(self, loader: Callable[[], Awaitable[RenderedPage]]):
        self._loader = loader
        self._page: Optional[RenderedPage] = None
        self._error: Optional[BaseException] = None
        self._loaded = False

    async def get(self) -> RenderedPage:
        if not self._loaded:
            try:
                self._page = await self._loader()
                if is_human_check(self._page.html, self._page.url):
                    logger.warning("verification page served for %s", self._page.url)
            except Exception as e:
                self._error = e
            finally:
                self._loaded = True
        if self._error is not None:
            raise self._error
        return self._page


class Strategy:
    """One extraction method. Subclasses implement ``attempt``."""

    name = "strategy"

    async def attempt(self, query: ProfileQuery, doc: ProfileDocument) -> Optional[ExtractionAttempt]:
        raise NotImplementedError


class EmbeddedStateStrategy(Strategy):
    name = "embedded_state"

    async def attempt(self, query, doc):
        page = await doc.get()
        return attempt_from_state(self.name, find_embedded_state(page.html), query.handle)


class RenderedDomStrategy(Strategy):
    """og:image from the rendered page, else a scan of its HTML."""

    name = "rendered_dom"

    async def attempt(self, query, doc):
        page = await doc.get()
        avatar = (page.og_image or "").strip() or scan_avatar(page.html)
        if not avatar:
            return None
        return ExtractionAttempt(strategy=self.name, avatar=avatar)


class OEmbedStrategy(Strategy):
    name = "oembed"

    def __init__(self, fetcher: UpstreamFetcher, endpoint: str = OEMBED_URL):
        self.fetcher = fetcher
        self.endpoint = endpoint

    async def attempt(self, query, doc):
        data = await self.fetcher.get_json(self.endpoint, params={"url": profile_url(query.handle)})
        if not isinstance(data, dict):
            raise UpstreamUnavailable("oembed returned non-object")
        avatar = first_string(data, ("thumbnail_url",))
        if not avatar:
            return None
        return ExtractionAttempt(
            strategy=self.name,
            avatar=avatar,
            name=first_string(data, ("author_name",)),
        )
