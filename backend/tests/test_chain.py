import asyncio
from urllib.parse import parse_qs, urlparse
import httpx
import pytest
from pfprelay.browser import RenderedPage
from pfprelay.resolvers import build_short_video_chain, short_video_query
from conftest import Upstream, sigi_page

ESC_SLASH = "\\" + "u002F"


def proxied_target(avatar: str) -> str:
    return parse_qs(urlparse(avatar).query)["url"][0]


class FakeRenderer:
    def __init__(self, page=None, error=None):
        self.page = page
        self.error = error
        self.urls = []

    async def arender(self, url):
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        return self.page


def oembed(author="Demo Author", thumb="https://cdn.example/oembed.jpg"):
    return lambda req: httpx.Response(200, json={"author_name": author, "thumbnail_url": thumb})


@pytest.mark.asyncio
async def test_embedded_state_wins(cfg):
    up = Upstream({
        "www.tiktok.com/@demo": lambda req: httpx.Response(
            200, text=sigi_page({"demo": {"avatarLarger": "A", "avatarMedium": "B", "nickname": "Demo"}})
        ),
        "www.tiktok.com/oembed": oembed(),
    })
    prof = await build_short_video_chain(cfg, transport=up.transport).resolve(short_video_query("@demo"))
    assert prof.blocked is False
    assert prof.display_name == "Demo"
    assert prof.source == "embedded_state"
    assert prof.match == "exact"
    assert prof.avatar_url.startswith("/proxy-image?url=")
    assert proxied_target(prof.avatar_url) == "A"
    # oembed never consulted once the first strategy succeeded
    assert [c.url.path for c in up.calls] == ["/@demo"]


@pytest.mark.asyncio
async def test_name_defaults_to_tagged_handle(cfg):
    up = Upstream({"www.tiktok.com/@demo": lambda req: httpx.Response(200, text=sigi_page({"demo": {"avatarThumb": "T"}}))})
    prof = await build_short_video_chain(cfg, transport=up.transport).resolve(short_video_query("@demo"))
    assert prof.display_name == "@demo"
    assert proxied_target(prof.avatar_url) == "T"


@pytest.mark.asyncio
async def test_identity_headers_sent(cfg):
    up = Upstream({"www.tiktok.com/@demo": lambda req: httpx.Response(200, text=sigi_page({"demo": {"avatarThumb": "T"}}))})
    await build_short_video_chain(cfg, transport=up.transport).resolve(short_video_query("demo"))
    sent = up.calls[0].headers
    assert sent["user-agent"] == cfg.user_agent
    assert sent["accept-language"] == cfg.accept_language


@pytest.mark.asyncio
async def test_bot_check_status_still_parsed(cfg):
    up = Upstream({"www.tiktok.com/@demo": lambda req: httpx.Response(403, text=sigi_page({"demo": {"avatarLarger": "A"}}))})
    prof = await build_short_video_chain(cfg, transport=up.transport).resolve(short_video_query("demo"))
    assert proxied_target(prof.avatar_url) == "A"


@pytest.mark.asyncio
async def test_oembed_fallback(cfg):
    up = Upstream({
        "www.tiktok.com/@demo": lambda req: httpx.Response(200, text="<html>verify to continue</html>"),
        "www.tiktok.com/oembed": oembed(thumb="//cdn.example/o.jpg"),
    })
    prof = await build_short_video_chain(cfg, transport=up.transport).resolve(short_video_query("demo"))
    assert prof.source == "oembed"
    assert prof.match is None
    assert prof.display_name == "Demo Author"
    assert proxied_target(prof.avatar_url) == "https://cdn.example/o.jpg"
    oembed_call = up.calls[-1]
    assert oembed_call.url.params["url"] == "https://www.tiktok.com/@demo"


@pytest.mark.asyncio
async def test_results_are_not_merged(cfg):
    # the page has a name but no avatar; the oembed result is taken whole
    up = Upstream({
        "www.tiktok.com/@demo": lambda req: httpx.Response(200, text=sigi_page({"demo": {"nickname": "From Page"}})),
        "www.tiktok.com/oembed": oembed(author=None),
    })
    prof = await build_short_video_chain(cfg, transport=up.transport).resolve(short_video_query("demo"))
    assert prof.source == "oembed"
    assert prof.display_name == "@demo"


@pytest.mark.asyncio
async def test_everything_failing_reports_blocked(cfg):
    up = Upstream({
        "www.tiktok.com/@demo": lambda req: httpx.Response(500, text="oops"),
        "www.tiktok.com/oembed": lambda req: httpx.Response(200, text="not json"),
    })
    prof = await build_short_video_chain(cfg, transport=up.transport).resolve(short_video_query("@demo"))
    assert prof.blocked is True
    assert prof.avatar_url is None
    assert prof.display_name == "@demo"


@pytest.mark.asyncio
async def test_network_errors_never_raise(cfg):
    def boom(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    prof = await build_short_video_chain(cfg, transport=httpx.MockTransport(boom)).resolve(short_video_query("demo"))
    assert prof.blocked is True
    assert prof.avatar_url is None


@pytest.mark.asyncio
async def test_public_base_url_prefix(cfg):
    cfg = cfg.model_copy(update={"public_base_url": "https://relay.example"})
    up = Upstream({"www.tiktok.com/@demo": lambda req: httpx.Response(200, text=sigi_page({"demo": {"avatarLarger": "https://cdn.example/a.jpg"}}))})
    prof = await build_short_video_chain(cfg, transport=up.transport).resolve(short_video_query("demo"))
    assert prof.avatar_url.startswith("https://relay.example/proxy-image?url=https%3A%2F%2Fcdn.example")


@pytest.mark.asyncio
async def test_browser_mode_state_then_dom(cfg):
    cfg = cfg.model_copy(update={"short_video_mode": "browser"})
    page = RenderedPage(
        url="https://www.tiktok.com/@demo?lang=en",
        html="<html><body>no state</body></html>",
        og_image="https://cdn.example/og.jpg",
    )
    renderer = FakeRenderer(page)
    prof = await build_short_video_chain(cfg, renderer=renderer).resolve(short_video_query("@demo"))
    assert prof.source == "rendered_dom"
    assert prof.display_name == "@demo"
    assert proxied_target(prof.avatar_url) == "https://cdn.example/og.jpg"
    # both strategies shared one render
    assert renderer.urls == ["https://www.tiktok.com/@demo?lang=en"]


@pytest.mark.asyncio
async def test_browser_mode_prefers_embedded_state(cfg):
    cfg = cfg.model_copy(update={"short_video_mode": "browser"})
    page = RenderedPage(
        url="https://www.tiktok.com/@demo",
        html=sigi_page({"demo": {"avatarMedium": "M", "nickname": "Demo"}}),
        og_image="https://cdn.example/og.jpg",
    )
    prof = await build_short_video_chain(cfg, renderer=FakeRenderer(page)).resolve(short_video_query("demo"))
    assert prof.source == "embedded_state"
    assert proxied_target(prof.avatar_url) == "M"


@pytest.mark.asyncio
async def test_browser_mode_regex_scan_unescapes(cfg):
    cfg = cfg.model_copy(update={"short_video_mode": "browser"})
    raw = f"https:{ESC_SLASH}{ESC_SLASH}p16.tiktokcdn.com{ESC_SLASH}t.jpeg"
    page = RenderedPage(url="https://www.tiktok.com/@demo", html='<div>"avatarThumb":"%s"</div>' % raw)
    prof = await build_short_video_chain(cfg, renderer=FakeRenderer(page)).resolve(short_video_query("demo"))
    assert proxied_target(prof.avatar_url) == "https://p16.tiktokcdn.com/t.jpeg"


@pytest.mark.asyncio
async def test_browser_failure_reports_blocked(cfg):
    cfg = cfg.model_copy(update={"short_video_mode": "browser"})
    renderer = FakeRenderer(error=RuntimeError("browser crashed"))
    prof = await build_short_video_chain(cfg, renderer=renderer).resolve(short_video_query("demo"))
    assert prof.blocked is True
    assert len(renderer.urls) == 1


def test_unknown_mode_rejected(cfg):
    with pytest.raises(ValueError):
        build_short_video_chain(cfg.model_copy(update={"short_video_mode": "carrier-pigeon"}))


@pytest.mark.asyncio
async def test_concurrent_handles_do_not_interfere(cfg):
    async def page_for(request):
        handle = request.url.path.lstrip("/@")
        await asyncio.sleep(0.01 if handle == "alpha" else 0)
        return httpx.Response(200, text=sigi_page({handle: {"avatarLarger": f"https://cdn.example/{handle}.jpg"}}))

    class AsyncRoutes(httpx.AsyncBaseTransport):
        async def handle_async_request(self, request):
            return await page_for(request)

    chain = build_short_video_chain(cfg, transport=AsyncRoutes())
    alpha, beta = await asyncio.gather(
        chain.resolve(short_video_query("alpha")),
        chain.resolve(short_video_query("beta")),
    )
    assert proxied_target(alpha.avatar_url) == "https://cdn.example/alpha.jpg"
    assert proxied_target(beta.avatar_url) == "https://cdn.example/beta.jpg"
