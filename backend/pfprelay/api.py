from fastapi import FastAPI, Query
import logging
import os
from typing import Optional
import httpx
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse
from fastapi.staticfiles import StaticFiles
from starlette.background import BackgroundTask
from .browser import BrowserRenderer
from .config import Settings, settings
from .errors import InvalidProxyTarget, MissingParameter, ProfileNotFound, ProxyFetchFailed
from .logging_config import init_logging
from .proxy import ImageProxy
from .resolvers import build_payment_resolver, build_short_video_chain, payment_query, short_video_query
from .types import PaymentResponse, ProxyRequest, ShortVideoResponse


init_logging(settings.log_level)
logger = logging.getLogger("pfprelay.api")


def create_app(
    cfg: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    renderer: Optional[BrowserRenderer] = None,
) -> FastAPI:
    """Build the app. ``transport``/``renderer`` replace the real upstream in tests."""
    cfg = cfg or settings
    app = FastAPI(title="pfp-relay")

    chain = build_short_video_chain(cfg, transport=transport, renderer=renderer)
    payments = build_payment_resolver(cfg, transport=transport)
    image_proxy = ImageProxy(
        cfg.identity(),
        timeout=cfg.proxy_timeout_s,
        max_redirects=cfg.proxy_max_redirects,
        cache_max_age=cfg.proxy_cache_max_age,
        transport=transport,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health():
        return PlainTextResponse("ok")

    @app.get("/tiktok", response_model=ShortVideoResponse)
    async def tiktok(user: Optional[str] = Query(None)):
        try:
            query = short_video_query(user)
        except MissingParameter:
            return JSONResponse({"error": "Missing username"}, status_code=400)
        logger.info("/tiktok user=%r mode=%s", query.handle, cfg.short_video_mode)
        try:
            prof = await chain.resolve(query)
        except Exception as e:
            logger.exception("/tiktok failed user=%r", query.handle)
            return JSONResponse({"error": "TikTok fetch failed", "details": e.__class__.__name__}, status_code=500)
        return ShortVideoResponse(
            name=prof.display_name,
            avatar=prof.avatar_url,
            blocked=prof.blocked,
            source=prof.source,
            match=prof.match,
        )

    @app.get("/cash", response_model=PaymentResponse)
    async def cash(tag: Optional[str] = Query(None)):
        try:
            query = payment_query(tag)
        except MissingParameter:
            return JSONResponse({"error": "Missing tag"}, status_code=400)
        logger.info("/cash tag=%r mode=%s", query.tagged, cfg.payment_mode)
        try:
            prof = await payments.resolve(query)
        except ProfileNotFound:
            return JSONResponse({"error": "Not found"}, status_code=404)
        except Exception as e:
            logger.exception("/cash failed tag=%r", query.tagged)
            return JSONResponse({"error": "Cash lookup failed", "details": e.__class__.__name__}, status_code=500)
        return PaymentResponse(name=prof.display_name, avatar=prof.avatar_url)

    @app.get("/proxy-image")
    async def proxy_image(url: Optional[str] = Query(None)):
        try:
            req = ProxyRequest.parse(url)
        except (MissingParameter, InvalidProxyTarget) as e:
            return PlainTextResponse(str(e), status_code=400)
        try:
            image = await image_proxy.open(req)
        except InvalidProxyTarget as e:
            return PlainTextResponse(str(e), status_code=400)
        except ProxyFetchFailed as e:
            return PlainTextResponse(str(e), status_code=502)
        except Exception:
            logger.exception("proxy-image error url=%s", req.target_url)
            return PlainTextResponse("proxy error", status_code=500)
        return StreamingResponse(
            image.body,
            media_type=image.content_type,
            headers={"Cache-Control": image.cache_control},
            background=BackgroundTask(image.close),
        )

    # mounted last so the API routes above take precedence
    if cfg.static_dir and os.path.isdir(cfg.static_dir):
        logger.info("serving static files from %s", cfg.static_dir)
        app.mount("/", StaticFiles(directory=cfg.static_dir, html=True), name="static")

    return app


app = create_app()
