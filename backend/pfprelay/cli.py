import asyncio, json
import typer
from typing import Optional
from rich import print as rprint
from .config import settings
from .errors import InvalidProxyTarget, MissingParameter, ProfileNotFound, ProxyFetchFailed
from .logging_config import init_logging
from .proxy import ImageProxy
from .resolvers import build_payment_resolver, build_short_video_chain, payment_query, short_video_query
from .types import ProxyRequest


app = typer.Typer(add_completion=False, help="Resolve profile handles to names and avatars... fetch proxied images...")


@app.callback()
def main(log_level: Optional[str] = None):
    init_logging(log_level or settings.log_level)


@app.command()
def tiktok(user: str, mode: Optional[str] = None):
    """Resolve a short-video handle... print name/avatar/blocked as json."""
    cfg = settings.model_copy(update={"short_video_mode": mode}) if mode else settings

    async def _run():
        prof = await build_short_video_chain(cfg).resolve(short_video_query(user))
        rprint(json.dumps(prof.model_dump(), ensure_ascii=False, indent=2))

    try:
        asyncio.run(_run())
    except MissingParameter as e:
        rprint(f"[red]{e}[/red]")
        raise typer.Exit(code=2)


@app.command()
def cash(tag: str, scrape: bool = False):
    """Resolve a payment tag... static by default, --scrape to read the public page."""
    cfg = settings.model_copy(update={"payment_mode": "scrape" if scrape else "static"})

    async def _run():
        prof = await build_payment_resolver(cfg).resolve(payment_query(tag))
        rprint(json.dumps({"name": prof.display_name, "avatar": prof.avatar_url}, ensure_ascii=False, indent=2))

    try:
        asyncio.run(_run())
    except (MissingParameter, ProfileNotFound) as e:
        rprint(f"[red]not found: {e}[/red]")
        raise typer.Exit(code=1)


@app.command()
def fetch_image(url: str, out: str = typer.Option(..., "--out", help="file to write the image to")):
    """Fetch an image through the proxy identity and write it to a file."""
    proxy = ImageProxy(
        settings.identity(),
        timeout=settings.proxy_timeout_s,
        max_redirects=settings.proxy_max_redirects,
        cache_max_age=settings.proxy_cache_max_age,
    )

    async def _run():
        content_type, data = await proxy.fetch(ProxyRequest.parse(url))
        with open(out, "wb") as f:
            f.write(data)
        rprint(f"wrote {len(data)} bytes ({content_type}) to {out}")

    try:
        asyncio.run(_run())
    except (MissingParameter, InvalidProxyTarget, ProxyFetchFailed) as e:
        rprint(f"[red]{e}[/red]")
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
