import json
from typing import Callable, Dict, List
import httpx
import pytest
from pfprelay.config import Settings


def sigi_page(users: dict, user_info: dict | None = None) -> str:
    state = {"UserModule": {"users": users}}
    if user_info is not None:
        state["userInfo"] = {"user": user_info}
    return (
        "<html><head></head><body>"
        f'<script id="SIGI_STATE" type="application/json">{json.dumps(state)}</script>'
        "</body></html>"
    )


class Upstream:
    """Route table for httpx.MockTransport that records every request."""

    def __init__(self, routes: Dict[str, Callable[[httpx.Request], httpx.Response]] | None = None):
        self.routes = dict(routes or {})
        self.calls: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        key = f"{request.url.host}{request.url.path}"
        handler = self.routes.get(key)
        if handler is None:
            return httpx.Response(404, text="no route")
        return handler(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def upstream():
    return Upstream()


@pytest.fixture
def cfg():
    return Settings(
        short_video_mode="http",
        payment_mode="static",
        public_base_url="",
        proxy_cache_max_age=86400,
        static_dir="",
    )
