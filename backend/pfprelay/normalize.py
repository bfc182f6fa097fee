import re
from typing import Optional
from urllib.parse import quote

PROXY_PATH = "/proxy-image"

_ESCAPES = (
    (re.compile(r"\\u002[fF]"), "/"),
    (re.compile(r"\\u0026"), "&"),
    (re.compile(r"\\/"), "/"),
)


def _unescape(url: str) -> str:
    for pattern, literal in _ESCAPES:
        url = pattern.sub(literal, url)
    return url


def normalize_url(u: Optional[str]) -> Optional[str]:
    """Canonicalize an avatar URL scraped out of markup or JSON.

    Escaped slashes/ampersands become literal, then protocol-relative URLs
    are promoted to https. Unescaping runs to a fixed point so the result
    is stable under repeated normalization.
    """
    if u is None:
        return None
    url = str(u).strip()
    if not url:
        return None
    while True:
        nxt = _unescape(url)
        if nxt == url:
            break
        url = nxt
    if url.startswith("//"):
        url = "https:" + url
    return url


def proxy_link(raw: Optional[str], base_url: str = "") -> Optional[str]:
    """Build the same-origin proxy link for an upstream image URL."""
    url = normalize_url(raw)
    if not url:
        return None
    return f"{base_url.rstrip('/')}{PROXY_PATH}?url={quote(url, safe='')}"
