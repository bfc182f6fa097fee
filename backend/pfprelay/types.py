from __future__ import annotations
from enum import Enum
from typing import Literal, Optional
from urllib.parse import urlparse
from pydantic import BaseModel, ConfigDict
from .errors import InvalidProxyTarget, MissingParameter
from .normalize import normalize_url


Match = Literal["exact", "fallback"]


class Platform(str, Enum):
    SHORT_VIDEO = "short_video"
    PAYMENT = "payment"


_SIGILS = {Platform.SHORT_VIDEO: "@", Platform.PAYMENT: "$"}


class ProfileQuery(BaseModel):
    model_config = ConfigDict(frozen=True)

    platform: Platform
    handle: str

    @classmethod
    def parse(cls, platform: Platform, raw: Optional[str]) -> "ProfileQuery":
        """Strip whitespace and the platform sigil; reject empty handles."""
        handle = (raw or "").strip().removeprefix(_SIGILS[platform]).strip()
        if not handle:
            raise MissingParameter(f"missing {platform.value} handle")
        return cls(platform=platform, handle=handle)

    @property
    def sigil(self) -> str:
        return _SIGILS[self.platform]

    @property
    def tagged(self) -> str:
        """Handle in its canonical sigil form, e.g. ``@demo`` or ``$alice``."""
        return f"{self.sigil}{self.handle}"


class ExtractionAttempt(BaseModel):
    strategy: str
    avatar: Optional[str] = None
    name: Optional[str] = None
    match: Optional[Match] = None


class ResolvedProfile(BaseModel):
    display_name: str
    avatar_url: Optional[str] = None
    blocked: bool = False
    source: Optional[str] = None
    match: Optional[Match] = None


class ProxyRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    target_url: str

    @classmethod
    def parse(cls, raw: Optional[str]) -> "ProxyRequest":
        """Validate a proxy target before any network call is made."""
        if raw is None or raw.strip() in ("", "undefined"):
            raise MissingParameter("Missing url")
        url = normalize_url(raw)
        try:
            parsed = urlparse(url or "")
        except ValueError as e:
            raise InvalidProxyTarget("Bad URL") from e
        if parsed.scheme.lower() not in ("http", "https") or not parsed.netloc:
            raise InvalidProxyTarget("Bad URL")
        return cls(target_url=url)


class ShortVideoResponse(BaseModel):
    name: str
    avatar: Optional[str] = None
    blocked: bool
    source: Optional[str] = None
    match: Optional[Match] = None


class PaymentResponse(BaseModel):
    name: str
    avatar: Optional[str] = None
