import os
from typing import List
from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Identity(BaseModel):
    """Disguised browser identity presented to the upstream platform."""

    model_config = ConfigDict(frozen=True)

    user_agent: str
    accept_language: str = "en-US,en;q=0.9"
    locale: str = "en-US"
    page_accept: str = "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8"
    image_accept: str = "image/avif,image/webp,image/apng,image/*,*/*;q=0.8"
    referer: str = "https://www.tiktok.com/"
    origin: str = "https://www.tiktok.com"

    def page_headers(self) -> dict[str, str]:
        return {
            "User-Agent": self.user_agent,
            "Accept-Language": self.accept_language,
            "Accept": self.page_accept,
        }

    def image_headers(self) -> dict[str, str]:
        # referer/origin are what hotlink checks look at
        return {
            "User-Agent": self.user_agent,
            "Accept-Language": self.accept_language,
            "Accept": self.image_accept,
            "Referer": self.referer,
            "Origin": self.origin,
        }


class Settings(BaseSettings):
    # Pydantic v2 settings config (do NOT also declare inner Config)
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra='ignore',  # ignore unknown keys in .env to prevent startup crashes
    )

    # api server bind
    api_host: str = Field(default_factory=lambda: os.getenv("API_HOST", "0.0.0.0"))
    api_port: int = Field(default_factory=lambda: int(os.getenv("PORT") or os.getenv("API_PORT") or "3000"))
    log_level: str = Field(default="INFO")

    # prefix for proxy links; empty => relative "/proxy-image?url=..."
    public_base_url: str = Field(default="")
    # optional first-party page directory mounted at "/"
    static_dir: str = Field(default="")

    # resolution modes
    short_video_mode: str = Field(default="http")  # http or browser
    payment_mode: str = Field(default="static")  # static or scrape

    # disguised identity
    user_agent: str = Field(
        default=(
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
            "AppleWebKit/537.36 (KHTML, like Gecko) "
            "Chrome/121.0.0.0 Safari/537.36"
        )
    )
    accept_language: str = Field(default="en-US,en;q=0.9")
    locale: str = Field(default="en-US")
    page_accept: str = Field(
        default="text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8"
    )
    image_accept: str = Field(default="image/avif,image/webp,image/apng,image/*,*/*;q=0.8")
    upstream_referer: str = Field(default="https://www.tiktok.com/")
    upstream_origin: str = Field(default="https://www.tiktok.com")

    # outbound bounds
    fetch_timeout_s: float = Field(default=15.0)
    proxy_timeout_s: float = Field(default=15.0)
    proxy_max_redirects: int = Field(default=5)
    proxy_cache_max_age: int = Field(default=86400)

    # browser tuning
    headless: bool = Field(default=True)
    chromium_args: List[str] = Field(
        default_factory=lambda: [
            "--no-sandbox",
            "--disable-setuid-sandbox",
            "--disable-dev-shm-usage",
            "--disable-gpu",
        ]
    )
    browser_nav_timeout_ms: int = Field(default=45000)
    browser_selector_timeout_ms: int = Field(default=5000)

    def identity(self) -> Identity:
        return Identity(
            user_agent=self.user_agent,
            accept_language=self.accept_language,
            locale=self.locale,
            page_accept=self.page_accept,
            image_accept=self.image_accept,
            referer=self.upstream_referer,
            origin=self.upstream_origin,
        )


settings = Settings()
