"""Configuration module for the NSE client.

This module centralizes the reading of environment variables and provides a
`Settings` object that other modules can import.  It uses Pydantic's
`BaseSettings` to automatically read values from a `.env` file when present.

NSE rejects requests that do not look like they come from a browser, so the
identifying headers live here alongside the hosts and timeouts.
"""

from functools import lru_cache
from typing import Dict

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/80.0.3987.149 Safari/537.36"
)
DEFAULT_REFERER = "https://www.nseindia.com/get-quotes/equity?symbol=HDFCBANK"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="allow")

    nse_base_url: str = Field(
        default="https://www.nseindia.com",
        validation_alias=AliasChoices("NSE_BASE_URL", "nse_base_url"),
    )
    nse_archive_url: str = Field(
        default="https://nsearchives.nseindia.com",
        validation_alias=AliasChoices("NSE_ARCHIVE_URL", "nse_archive_url"),
    )
    nse_warmup_path: str = Field(
        default="/option-chain",
        validation_alias=AliasChoices("NSE_WARMUP_PATH", "nse_warmup_path"),
    )
    cookie_ttl_seconds: float = Field(
        default=1800.0,
        gt=0,
        validation_alias=AliasChoices("NSE_COOKIE_TTL_SECONDS", "cookie_ttl_seconds"),
    )
    request_timeout_seconds: float | None = Field(
        default=10.0,
        validation_alias=AliasChoices("NSE_REQUEST_TIMEOUT", "REQUEST_TIMEOUT", "request_timeout_seconds"),
    )
    user_agent: str = Field(
        default=DEFAULT_USER_AGENT,
        validation_alias=AliasChoices("NSE_USER_AGENT", "user_agent"),
    )
    referer: str = Field(
        default=DEFAULT_REFERER,
        validation_alias=AliasChoices("NSE_REFERER", "referer"),
    )
    download_dir: str = Field(
        default="./downloads",
        validation_alias=AliasChoices("NSE_DOWNLOAD_DIR", "download_dir"),
    )
    log_level: str = Field(
        default="INFO",
        validation_alias=AliasChoices("LOG_LEVEL", "log_level"),
    )

    @field_validator("nse_base_url", "nse_archive_url", mode="after")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("request_timeout_seconds", mode="before")
    @classmethod
    def _empty_timeout_disables(cls, value: object) -> object:
        if isinstance(value, str) and value.strip().lower() in {"", "none", "off"}:
            return None
        return value

    @property
    def api_base_url(self) -> str:
        return f"{self.nse_base_url}/api"

    @property
    def warmup_url(self) -> str:
        return f"{self.nse_base_url}/{self.nse_warmup_path.lstrip('/')}"


@lru_cache()
def get_settings() -> Settings:
    """Return a cached instance of the application settings.

    Pydantic caches the parsed environment variables so that repeated calls
    throughout the application are inexpensive.
    """

    return Settings()


def default_headers(settings: Settings | None = None) -> Dict[str, str]:
    """Browser-identifying headers NSE requires on every request."""

    settings = settings or get_settings()
    return {
        "User-Agent": settings.user_agent,
        "Accept": "*/*",
        "Accept-Language": "en-US,en;q=0.9",
        "Accept-Encoding": "gzip, deflate",
        "Referer": settings.referer,
    }


INDEX_SYMBOLS: frozenset[str] = frozenset({"nifty", "banknifty", "finnifty", "niftyit"})
