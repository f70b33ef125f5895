"""Application configuration via Pydantic Settings."""

from typing import List
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global crawler settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Storefront
    BASE_URL: str = "https://www.brownsshoes.com"
    DEFAULT_CURRENCY: str = "CAD"
    DEFAULT_CATEGORY: str = "women"

    @model_validator(mode="after")
    def strip_base_url(self) -> "Settings":
        """Relative URLs are joined against BASE_URL, so keep it without a trailing slash."""
        self.BASE_URL = self.BASE_URL.rstrip("/")
        return self

    # Crawl ceilings
    DEFAULT_MAX_ITEMS: int = 20
    DEFAULT_MAX_PAGES: int = 50
    DEFAULT_PAGE_SIZE: int = 20

    # Worker pool
    MAX_CONCURRENCY: int = 10

    # Network
    REQUEST_TIMEOUT_SECONDS: float = 30.0
    MAX_REQUEST_RETRIES: int = 2
    RETRY_WAIT_MIN_SECONDS: float = 1.0
    RETRY_WAIT_MAX_SECONDS: float = 10.0
    API_PAGE_DELAY_SECONDS: float = 0.5

    # Sessions
    SESSION_POOL_SIZE: int = 50
    SESSION_MAX_USAGE: int = 50

    # Proxy
    PROXY_LIST: str = ""  # Comma-separated list of proxy URLs

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    def get_proxy_list(self) -> List[str]:
        """Parse PROXY_LIST into a list of proxy URLs.

        Returns:
            List of proxy URL strings, empty if PROXY_LIST is not set
        """
        if not self.PROXY_LIST:
            return []
        return [p.strip() for p in self.PROXY_LIST.split(",") if p.strip()]


settings = Settings()
