"""Pydantic schema for crawl input.

Accepts the camelCase keys of the storefront actor input
(``startUrls``, ``maxItems``, ``scrapeDetails``...) as well as the
snake_case field names, so the same model serves JSON input files and
CLI flags.
"""

from decimal import Decimal
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from catalog_scraper.config import settings
from catalog_scraper.scrapers.channels import CHANNEL_PRIORITY


class CrawlInput(BaseModel):
    """Validated crawl parameters."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    start_urls: List[str] = Field(
        default_factory=list,
        alias="startUrls",
        description="Listing URLs to crawl. Strings or {'url': ...} objects.",
    )
    category: str = Field(
        default_factory=lambda: settings.DEFAULT_CATEGORY,
        description="Category path used to build the seed URL when no start URLs are given",
        examples=["women", "men/shoes"],
    )
    brand: Optional[str] = None
    color: Optional[str] = None
    size: Optional[str] = None
    min_price: Optional[Decimal] = Field(None, alias="minPrice", ge=0)
    max_price: Optional[Decimal] = Field(None, alias="maxPrice", ge=0)
    max_items: int = Field(default_factory=lambda: settings.DEFAULT_MAX_ITEMS, alias="maxItems")
    max_pages: int = Field(default_factory=lambda: settings.DEFAULT_MAX_PAGES, alias="maxPages")
    scrape_details: bool = Field(False, alias="scrapeDetails")
    max_concurrency: int = Field(
        default_factory=lambda: settings.MAX_CONCURRENCY,
        alias="maxConcurrency",
    )
    proxy_urls: List[str] = Field(default_factory=list, alias="proxyUrls")
    channels: Optional[List[str]] = Field(
        None,
        description="Extraction channels to enable, in any order. All when omitted.",
    )

    @field_validator("start_urls", mode="before")
    @classmethod
    def coerce_start_urls(cls, v: Any) -> List[str]:
        """Accept a single string, a list of strings or a list of {'url': ...} objects."""
        if v is None:
            return []
        if isinstance(v, (str, dict)):
            v = [v]
        urls = []
        for entry in v:
            if isinstance(entry, dict):
                entry = entry.get("url")
            if isinstance(entry, str) and entry.strip():
                urls.append(entry.strip())
        return urls

    @field_validator("brand", "color", "size", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Optional[str]:
        if isinstance(v, str):
            v = v.strip()
        return v or None

    @field_validator("category", mode="before")
    @classmethod
    def default_category(cls, v: Any) -> str:
        if not isinstance(v, str) or not v.strip():
            return settings.DEFAULT_CATEGORY
        return v.strip().strip("/")

    @field_validator("max_items", mode="before")
    @classmethod
    def default_max_items(cls, v: Any) -> int:
        return _positive_or(v, settings.DEFAULT_MAX_ITEMS)

    @field_validator("max_pages", mode="before")
    @classmethod
    def default_max_pages(cls, v: Any) -> int:
        return _positive_or(v, settings.DEFAULT_MAX_PAGES)

    @field_validator("max_concurrency", mode="before")
    @classmethod
    def default_max_concurrency(cls, v: Any) -> int:
        return _positive_or(v, settings.MAX_CONCURRENCY)

    @field_validator("channels")
    @classmethod
    def validate_channels(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return v
        unknown = [name for name in v if name not in CHANNEL_PRIORITY]
        if unknown:
            raise ValueError(
                f"unknown channel(s) {', '.join(unknown)}; must be one of {', '.join(CHANNEL_PRIORITY)}"
            )
        return v

    @model_validator(mode="after")
    def price_bounds_ordered(self) -> "CrawlInput":
        if (
            self.min_price is not None
            and self.max_price is not None
            and self.min_price > self.max_price
        ):
            raise ValueError("minPrice must not exceed maxPrice")
        return self


def _positive_or(value: Any, default: int) -> int:
    """Non-positive or unparseable ceilings fall back to the default."""
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default
