"""Core data structures and the base channel interface.

Every extraction channel inherits from BaseChannel and returns a
ChannelResult of raw candidate dicts. The RecordNormalizer turns those
candidates into ProductRecord instances.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from functools import cached_property
from typing import Any, Dict, List, Optional

import structlog
from bs4 import BeautifulSoup

from catalog_scraper.scrapers.utils.embedded_json import extract_preloaded_state


BASE_FIELDS = (
    "title",
    "brand",
    "price",
    "original_price",
    "currency",
    "url",
    "image",
    "images",
    "colors",
    "sizes",
    "in_stock",
    "product_id",
)

ENRICHMENT_FIELDS = (
    "description",
    "features",
    "attributes",
    "categories",
    "gender",
    "materials",
    "color_name",
)

LIST_FIELDS = frozenset(
    ["images", "colors", "sizes", "features", "attributes", "categories", "gender", "materials"]
)

# Dataset keys differ from attribute names only for the compound fields
_OUTPUT_KEYS = {
    "original_price": "originalPrice",
    "in_stock": "inStock",
    "product_id": "productId",
    "color_name": "colorName",
}


@dataclass
class ProductRecord:
    """Canonical product record pushed to the dataset."""

    title: Optional[str]
    url: Optional[str]
    brand: Optional[str] = None
    price: Optional[Decimal] = None
    original_price: Optional[Decimal] = None
    currency: str = "CAD"
    image: Optional[str] = None
    images: List[str] = field(default_factory=list)
    colors: List[str] = field(default_factory=list)
    sizes: List[str] = field(default_factory=list)
    in_stock: Optional[bool] = True  # None means "unknown"
    product_id: Optional[str] = None
    # Enrichment, populated from detail pages or rich API hits
    description: Optional[str] = None
    features: List[Any] = field(default_factory=list)
    attributes: List[Any] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)
    gender: List[str] = field(default_factory=list)
    materials: List[str] = field(default_factory=list)
    color_name: Optional[str] = None

    def __post_init__(self):
        """Drop an original price that is not strictly above the selling price."""
        if self.original_price is not None:
            if self.price is None or self.original_price <= self.price:
                self.original_price = None

    @property
    def is_complete(self) -> bool:
        """A record can be persisted only with both a url and a title."""
        return bool(self.url) and bool(self.title)

    @property
    def identity_key(self) -> Optional[str]:
        """Dedup key: product id when present, canonical url otherwise."""
        if self.product_id:
            return f"id:{self.product_id}"
        if self.url:
            return f"url:{self.url}"
        return None

    def identity_keys(self) -> List[str]:
        """All keys this record is known by (id and url)."""
        # A hit on either key is a duplicate, so variants sharing one canonical url collapse
        keys = []
        if self.product_id:
            keys.append(f"id:{self.product_id}")
        if self.url:
            keys.append(f"url:{self.url}")
        return keys

    def to_dict(self, include_enrichment: bool = False) -> Dict[str, Any]:
        """Convert to a JSON-ready dataset item.

        Args:
            include_enrichment: Also emit the detail-page enrichment fields

        Returns:
            Dict keyed by the dataset's camelCase field names
        """
        names = BASE_FIELDS + ENRICHMENT_FIELDS if include_enrichment else BASE_FIELDS
        item: Dict[str, Any] = {}
        for name in names:
            value = getattr(self, name)
            if isinstance(value, Decimal):
                value = float(value)
            elif isinstance(value, list):
                value = list(value)
            item[_OUTPUT_KEYS.get(name, name)] = value
        return item


class TaskKind(str, Enum):
    """Kinds of page work the orchestrator knows how to handle."""

    LISTING = "LISTING"
    GRID = "GRID"
    DETAIL = "DETAIL"


@dataclass
class PageTask:
    """A unit of pagination work pulled from the queue."""

    url: str
    kind: TaskKind = TaskKind.LISTING
    page_number: int = 1
    offset: int = 0
    carried_state: Dict[str, Any] = field(default_factory=dict)

    @property
    def strategy(self):
        """Pagination strategy this task's listing root committed to, if any."""
        return self.carried_state.get("strategy")


@dataclass
class ChannelResult:
    """Raw output of one extraction channel for one page."""

    channel: str
    candidates: List[Dict[str, Any]] = field(default_factory=list)
    total: Optional[int] = None
    limit: Optional[int] = None
    offset: Optional[int] = None
    params: Dict[str, Any] = field(default_factory=dict)

    @property
    def has_candidates(self) -> bool:
        return bool(self.candidates)


@dataclass
class ChannelContext:
    """Everything a channel may look at for one page.

    The parsed soup and the embedded state are computed lazily and shared
    between channels so a large page is parsed once.
    """

    url: str
    body: str = ""
    task: Optional[PageTask] = None
    bootstrap: Any = None  # BootstrapConfig, set for LISTING pages
    offset: int = 0
    limit: int = 20
    brand: Optional[str] = None
    session: Any = None

    @cached_property
    def soup(self) -> BeautifulSoup:
        return BeautifulSoup(self.body or "", "html.parser")

    @cached_property
    def preloaded_state(self) -> Optional[Dict[str, Any]]:
        return extract_preloaded_state(self.body or "")

    @property
    def is_detail(self) -> bool:
        return self.task is not None and self.task.kind == TaskKind.DETAIL


class BaseChannel(ABC):
    """Abstract base class for all extraction channels.

    Channels must never raise on malformed input: a parse failure means
    "this channel produced nothing" and is reported as None.
    """

    name: str = ""  # Must be overridden in subclass (e.g., "api", "embedded_state")
    performs_io: bool = False

    def __init__(self):
        self.logger = structlog.get_logger(__name__).bind(channel=self.name)

    @abstractmethod
    async def extract(self, context: ChannelContext) -> Optional[ChannelResult]:
        """Extract raw product candidates from a page.

        Args:
            context: Page body, task and bootstrap data

        Returns:
            ChannelResult, or None when the channel is not productive
        """
        pass


class ParsingChannel(BaseChannel):
    """Base class for channels that only parse the page body (no network I/O)."""

    async def extract(self, context: ChannelContext) -> Optional[ChannelResult]:
        try:
            return self.parse(context)
        except Exception as e:
            self.logger.debug("channel_parse_failed", url=context.url, error=str(e))
            return None

    @abstractmethod
    def parse(self, context: ChannelContext) -> Optional[ChannelResult]:
        pass
