"""Data normalization utilities for prices, stock flags and URLs."""

import re
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, List, Optional
from urllib.parse import parse_qs, urlencode, urljoin, urlparse, urlunparse

import structlog

from catalog_scraper.config import settings

logger = structlog.get_logger()


# Common tracking parameters to remove from non-product URLs
TRACKING_PARAMS = [
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_content",
    "utm_term",
    "ref",
    "source",
    "fbclid",
    "gclid",
    "mc_cid",
    "mc_eid",
]

# Paths that carry the product identifier; their query strings are noise
PRODUCT_PATH_MARKER = "/product/"

_TRUTHY_STRINGS = frozenset(["true", "1", "yes", "y"])
_FALSY_STRINGS = frozenset(["false", "0", "no", "n"])


class PriceNormalizer:
    """Price parsing utilities.

    Handles price strings from the search API, tracking payloads and
    visible tile text.
    """

    @staticmethod
    def clean_price_string(raw: str) -> Optional[Decimal]:
        """Parse a price string and extract numeric value.

        Handles various formats:
        - "$1,234.56" -> 1234.56
        - "CA$ 89.99" -> 89.99
        - "120" -> 120

        Args:
            raw: Raw price string

        Returns:
            Decimal price value, or None if parsing fails
        """
        if not raw:
            return None

        # Remove everything except digits and the decimal point
        cleaned = re.sub(r"[^\d.]", "", raw)

        if not cleaned:
            return None

        try:
            return Decimal(cleaned)
        except InvalidOperation:
            return None

    @classmethod
    def to_decimal(cls, value: Any) -> Optional[Decimal]:
        """Coerce a numeric-looking value of any shape to Decimal.

        Args:
            value: int, float, Decimal or string

        Returns:
            Decimal value, or None for empty or unparseable input
        """
        if value is None or value == "" or isinstance(value, bool):
            return None
        if isinstance(value, Decimal):
            return value
        if isinstance(value, (int, float)):
            try:
                return Decimal(str(value))
            except InvalidOperation:
                return None
        return cls.clean_price_string(str(value))

    @staticmethod
    def extract_price_from_text(text: str) -> Optional[Decimal]:
        """Extract first price-like number from text.

        Useful for extracting prices from HTML text nodes that
        contain additional text.

        Args:
            text: Text containing price information

        Returns:
            Extracted price as Decimal, or None if not found
        """
        if not text:
            return None

        # Look for patterns like "12,345" or "12345" or "12,345.67"
        pattern = r"\d[\d,]*\.?\d*"
        matches = re.findall(pattern, text)

        for match in matches:
            price = PriceNormalizer.clean_price_string(match)
            if price and price > 0:
                return price

        return None


def to_boolean(value: Any, default: Optional[bool] = None) -> Optional[bool]:
    """Coerce a heterogeneous stock/flag signal to a boolean.

    Args:
        value: bool, number (1 or a stock quantity) or string
        default: Returned when the value carries no signal

    Returns:
        True/False, or ``default`` when the value is missing or unrecognized
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float, Decimal)):
        return value > 0
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in _TRUTHY_STRINGS:
            return True
        if normalized in _FALSY_STRINGS:
            return False
    return default


def uniq_strings(values: Optional[Iterable[Any]]) -> List[str]:
    """De-duplicate truthy values as strings, keeping first-seen order."""
    seen = set()
    result = []
    for value in values or []:
        if value is None or value == "":
            continue
        text = str(value).strip()
        if text and text not in seen:
            seen.add(text)
            result.append(text)
    return result


def to_absolute(href: Optional[str], base_url: Optional[str] = None) -> Optional[str]:
    """Resolve a possibly relative or protocol-relative href against the site origin."""
    if not href or not isinstance(href, str):
        return None
    href = href.strip()
    if not href or href.startswith(("javascript:", "mailto:", "data:")):
        return None
    try:
        absolute = urljoin((base_url or settings.BASE_URL) + "/", href)
    except ValueError:
        return None
    if not absolute.startswith(("http://", "https://")):
        return None
    return absolute


def normalize_url(url: str) -> str:
    """Normalize a URL by removing tracking parameters.

    Args:
        url: URL to normalize

    Returns:
        Normalized URL
    """
    if not url:
        return url

    parsed = urlparse(url)
    query_params = parse_qs(parsed.query, keep_blank_values=True)

    # Remove tracking parameters
    filtered_params = {
        k: v for k, v in query_params.items() if k not in TRACKING_PARAMS
    }

    # Rebuild query string
    new_query = urlencode(filtered_params, doseq=True)

    # Rebuild URL
    return urlunparse(
        (parsed.scheme, parsed.netloc, parsed.path, parsed.params, new_query, "")
    )


def normalize_product_url(href: Optional[str], base_url: Optional[str] = None) -> Optional[str]:
    """Canonicalize a product URL.

    Product-detail paths drop their query string and fragment entirely, so
    variant and tracking parameters never split one product into several.
    Other URLs only lose known tracking parameters.

    Args:
        href: Absolute or relative URL
        base_url: Origin to resolve relative URLs against

    Returns:
        Canonical absolute URL, or None if it cannot be resolved
    """
    absolute = to_absolute(href, base_url)
    if not absolute:
        return None
    parsed = urlparse(absolute)
    if PRODUCT_PATH_MARKER in parsed.path:
        return urlunparse((parsed.scheme, parsed.netloc, parsed.path, "", "", ""))
    return normalize_url(absolute)
