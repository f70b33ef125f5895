"""Raw HTML markup channel: tracking attributes, product tiles and product links."""

from typing import Any, Dict, List, Optional

from catalog_scraper.scrapers.base import ChannelContext, ChannelResult, ParsingChannel
from catalog_scraper.scrapers.utils.embedded_json import parse_json_attribute
from catalog_scraper.scrapers.utils.normalizer import (
    PRODUCT_PATH_MARKER,
    PriceNormalizer,
    normalize_product_url,
)

PRODUCT_LINK_SELECTOR = f'a[href*="{PRODUCT_PATH_MARKER}"]'
PRICE_SELECTOR = '[class*="price"], [data-testid*="price"], [class*="Price"]'
CARD_TAGS = ["article", "li", "div"]


def image_from_tag(img) -> Optional[str]:
    """Image source of an ``<img>``, honoring lazy-loading attributes."""
    if img is None:
        return None
    src = img.get("data-src") or img.get("data-lazy") or img.get("src")
    if src:
        return src
    srcset = img.get("data-srcset") or img.get("srcset")
    if srcset:
        first = srcset.split(",")[0].strip().split(" ")[0]
        return first or None
    return None


def _single(value: Any) -> List[str]:
    return [str(value)] if value not in (None, "") else []


def _first_present(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def map_segment(data: Dict[str, Any], base_url: str) -> Dict[str, Any]:
    """Map a ``data-segment`` tracking payload to a raw candidate."""
    image = data.get("image_url")
    return {
        "title": data.get("name"),
        "brand": data.get("brand"),
        "price": data.get("price"),
        "original_price": data.get("retail_price"),
        "currency": data.get("currency"),
        "url": normalize_product_url(data.get("url"), base_url) if data.get("url") else None,
        "image": image,
        "images": _single(image),
        "colors": _single(data.get("variant")),
        "sizes": _single(data.get("size")),
        "in_stock": True,
        "product_id": data.get("product_id") or data.get("stylenumber") or data.get("sku"),
    }


class _PageCollector:
    """Keeps candidates unique within one page, keyed by url first, then product id."""

    def __init__(self):
        self.candidates: List[Dict[str, Any]] = []
        self.seen = set()

    def push(self, candidate: Optional[Dict[str, Any]]) -> None:
        if not candidate:
            return
        key = candidate.get("url") or candidate.get("product_id")
        if not key or key in self.seen:
            return
        self.seen.add(key)
        self.candidates.append(candidate)


class HtmlTileChannel(ParsingChannel):
    """Lowest-trust channel: scrapes whatever product markup the page carries."""

    name = "html_tiles"

    def __init__(self, base_url: Optional[str] = None):
        super().__init__()
        self.base_url = base_url

    def parse(self, context: ChannelContext) -> Optional[ChannelResult]:
        soup = context.soup
        collector = _PageCollector()

        self._scan_segments(soup, collector)
        self._scan_tiles(soup, collector)
        self._scan_links(soup, collector)

        if not collector.candidates:
            return None
        self.logger.debug("html_candidates", url=context.url, count=len(collector.candidates))
        return ChannelResult(channel=self.name, candidates=collector.candidates)

    def _scan_segments(self, soup, collector: _PageCollector) -> None:
        for el in soup.select("[data-segment]"):
            data = parse_json_attribute(el.get("data-segment"))
            if isinstance(data, dict):
                collector.push(map_segment(data, self.base_url))

    def _scan_tiles(self, soup, collector: _PageCollector) -> None:
        for tile in soup.select(".product-tile"):
            segment_el = tile.select_one("[data-segment]")
            segment = parse_json_attribute(segment_el.get("data-segment")) if segment_el else None
            segment = segment if isinstance(segment, dict) else {}

            gtm = parse_json_attribute(tile.get("data-gtm"))
            ecommerce = gtm.get("ecommerce") if isinstance(gtm, dict) else None
            ecommerce = ecommerce if isinstance(ecommerce, dict) else {}
            impression = ecommerce.get("impressions")
            if isinstance(impression, list):
                impression = impression[0] if impression else None
            impression = impression if isinstance(impression, dict) else {}

            link = tile.select_one(PRODUCT_LINK_SELECTOR)
            img = tile.find("img")

            href = segment.get("url") or (link.get("href") if link else None)
            url = normalize_product_url(href, self.base_url)
            if not url:
                continue

            image = segment.get("image_url") or image_from_tag(img)
            title = (
                segment.get("name")
                or impression.get("name")
                or impression.get("dimension1")
                or (link.get("aria-label") if link else None)
                or (img.get("alt") if img else None)
                or (link.get_text(" ", strip=True) if link else None)
            )

            collector.push({
                "title": str(title).strip() if title else None,
                "brand": segment.get("brand") or impression.get("brand") or impression.get("dimension6"),
                "price": _first_present(
                    segment.get("price"),
                    impression.get("price"),
                    impression.get("dimension12"),
                    impression.get("dimension7"),
                ),
                "original_price": _first_present(segment.get("retail_price"), impression.get("dimension11")),
                "currency": segment.get("currency") or ecommerce.get("currencyCode"),
                "url": url,
                "image": image,
                "images": _single(image),
                "colors": _single(segment.get("variant") or impression.get("variant")),
                "sizes": _single(segment.get("size")),
                "in_stock": True,
                "product_id": segment.get("product_id") or impression.get("id") or impression.get("dimension9"),
            })

    def _scan_links(self, soup, collector: _PageCollector) -> None:
        for anchor in soup.select(PRODUCT_LINK_SELECTOR):
            url = normalize_product_url(anchor.get("href"), self.base_url)
            if not url or url in collector.seen:
                continue

            img = anchor.find("img")
            title = anchor.get("aria-label") or (img.get("alt") if img else None)

            price = None
            card = anchor.find_parent(CARD_TAGS)
            if card is not None:
                price_el = card.select_one(PRICE_SELECTOR)
                if price_el is not None:
                    price = PriceNormalizer.extract_price_from_text(price_el.get_text(" ", strip=True))

            image = image_from_tag(img)
            collector.push({
                "title": title.strip() if title else None,
                "price": price,
                "url": url,
                "image": image,
                "images": _single(image),
                "in_stock": True,
            })
