"""Record normalizer: raw channel candidates to canonical ProductRecords."""

from dataclasses import asdict
from typing import Any, Dict, List, Optional

import structlog

from catalog_scraper.config import settings
from catalog_scraper.scrapers.base import LIST_FIELDS, ProductRecord
from catalog_scraper.scrapers.utils.normalizer import (
    PriceNormalizer,
    normalize_product_url,
    to_absolute,
    to_boolean,
    uniq_strings,
)

logger = structlog.get_logger(__name__)

_SCALAR_FIELDS = (
    "title",
    "brand",
    "price",
    "original_price",
    "currency",
    "image",
    "in_stock",
    "product_id",
    "description",
    "color_name",
)

# Lists of structured values (feature bullets, attribute rows) are kept as-is
_STRUCTURED_LIST_FIELDS = frozenset(["features", "attributes"])


class RecordNormalizer:
    """Merges raw candidates (and optionally a known base record) into ProductRecords.

    Merge policy when enriching a listing record with detail-page data:
    scalar fields from the detail candidate win only when they are not
    None; a non-empty detail list replaces the listing list outright; the
    base record's canonical url is always kept.
    """

    def __init__(self, base_url: Optional[str] = None, default_currency: Optional[str] = None):
        self.base_url = base_url or settings.BASE_URL
        self.default_currency = default_currency or settings.DEFAULT_CURRENCY

    def normalize(
        self,
        candidate: Dict[str, Any],
        base: Optional[ProductRecord] = None,
    ) -> Optional[ProductRecord]:
        """Build a ProductRecord from a raw candidate.

        Args:
            candidate: Raw channel candidate (snake_case keys)
            base: Previously known record to enrich, for detail pages

        Returns:
            ProductRecord, or None when the candidate is not a dict
        """
        if not isinstance(candidate, dict):
            return None

        merged: Dict[str, Any] = asdict(base) if base is not None else {}

        for name in _SCALAR_FIELDS:
            value = candidate.get(name)
            if isinstance(value, str):
                value = value.strip() or None
            if value is not None:
                merged[name] = value
            else:
                merged.setdefault(name, None)

        for name in LIST_FIELDS:
            values = candidate.get(name)
            if isinstance(values, list) and values:
                merged[name] = values
            else:
                merged.setdefault(name, [])

        if base is not None and base.url:
            merged["url"] = base.url
        else:
            merged["url"] = candidate.get("url")

        return self._coerce(merged)

    def normalize_many(self, candidates: List[Dict[str, Any]]) -> List[ProductRecord]:
        records = []
        for candidate in candidates:
            record = self.normalize(candidate)
            if record is not None:
                records.append(record)
        return records

    def _coerce(self, data: Dict[str, Any]) -> ProductRecord:
        price = PriceNormalizer.to_decimal(data.get("price"))
        original_price = PriceNormalizer.to_decimal(data.get("original_price"))
        if original_price is not None and (price is None or original_price <= price):
            original_price = None

        images = [
            link
            for link in (to_absolute(img, self.base_url) for img in uniq_strings(data.get("images")))
            if link
        ]
        image = to_absolute(data.get("image"), self.base_url) if data.get("image") else None
        if not image and images:
            image = images[0]

        product_id = data.get("product_id")
        title = data.get("title")
        brand = data.get("brand")

        lists = {}
        for name in LIST_FIELDS:
            if name == "images":
                continue
            values = data.get(name) or []
            if name in _STRUCTURED_LIST_FIELDS:
                lists[name] = [v for v in values if v not in (None, "")]
            else:
                lists[name] = uniq_strings(values)

        return ProductRecord(
            title=str(title).strip() if title else None,
            url=normalize_product_url(data.get("url"), self.base_url),
            brand=str(brand).strip() if brand else None,
            price=price,
            original_price=original_price,
            currency=data.get("currency") or self.default_currency,
            image=image,
            images=uniq_strings(images),
            in_stock=to_boolean(data.get("in_stock"), default=True),
            product_id=str(product_id) if product_id else None,
            description=data.get("description"),
            color_name=data.get("color_name"),
            **lists,
        )
