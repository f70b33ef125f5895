"""Embedded page-state channel.

Reads the ``__PRELOADED_STATE__`` object the storefront renders into every
page. On listing pages it holds the cached product-search result, on
product pages the cached product detail. Both share the Commerce Cloud
product shape, so the hit/detail mappers live here and are reused by the
search API channel.
"""

from typing import Any, Dict, Iterable, List, Optional

from catalog_scraper.scrapers.base import ChannelContext, ChannelResult, ParsingChannel
from catalog_scraper.scrapers.bootstrap import (
    extract_product_detail_from_state,
    extract_product_search_from_state,
)
from catalog_scraper.scrapers.utils.normalizer import (
    PriceNormalizer,
    to_boolean,
    uniq_strings,
)

COLOR_ATTRIBUTE_IDS = ("color", "colour")
SIZE_ATTRIBUTE_IDS = ("size",)


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _first(*values: Any) -> Any:
    """First value that is not None (``??`` chaining)."""
    for value in values:
        if value is not None:
            return value
    return None


def map_variation_values(variation_attributes: Any, ids: Iterable[str]) -> List[str]:
    """Collect the display values of the variation attributes with the given ids."""
    wanted = {i.lower() for i in ids}
    values = []
    for attr in _as_list(variation_attributes):
        if not isinstance(attr, dict) or not attr.get("id"):
            continue
        if str(attr["id"]).lower() not in wanted:
            continue
        for entry in _as_list(attr.get("values")):
            if not isinstance(entry, dict):
                continue
            name = entry.get("name")
            if isinstance(name, str):
                values.append(name)
            elif isinstance(name, dict) and name.get("en"):
                values.append(name["en"])
            if isinstance(entry.get("value"), str):
                values.append(entry["value"])
    return uniq_strings(values)


def _image_links(product: Dict[str, Any]) -> List[str]:
    links = []
    for group in _as_list(product.get("imageGroups")):
        for img in _as_list(_as_dict(group).get("images")):
            img = _as_dict(img)
            link = img.get("link") or img.get("src")
            if link:
                links.append(link)
    return uniq_strings(links)


def _brand_name(brand: Any) -> Optional[str]:
    if isinstance(brand, dict):
        return brand.get("name")
    return brand or None


def _prices(product: Dict[str, Any]):
    price = PriceNormalizer.to_decimal(
        _first(
            product.get("price"),
            product.get("pricePerUnit"),
            product.get("priceMin"),
            product.get("pricePerUnitMin"),
        )
    )
    price_max = PriceNormalizer.to_decimal(
        _first(product.get("priceMax"), product.get("pricePerUnitMax"))
    )
    original_price = price_max if price_max and price and price_max > price else None
    return price, original_price


def map_search_hit(hit: Any) -> Optional[Dict[str, Any]]:
    """Map one product-search hit to a raw candidate."""
    if not isinstance(hit, dict):
        return None

    variation_attributes = hit.get("c_variationAttributes") or hit.get("variationAttributes") or []
    represented = _as_dict(hit.get("representedProduct"))
    image = _as_dict(hit.get("image"))
    images = _image_links(hit)
    price, original_price = _prices(hit)

    in_stock = hit.get("orderable")
    if in_stock is None and represented.get("c_qtyInStock") is not None:
        in_stock = to_boolean(represented.get("c_qtyInStock"))

    return {
        "title": hit.get("productName") or hit.get("name"),
        "brand": hit.get("c_brand") or _brand_name(hit.get("brand")),
        "price": price,
        "original_price": original_price,
        "currency": hit.get("currency"),
        "url": hit.get("c_productUrl") or hit.get("productUrl") or hit.get("url") or hit.get("link"),
        "image": image.get("link") or image.get("src") or (images[0] if images else None),
        "images": images,
        "colors": map_variation_values(variation_attributes, COLOR_ATTRIBUTE_IDS),
        "sizes": map_variation_values(variation_attributes, SIZE_ATTRIBUTE_IDS),
        "in_stock": in_stock,
        "product_id": hit.get("productId") or represented.get("id"),
        "description": represented.get("c_productDescription"),
        "features": _as_list(represented.get("c_productFeatures")),
        "attributes": _as_list(represented.get("c_productAttributesDisplay")),
        "categories": uniq_strings(
            _as_list(hit.get("c_productCategories"))
            + _as_list(represented.get("c_primaryCategories"))
        ),
        "gender": _as_list(represented.get("c_gender")),
        "materials": _as_list(represented.get("c_material")),
        "color_name": represented.get("c_colorname"),
    }


def map_detail_product(product: Any) -> Optional[Dict[str, Any]]:
    """Map a cached product-detail payload to a raw candidate."""
    if not isinstance(product, dict):
        return None

    variation_attributes = product.get("c_variationAttributes") or product.get("variationAttributes") or []
    represented = _as_dict(product.get("representedProduct") or product.get("master"))
    image = _as_dict(product.get("image"))
    images = _image_links(product)
    price, original_price = _prices(product)

    in_stock = _first(product.get("orderable"), _as_dict(product.get("inventory")).get("orderable"))
    if in_stock is None and isinstance(product.get("c_qtyInStock"), (int, float)):
        in_stock = product["c_qtyInStock"] > 0

    def own_or_represented(name: str) -> List[Any]:
        if isinstance(product.get(name), list):
            return product[name]
        return _as_list(represented.get(name))

    return {
        "title": product.get("name") or product.get("productName"),
        "brand": _brand_name(product.get("brand")),
        "price": price,
        "original_price": original_price,
        "currency": product.get("currency"),
        "url": product.get("slugUrl") or product.get("url") or product.get("c_productUrl"),
        "image": images[0] if images else (image.get("link") or image.get("src")),
        "images": images,
        "colors": map_variation_values(variation_attributes, COLOR_ATTRIBUTE_IDS),
        "sizes": map_variation_values(variation_attributes, SIZE_ATTRIBUTE_IDS),
        "in_stock": in_stock,
        "product_id": product.get("id") or product.get("productId") or represented.get("id"),
        "description": (
            product.get("c_productDescription")
            or product.get("longDescription")
            or product.get("shortDescription")
            or represented.get("c_productDescription")
        ),
        "features": own_or_represented("c_productFeatures"),
        "attributes": own_or_represented("c_productAttributesDisplay"),
        "categories": uniq_strings(
            _as_list(product.get("c_productCategories"))
            + _as_list(product.get("c_primaryCategories"))
            + _as_list(represented.get("c_primaryCategories"))
        ),
        "gender": own_or_represented("c_gender"),
        "materials": own_or_represented("c_material"),
        "color_name": product.get("c_colorname") or represented.get("c_colorname"),
    }


class EmbeddedStateChannel(ParsingChannel):
    """Reads the server-rendered search result (or product detail) from page state."""

    name = "embedded_state"

    def parse(self, context: ChannelContext) -> Optional[ChannelResult]:
        state = context.preloaded_state
        if not state:
            return None

        if context.is_detail:
            detail = map_detail_product(extract_product_detail_from_state(state))
            if not detail:
                return None
            return ChannelResult(channel=self.name, candidates=[detail])

        search = extract_product_search_from_state(state)
        if search is None:
            return None

        candidates = [c for c in (map_search_hit(hit) for hit in search.hits) if c]
        self.logger.debug("embedded_state_hits", url=context.url, count=len(candidates))
        return ChannelResult(
            channel=self.name,
            candidates=candidates,
            total=search.total,
            limit=search.limit,
            offset=search.offset,
            params=search.params,
        )
