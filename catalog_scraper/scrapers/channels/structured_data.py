"""JSON-LD structured-data channel."""

import json
from typing import Any, Dict, List, Optional

from catalog_scraper.scrapers.base import ChannelContext, ChannelResult, ParsingChannel


def _types(node: Dict[str, Any]) -> List[str]:
    declared = node.get("@type")
    if isinstance(declared, list):
        return [str(t) for t in declared]
    return [str(declared)] if declared else []


def collect_product_nodes(data: Any) -> List[Dict[str, Any]]:
    """Find Product nodes at the top level, in ``@graph`` or inside an ItemList."""
    nodes = data if isinstance(data, list) else [data]
    products = []
    for node in nodes:
        if not isinstance(node, dict):
            continue
        if isinstance(node.get("@graph"), list):
            products.extend(collect_product_nodes(node["@graph"]))
        types = _types(node)
        if "Product" in types:
            products.append(node)
        if "ItemList" in types and isinstance(node.get("itemListElement"), list):
            for element in node["itemListElement"]:
                if not isinstance(element, dict):
                    continue
                item = element.get("item")
                if isinstance(item, dict) and "Product" in _types(item):
                    products.append(item)
    return products


def _availability(offers: Dict[str, Any]) -> Optional[bool]:
    availability = offers.get("availability")
    if not availability:
        return None
    return "instock" in str(availability).lower()


def _images(image: Any) -> List[str]:
    if isinstance(image, str):
        return [image]
    if isinstance(image, dict):
        return [image["url"]] if image.get("url") else []
    if isinstance(image, list):
        links = []
        for entry in image:
            links.extend(_images(entry))
        return links
    return []


def map_json_ld_product(product: Dict[str, Any]) -> Dict[str, Any]:
    """Map a schema.org Product node to a raw candidate."""
    offers = product.get("offers")
    if isinstance(offers, list):
        offers = offers[0] if offers else {}
    offers = offers if isinstance(offers, dict) else {}
    brand = product.get("brand")
    images = _images(product.get("image"))

    return {
        "title": product.get("name"),
        "brand": brand.get("name") if isinstance(brand, dict) else brand,
        "price": offers.get("price") if offers.get("price") is not None else offers.get("lowPrice"),
        "currency": offers.get("priceCurrency"),
        "url": product.get("url") or offers.get("url"),
        "image": images[0] if images else None,
        "images": images,
        "in_stock": _availability(offers),
        "product_id": product.get("sku") or product.get("productID"),
        "description": product.get("description"),
    }


class StructuredDataChannel(ParsingChannel):
    """Reads every ``application/ld+json`` block on the page."""

    name = "structured_data"

    def parse(self, context: ChannelContext) -> Optional[ChannelResult]:
        products = []
        for script in context.soup.select('script[type="application/ld+json"]'):
            raw = script.string or script.get_text() or ""
            raw = raw.strip()
            if not raw:
                continue
            try:
                data = json.loads(raw)
            except (ValueError, RecursionError):
                self.logger.debug("json_ld_invalid", url=context.url)
                continue
            products.extend(collect_product_nodes(data))

        if not products:
            return None
        return ChannelResult(
            channel=self.name,
            candidates=[map_json_ld_product(p) for p in products],
        )
