"""Bootstrap configuration adapter.

Listing pages embed the runtime parameters the storefront's own JavaScript
uses to call the product-search API (short code, client id, organization
id, site id) plus the server-side search result. This module is the only
place that string-matches them out of raw markup.

Contract::

    extract_bootstrap_config(body) -> BootstrapConfig(
        short_code, client_id, organization_id, site_id, search_state)
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from catalog_scraper.scrapers.utils.embedded_json import extract_preloaded_state

_CONFIG_PATTERNS = {
    "short_code": re.compile(r'shortCode"?:"([^"]+)"'),
    "client_id": re.compile(r'clientId"?:"([^"]+)"'),
    "organization_id": re.compile(r'organizationId"?:"([^"]+)"'),
    "site_id": re.compile(r'siteId"?:"([^"]+)"'),
}

PRODUCT_SEARCH_KEY = "product-search"
PRODUCT_DETAIL_KEY = "/products/"


@dataclass
class ProductSearchState:
    """Server-rendered product-search result found in the page state."""

    hits: List[Dict[str, Any]] = field(default_factory=list)
    total: Optional[int] = None
    limit: Optional[int] = None
    offset: int = 0
    params: Dict[str, Any] = field(default_factory=dict)


@dataclass
class BootstrapConfig:
    """Site-issued runtime parameters harvested from a listing page."""

    short_code: Optional[str] = None
    client_id: Optional[str] = None
    organization_id: Optional[str] = None
    site_id: Optional[str] = None
    search_state: Optional[ProductSearchState] = None

    @property
    def search_params(self) -> Dict[str, Any]:
        return self.search_state.params if self.search_state else {}

    @property
    def effective_site_id(self) -> Optional[str]:
        """Site id from the page config, falling back to the search query params."""
        return self.site_id or self.search_params.get("siteId")

    @property
    def has_api_credentials(self) -> bool:
        return bool(
            self.short_code
            and self.client_id
            and self.organization_id
            and self.effective_site_id
        )


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def _react_queries(state: Any) -> List[Dict[str, Any]]:
    if not isinstance(state, dict):
        return []
    react_query = state.get("__reactQuery")
    if not isinstance(react_query, dict):
        return []
    queries = react_query.get("queries")
    if not isinstance(queries, list):
        return []
    return [q for q in queries if isinstance(q, dict)]


def _key_mentions(query: Dict[str, Any], needle: str) -> bool:
    key = query.get("queryKey")
    if not isinstance(key, list):
        return False
    return any(needle in str(part) for part in key)


def extract_product_search_from_state(state: Any) -> Optional[ProductSearchState]:
    """Return the first cached product-search query result in the page state.

    Args:
        state: Parsed ``__PRELOADED_STATE__`` object

    Returns:
        ProductSearchState with hits of every cached page, or None
    """
    for query in _react_queries(state):
        if not _key_mentions(query, PRODUCT_SEARCH_KEY):
            continue

        key = query["queryKey"]
        params = key[-1] if key and isinstance(key[-1], dict) else {}
        query_state = query.get("state")
        data = query_state.get("data") if isinstance(query_state, dict) else None
        pages = data.get("pages") if isinstance(data, dict) else None
        pages = pages if isinstance(pages, list) else []

        hits: List[Dict[str, Any]] = []
        for page in pages:
            if isinstance(page, dict) and isinstance(page.get("hits"), list):
                hits.extend(hit for hit in page["hits"] if isinstance(hit, dict))

        meta = pages[0] if pages and isinstance(pages[0], dict) else {}
        return ProductSearchState(
            hits=hits,
            total=_as_int(meta.get("total")),
            limit=_as_int(meta.get("limit")),
            offset=_as_int(meta.get("offset")) or 0,
            params=params,
        )
    return None


def extract_product_detail_from_state(state: Any) -> Optional[Dict[str, Any]]:
    """Return the cached product-detail payload from a product page's state."""
    for query in _react_queries(state):
        if not _key_mentions(query, PRODUCT_DETAIL_KEY):
            continue
        query_state = query.get("state")
        data = query_state.get("data") if isinstance(query_state, dict) else None
        if isinstance(data, dict):
            return data
    return None


def extract_bootstrap_config(body: str, state: Optional[dict] = None) -> BootstrapConfig:
    """Harvest API bootstrap parameters and the search state from a listing page.

    Args:
        body: Raw page markup
        state: Already-parsed preloaded state, to avoid scanning the body twice

    Returns:
        BootstrapConfig; missing values are None
    """
    body = body or ""
    values = {}
    for name, pattern in _CONFIG_PATTERNS.items():
        match = pattern.search(body)
        values[name] = match.group(1) if match else None

    if state is None:
        state = extract_preloaded_state(body)

    return BootstrapConfig(
        search_state=extract_product_search_from_state(state) if state else None,
        **values,
    )
