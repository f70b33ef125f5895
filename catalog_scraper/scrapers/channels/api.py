"""Commerce Cloud product-search API channel.

Highest-trust channel. Calls the storefront's own shopper-search API with
the bootstrap credentials found on the listing page and the refinements of
the server-rendered search. Endpoints are tried in order until one answers
with a well-formed hit list.
"""

from typing import Any, Dict, List, Optional, Tuple

from catalog_scraper.scrapers.base import BaseChannel, ChannelContext, ChannelResult
from catalog_scraper.scrapers.bootstrap import BootstrapConfig
from catalog_scraper.scrapers.channels.embedded_state import map_search_hit

API_HOST_TEMPLATE = "https://{short_code}.api.commercecloud.salesforce.com"
API_PATHS = [
    "/shopper-search/v1/organizations/{organization_id}/product-search",
    "/search/v1/organizations/{organization_id}/product-search",
]

_PASSTHROUGH_FLAGS = ("allImages", "perPricebook", "allVariationProperties")


def build_api_endpoints(bootstrap: BootstrapConfig) -> List[str]:
    """Ranked list of candidate product-search endpoints."""
    if not bootstrap.short_code or not bootstrap.organization_id:
        return []
    host = API_HOST_TEMPLATE.format(short_code=bootstrap.short_code)
    return [
        host + path.format(organization_id=bootstrap.organization_id)
        for path in API_PATHS
    ]


def _flag(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_search_params(
    bootstrap: BootstrapConfig,
    offset: int,
    limit: int,
    brand: Optional[str] = None,
) -> List[Tuple[str, str]]:
    """Build the query string for one search page.

    Repeated keys (``refine``, ``expand``) are kept as separate pairs.

    Args:
        bootstrap: Credentials plus the embedded search params
        offset: Result offset
        limit: Page size
        brand: Optional brand refinement

    Returns:
        List of (key, value) pairs, ready for urlencode or httpx params
    """
    params = bootstrap.search_params
    pairs: List[Tuple[str, str]] = []

    site_id = bootstrap.effective_site_id
    if site_id:
        pairs.append(("siteId", site_id))
    if bootstrap.client_id:
        pairs.append(("clientId", bootstrap.client_id))
    if params.get("locale"):
        pairs.append(("locale", str(params["locale"])))

    for refine in params.get("refine") or []:
        pairs.append(("refine", str(refine)))
    if brand:
        pairs.append(("refine", f"c_brand={brand}"))

    for expand in params.get("expand") or []:
        pairs.append(("expand", str(expand)))

    for name in _PASSTHROUGH_FLAGS:
        if params.get(name) is not None:
            pairs.append((name, _flag(params[name])))

    pairs.append(("offset", str(offset)))
    pairs.append(("limit", str(limit)))
    return pairs


class SearchApiChannel(BaseChannel):
    """Product-search API channel (the only channel that performs network I/O)."""

    name = "api"
    performs_io = True

    def __init__(self, fetcher):
        """Initialize the channel.

        Args:
            fetcher: ResilientFetcher used for every API call
        """
        super().__init__()
        self.fetcher = fetcher

    async def extract(self, context: ChannelContext) -> Optional[ChannelResult]:
        bootstrap = context.bootstrap
        if not isinstance(bootstrap, BootstrapConfig) or not bootstrap.has_api_credentials:
            self.logger.debug("api_credentials_missing", url=context.url)
            return None

        try:
            data = await self.search(bootstrap, context.offset, context.limit, context.brand, context.session)
        except Exception as e:
            self.logger.warning("api_search_failed", url=context.url, error_type=type(e).__name__, error=str(e))
            return None
        if data is None:
            return None

        candidates = [c for c in (map_search_hit(hit) for hit in data["hits"]) if c]
        return ChannelResult(
            channel=self.name,
            candidates=candidates,
            total=data.get("total") if isinstance(data.get("total"), int) else None,
            limit=data.get("limit") if isinstance(data.get("limit"), int) else context.limit,
            offset=data.get("offset") if isinstance(data.get("offset"), int) else context.offset,
            params=bootstrap.search_params,
        )

    async def search(
        self,
        bootstrap: BootstrapConfig,
        offset: int,
        limit: int,
        brand: Optional[str] = None,
        session=None,
    ) -> Optional[Dict[str, Any]]:
        """Call the search endpoints in rank order.

        Returns:
            The first response body carrying a ``hits`` list, or None
        """
        endpoints = build_api_endpoints(bootstrap)
        if not endpoints:
            return None

        if not bootstrap.search_params.get("refine"):
            self.logger.debug("api_refine_missing", message="attempting API call anyway")

        params = build_search_params(bootstrap, offset, limit, brand)
        for endpoint in endpoints:
            self.logger.debug("api_request", endpoint=endpoint, offset=offset, limit=limit)
            data = await self.fetcher.fetch_json(endpoint, session=session, params=params)
            if isinstance(data, dict) and isinstance(data.get("hits"), list):
                self.logger.info("api_hits_fetched", count=len(data["hits"]), offset=offset)
                return data
            self.logger.debug("api_endpoint_empty", endpoint=endpoint)
        return None
