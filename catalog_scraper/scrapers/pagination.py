"""Pagination controller.

A listing root commits to one pagination protocol on its first page and
carries it on every successor task:

    INIT -> API_PAGING   search API answered with hits
         -> GRID_PAGING  only embedded state had hits, grid params derivable
         -> LINK_PAGING  anything else that produced candidates
         -> EXHAUSTED    nothing at all on the page

A strategy never reverts; when it cannot continue the root is exhausted.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

import structlog

from catalog_scraper.config import settings
from catalog_scraper.scrapers.base import ChannelResult, PageTask, TaskKind
from catalog_scraper.scrapers.bootstrap import BootstrapConfig
from catalog_scraper.scrapers.utils.normalizer import to_absolute

logger = structlog.get_logger(__name__)

GRID_PATH_TEMPLATE = "/on/demandware.store/Sites-{site_id}-Site/{locale}/Search-UpdateGrid"
GRID_RESERVED_PARAMS = frozenset(["start", "sz", "page"])
NEXT_LINK_SELECTOR = 'link[rel~="next"], a[rel~="next"]'
DEFAULT_LOCALE = "en"


class PaginationState(str, Enum):
    INIT = "INIT"
    API_PAGING = "API_PAGING"
    GRID_PAGING = "GRID_PAGING"
    LINK_PAGING = "LINK_PAGING"
    EXHAUSTED = "EXHAUSTED"


@dataclass
class ListingOutcome:
    """What one LISTING or GRID page yielded, as seen by the controller."""

    api_result: Optional[ChannelResult] = None
    embedded_result: Optional[ChannelResult] = None
    bootstrap: Optional[BootstrapConfig] = None
    candidate_count: int = 0
    page_size: Optional[int] = None
    start_offset: int = 0
    next_link: Optional[str] = None


def _query_int(url: str, name: str) -> Optional[int]:
    try:
        query = dict(parse_qsl(urlparse(url).query, keep_blank_values=True))
        return int(query[name])
    except (KeyError, ValueError):
        return None


def page_size_from_url(url: str) -> Optional[int]:
    size = _query_int(url, "sz")
    return size if size and size > 0 else None


def start_from_url(url: str) -> Optional[int]:
    start = _query_int(url, "start")
    return start if start is not None and start >= 0 else None


def cgid_from_refine(refine: Any) -> Optional[str]:
    """Category id from a ``cgid=<id>`` refinement entry."""
    if not isinstance(refine, list):
        return None
    for entry in refine:
        text = str(entry)
        if text.startswith("cgid="):
            return text.split("=", 1)[1] or None
    return None


def cgid_from_url(url: str) -> Optional[str]:
    query = dict(parse_qsl(urlparse(url).query))
    return query.get("cgid") or None


def locale_from_url(url: str) -> Optional[str]:
    """First path segment of the URL (storefronts prefix paths with the locale)."""
    parts = [p for p in urlparse(url).path.split("/") if p]
    return parts[0] if parts else None


def build_grid_url(
    request_url: str,
    site_id: str,
    locale: str,
    cgid: str,
    start: int,
    size: int,
    base_url: Optional[str] = None,
) -> Optional[str]:
    """Build a server-rendered grid fragment URL.

    All query params of ``request_url`` except start/sz/page are carried
    over; cgid, start and sz are then set.

    Returns:
        Absolute grid URL, or None if a required value is missing
    """
    if not site_id or not locale or not cgid or start is None:
        return None

    base_url = base_url or settings.BASE_URL
    pairs = [
        (key, value)
        for key, value in parse_qsl(urlparse(request_url).query, keep_blank_values=True)
        if key not in GRID_RESERVED_PARAMS and key != "cgid"
    ]
    pairs.append(("cgid", cgid))
    pairs.append(("start", str(start)))
    pairs.append(("sz", str(size or settings.DEFAULT_PAGE_SIZE)))

    path = GRID_PATH_TEMPLATE.format(site_id=site_id, locale=locale)
    return f"{base_url}{path}?{urlencode(pairs)}"


def find_next_link(soup, url: str) -> Optional[str]:
    """Absolute href of the page's ``rel="next"`` link, if any."""
    element = soup.select_one(NEXT_LINK_SELECTOR)
    if element is None or not element.get("href"):
        return None
    return to_absolute(element["href"], _origin(url))


def _origin(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"


def increment_page_param(url: str, page_size: int) -> Optional[str]:
    """Advance an existing ``start`` (by page size) or ``page`` (by one) param.

    Returns:
        The next URL, or None when the URL carries neither param
    """
    parsed = urlparse(url)
    pairs = parse_qsl(parsed.query, keep_blank_values=True)
    keys = [key for key, _ in pairs]

    if "start" in keys:
        name, step = "start", page_size
    elif "page" in keys:
        name, step = "page", 1
    else:
        return None

    updated = []
    for key, value in pairs:
        if key == name:
            try:
                value = str(int(value) + step)
            except ValueError:
                return None
        updated.append((key, value))
    return urlunparse(parsed._replace(query=urlencode(updated)))


class PaginationController:
    """Derives the successor of a listing task from that task's own outcome."""

    def __init__(self, max_pages: int = None, page_size: int = None, base_url: str = None):
        self.max_pages = max_pages or settings.DEFAULT_MAX_PAGES
        self.page_size = page_size or settings.DEFAULT_PAGE_SIZE
        self.base_url = base_url or settings.BASE_URL

    def grid_params(self, task: PageTask, outcome: ListingOutcome) -> Optional[Dict[str, str]]:
        """Site id, locale and category id for grid paging, if all are derivable."""
        bootstrap = outcome.bootstrap
        params = bootstrap.search_params if bootstrap else {}
        site_id = bootstrap.effective_site_id if bootstrap else None
        cgid = cgid_from_refine(params.get("refine")) or cgid_from_url(task.url)
        locale = params.get("locale") or locale_from_url(task.url) or DEFAULT_LOCALE
        if not site_id or not cgid:
            return None
        return {"site_id": site_id, "locale": str(locale), "cgid": cgid}

    def choose_strategy(self, task: PageTask, outcome: ListingOutcome) -> PaginationState:
        if outcome.api_result is not None and outcome.api_result.has_candidates:
            return PaginationState.API_PAGING
        if outcome.candidate_count == 0:
            return PaginationState.EXHAUSTED
        embedded = outcome.embedded_result
        if embedded is not None and embedded.has_candidates and self.grid_params(task, outcome):
            return PaginationState.GRID_PAGING
        return PaginationState.LINK_PAGING

    def next_task(
        self,
        task: PageTask,
        outcome: ListingOutcome,
        ceiling_reached: bool = False,
    ) -> Optional[PageTask]:
        """Successor task for a listing root, or None when the root is done.

        Args:
            task: The LISTING or GRID task that was just processed
            outcome: What the page yielded
            ceiling_reached: Whether the item ceiling governing listing work was hit

        Returns:
            The next PageTask carrying the committed strategy, or None
        """
        strategy = task.strategy or PaginationState.INIT
        if strategy == PaginationState.INIT:
            strategy = self.choose_strategy(task, outcome)
            logger.info("pagination_strategy_selected", url=task.url, strategy=strategy.value)

        if strategy == PaginationState.EXHAUSTED or ceiling_reached:
            return None
        if strategy != PaginationState.API_PAGING and outcome.candidate_count == 0:
            logger.info("listing_page_empty", url=task.url, strategy=strategy.value)
            return None
        if task.page_number >= self.max_pages:
            logger.info("max_pages_reached", url=task.url, page_number=task.page_number)
            return None

        if strategy == PaginationState.API_PAGING:
            return self._next_api_task(task, outcome)
        if strategy == PaginationState.GRID_PAGING:
            return self._next_grid_task(task, outcome)
        return self._next_link_task(task, outcome)

    def _carry(self, task: PageTask, strategy: PaginationState, **extra) -> Dict[str, Any]:
        state = {
            "strategy": strategy,
            "root_url": task.carried_state.get("root_url", task.url),
        }
        state.update(extra)
        return state

    def _next_api_task(self, task: PageTask, outcome: ListingOutcome) -> Optional[PageTask]:
        result = outcome.api_result
        if result is None or not result.has_candidates:
            logger.info("api_paging_exhausted", url=task.url, offset=task.offset)
            return None

        carried = task.carried_state
        limit = result.limit or carried.get("limit") or outcome.page_size or self.page_size
        offset = result.offset if result.offset is not None else outcome.start_offset
        total = result.total if result.total is not None else carried.get("total")

        if total is not None and offset + limit >= total:
            logger.info("api_paging_complete", offset=offset, total=total)
            return None

        bootstrap = outcome.bootstrap or carried.get("bootstrap")
        return PageTask(
            url=task.url,
            kind=TaskKind.LISTING,
            page_number=task.page_number + 1,
            offset=offset + limit,
            carried_state=self._carry(
                task,
                PaginationState.API_PAGING,
                bootstrap=bootstrap,
                limit=limit,
                total=total,
            ),
        )

    def _next_grid_task(self, task: PageTask, outcome: ListingOutcome) -> Optional[PageTask]:
        carried = task.carried_state
        grid = carried.get("grid") or self.grid_params(task, outcome)
        if not grid:
            return None

        page_size = carried.get("page_size") or outcome.page_size or self.page_size
        start = outcome.start_offset + page_size
        root_url = carried.get("root_url", task.url)
        url = build_grid_url(
            root_url,
            grid["site_id"],
            grid["locale"],
            grid["cgid"],
            start,
            page_size,
            base_url=self.base_url,
        )
        if not url:
            return None

        return PageTask(
            url=url,
            kind=TaskKind.GRID,
            page_number=task.page_number + 1,
            offset=start,
            carried_state=self._carry(
                task,
                PaginationState.GRID_PAGING,
                grid=grid,
                page_size=page_size,
            ),
        )

    def _next_link_task(self, task: PageTask, outcome: ListingOutcome) -> Optional[PageTask]:
        page_size = task.carried_state.get("page_size") or outcome.page_size or self.page_size
        url = outcome.next_link or increment_page_param(task.url, page_size)
        if not url or url == task.url:
            logger.info("link_paging_exhausted", url=task.url)
            return None

        return PageTask(
            url=url,
            kind=TaskKind.LISTING,
            page_number=task.page_number + 1,
            offset=outcome.start_offset + page_size,
            carried_state=self._carry(task, PaginationState.LINK_PAGING, page_size=page_size),
        )
