"""Tests for the pagination controller and URL helpers."""

from bs4 import BeautifulSoup

from catalog_scraper.scrapers.base import ChannelResult, PageTask, TaskKind
from catalog_scraper.scrapers.bootstrap import BootstrapConfig, ProductSearchState
from catalog_scraper.scrapers.pagination import (
    ListingOutcome,
    PaginationController,
    PaginationState,
    build_grid_url,
    cgid_from_refine,
    find_next_link,
    increment_page_param,
    locale_from_url,
    page_size_from_url,
)

from factories import BASE_URL, LISTING_URL, SEARCH_PARAMS

GRID_PATH = "/on/demandware.store/Sites-brownsshoes-Site/en-CA/Search-UpdateGrid"


def _controller(max_pages=50):
    return PaginationController(max_pages=max_pages, page_size=20, base_url=BASE_URL)


def _bootstrap():
    return BootstrapConfig(
        short_code="abc123",
        client_id="client-1",
        organization_id="f_ecom_test",
        site_id="brownsshoes",
        search_state=ProductSearchState(params=SEARCH_PARAMS),
    )


def _api_outcome(offset, total=55, count=20):
    result = ChannelResult(
        channel="api",
        candidates=[{"title": str(i)} for i in range(count)],
        total=total,
        limit=20,
        offset=offset,
    )
    return ListingOutcome(api_result=result, bootstrap=_bootstrap(), candidate_count=count, start_offset=offset)


def _embedded_outcome(count=20, start_offset=0, bootstrap=None):
    result = ChannelResult(channel="embedded_state", candidates=[{"title": str(i)} for i in range(count)])
    return ListingOutcome(
        embedded_result=result,
        bootstrap=bootstrap or _bootstrap(),
        candidate_count=count,
        page_size=20,
        start_offset=start_offset,
    )


class TestApiPaging:
    def test_walks_offsets_until_total(self):
        controller = _controller()
        task = PageTask(url=LISTING_URL)
        offsets = [task.offset]

        while True:
            successor = controller.next_task(task, _api_outcome(task.offset))
            if successor is None:
                break
            assert successor.kind == TaskKind.LISTING
            assert successor.strategy == PaginationState.API_PAGING
            offsets.append(successor.offset)
            task = successor

        assert offsets == [0, 20, 40]
        assert task.page_number == 3

    def test_successor_carries_bootstrap_and_total(self):
        successor = _controller().next_task(PageTask(url=LISTING_URL), _api_outcome(0))
        assert successor.carried_state["bootstrap"].short_code == "abc123"
        assert successor.carried_state["total"] == 55
        assert successor.carried_state["root_url"] == LISTING_URL

    def test_zero_hits_ends_paging(self):
        task = PageTask(url=LISTING_URL, offset=20, carried_state={"strategy": PaginationState.API_PAGING})
        outcome = _api_outcome(20, count=0)
        assert _controller().next_task(task, outcome) is None

    def test_max_pages(self):
        task = PageTask(url=LISTING_URL, page_number=2, carried_state={"strategy": PaginationState.API_PAGING})
        assert _controller(max_pages=2).next_task(task, _api_outcome(20, total=500)) is None

    def test_ceiling_stops_successors(self):
        assert _controller().next_task(PageTask(url=LISTING_URL), _api_outcome(0), ceiling_reached=True) is None

    def test_strategy_never_reverts(self):
        task = PageTask(url=LISTING_URL, offset=20, carried_state={"strategy": PaginationState.API_PAGING})
        # The API went quiet; embedded state alone must not switch the root to grid paging
        assert _controller().next_task(task, _embedded_outcome()) is None


class TestGridPaging:
    def test_first_grid_task(self):
        successor = _controller().next_task(PageTask(url=LISTING_URL), _embedded_outcome())

        assert successor.kind == TaskKind.GRID
        assert successor.strategy == PaginationState.GRID_PAGING
        assert successor.offset == 20
        assert successor.url == f"{BASE_URL}{GRID_PATH}?cgid=womens&start=20&sz=20"

    def test_grid_continues_from_own_offset(self):
        controller = _controller()
        first = controller.next_task(PageTask(url=LISTING_URL), _embedded_outcome())

        # Grid fragments carry no embedded state; only tile candidates come back
        second = controller.next_task(first, ListingOutcome(candidate_count=20, start_offset=20))

        assert second.kind == TaskKind.GRID
        assert second.offset == 40
        assert "start=40" in second.url
        assert second.carried_state["root_url"] == LISTING_URL

    def test_empty_grid_page_stops(self):
        first = _controller().next_task(PageTask(url=LISTING_URL), _embedded_outcome())
        assert _controller().next_task(first, ListingOutcome(candidate_count=0, start_offset=20)) is None

    def test_no_site_id_falls_back_to_links(self):
        bootstrap = BootstrapConfig(search_state=ProductSearchState(params={"refine": ["cgid=womens"]}))
        outcome = _embedded_outcome(bootstrap=bootstrap)
        controller = _controller()
        assert controller.choose_strategy(PageTask(url=LISTING_URL), outcome) == PaginationState.LINK_PAGING


class TestLinkPaging:
    def test_follows_next_link(self):
        outcome = ListingOutcome(candidate_count=5, next_link=f"{BASE_URL}/en/women?page=2")
        successor = _controller().next_task(PageTask(url=LISTING_URL), outcome)

        assert successor.kind == TaskKind.LISTING
        assert successor.strategy == PaginationState.LINK_PAGING
        assert successor.url == f"{BASE_URL}/en/women?page=2"

    def test_increments_start_param(self):
        url = f"{BASE_URL}/en/women?start=0&sz=24"
        outcome = ListingOutcome(candidate_count=5, page_size=24)
        successor = _controller().next_task(PageTask(url=url), outcome)
        assert successor.url == f"{BASE_URL}/en/women?start=24&sz=24"

    def test_no_way_forward(self):
        outcome = ListingOutcome(candidate_count=5)
        assert _controller().next_task(PageTask(url=LISTING_URL), outcome) is None

    def test_nothing_found_is_exhausted(self):
        controller = _controller()
        task = PageTask(url=LISTING_URL)
        outcome = ListingOutcome(candidate_count=0, next_link=f"{BASE_URL}/en/women?page=2")
        assert controller.choose_strategy(task, outcome) == PaginationState.EXHAUSTED
        assert controller.next_task(task, outcome) is None


class TestUrlHelpers:
    def test_build_grid_url_replaces_paging_params(self):
        url = build_grid_url(
            f"{BASE_URL}/en/women?prefn1=brand&prefv1=Birkenstock&start=40&sz=12&page=3",
            "brownsshoes",
            "en",
            "womens",
            start=20,
            size=20,
            base_url=BASE_URL,
        )
        assert url == (
            f"{BASE_URL}/on/demandware.store/Sites-brownsshoes-Site/en/Search-UpdateGrid"
            "?prefn1=brand&prefv1=Birkenstock&cgid=womens&start=20&sz=20"
        )

    def test_build_grid_url_requires_category(self):
        assert build_grid_url(LISTING_URL, "brownsshoes", "en", None, 0, 20) is None

    def test_increment_page_param(self):
        assert increment_page_param(f"{BASE_URL}/en/women?page=2", 20) == f"{BASE_URL}/en/women?page=3"
        assert increment_page_param(f"{BASE_URL}/en/women?start=abc", 20) is None
        assert increment_page_param(LISTING_URL, 20) is None

    def test_find_next_link(self):
        soup = BeautifulSoup('<a rel="next" href="/en/women?page=2">Next</a>', "html.parser")
        assert find_next_link(soup, LISTING_URL) == f"{BASE_URL}/en/women?page=2"
        assert find_next_link(BeautifulSoup("<p></p>", "html.parser"), LISTING_URL) is None

    def test_small_parsers(self):
        assert page_size_from_url(f"{LISTING_URL}?sz=48") == 48
        assert page_size_from_url(f"{LISTING_URL}?sz=0") is None
        assert cgid_from_refine(["c_brand=x", "cgid=mens"]) == "mens"
        assert cgid_from_refine(None) is None
        assert locale_from_url(f"{BASE_URL}/fr/femmes") == "fr"
