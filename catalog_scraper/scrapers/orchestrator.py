"""Crawl orchestration.

Connects the fetch layer, the extraction channels, the normalizer, the
dedup engine and the pagination controller. Work is a queue of PageTasks
consumed by a pool of asyncio workers; each task yields its own successor
(next listing page) and, in detail mode, one DETAIL task per new product.
"""

import asyncio
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode, urlparse

import structlog

from catalog_scraper.config import settings
from catalog_scraper.core.exceptions import ConfigurationError
from catalog_scraper.schemas.crawl_input import CrawlInput
from catalog_scraper.scrapers.base import ChannelContext, PageTask, ProductRecord, TaskKind
from catalog_scraper.scrapers.bootstrap import extract_bootstrap_config
from catalog_scraper.scrapers.channels import build_channels
from catalog_scraper.scrapers.dedup import DedupFilterEngine, ProductFilters
from catalog_scraper.scrapers.fetcher import HttpFetcher, HttpxFetcher, ResilientFetcher
from catalog_scraper.scrapers.normalizer import RecordNormalizer
from catalog_scraper.scrapers.pagination import (
    ListingOutcome,
    PaginationController,
    PaginationState,
    find_next_link,
    page_size_from_url,
    start_from_url,
)
from catalog_scraper.scrapers.run_state import RunState
from catalog_scraper.scrapers.session_pool import SessionPool
from catalog_scraper.scrapers.sink import DatasetSink, MemorySink
from catalog_scraper.scrapers.utils.proxy_manager import NoProxyManager, ProxyManager

logger = structlog.get_logger(__name__)


@dataclass
class CrawlSummary:
    """Counters reported at the end of a run."""

    items_saved: int = 0
    items_enqueued: int = 0
    pages_processed: int = 0
    pages_failed: int = 0
    proxy_circuit_open: bool = False
    proxy_reason: Optional[str] = None
    reran_without_proxy: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def build_start_urls(crawl_input: CrawlInput, base_url: Optional[str] = None) -> List[str]:
    """Seed URLs: explicit start URLs, or a category URL with refinements.

    Args:
        crawl_input: Validated crawl input
        base_url: Site origin for the generated seed

    Returns:
        Absolute http(s) URLs; empty when only invalid start URLs were given
    """
    if crawl_input.start_urls:
        return [
            url
            for url in crawl_input.start_urls
            if urlparse(url).scheme in ("http", "https") and urlparse(url).netloc
        ]

    base_url = (base_url or settings.BASE_URL).rstrip("/")
    pairs = []
    index = 1
    for name, value in (
        ("brand", crawl_input.brand),
        ("color", crawl_input.color),
        ("size", crawl_input.size),
    ):
        if value:
            pairs.append((f"prefn{index}", name))
            pairs.append((f"prefv{index}", value))
            index += 1
    if crawl_input.min_price is not None:
        pairs.append(("pmin", str(crawl_input.min_price)))
    if crawl_input.max_price is not None:
        pairs.append(("pmax", str(crawl_input.max_price)))

    url = f"{base_url}/en/{crawl_input.category}"
    return [f"{url}?{urlencode(pairs)}" if pairs else url]


def match_tile(candidates: List[Dict[str, Any]], base: Optional[ProductRecord]) -> Optional[Dict[str, Any]]:
    """Pick the tile describing ``base``: same url, then same title, then the first."""
    if not candidates:
        return None
    if base is not None:
        for candidate in candidates:
            if base.url and candidate.get("url") == base.url:
                return candidate
        for candidate in candidates:
            if base.title and candidate.get("title") == base.title:
                return candidate
    return candidates[0]


class CrawlOrchestrator:
    """Runs one crawl from seed URLs to the dataset sink."""

    def __init__(
        self,
        crawl_input: CrawlInput,
        sink: DatasetSink = None,
        primitive: HttpFetcher = None,
        proxy_manager: ProxyManager = None,
        base_url: str = None,
        api_page_delay: float = None,
        fetch_max_attempts: int = None,
        retry_wait_min: float = None,
        retry_wait_max: float = None,
    ):
        """Initialize the orchestrator.

        Args:
            crawl_input: Validated crawl parameters
            sink: Dataset sink (in-memory when omitted)
            primitive: Fetch primitive (HttpxFetcher when omitted)
            proxy_manager: Proxy pool (built from the input or PROXY_LIST when omitted)
            base_url: Storefront origin
            api_page_delay: Seconds to wait before each API continuation page
            fetch_max_attempts: Attempts per fetch, first one included
            retry_wait_min: Minimum backoff between fetch attempts
            retry_wait_max: Maximum backoff between fetch attempts
        """
        self.crawl_input = crawl_input
        self.sink = sink if sink is not None else MemorySink()
        self.base_url = (base_url or settings.BASE_URL).rstrip("/")
        self.api_page_delay = settings.API_PAGE_DELAY_SECONDS if api_page_delay is None else api_page_delay
        self.fetch_max_attempts = fetch_max_attempts
        self.retry_wait_min = retry_wait_min
        self.retry_wait_max = retry_wait_max

        self._owns_primitive = primitive is None
        self.primitive = primitive if primitive is not None else HttpxFetcher()

        if proxy_manager is None:
            proxy_urls = crawl_input.proxy_urls or settings.get_proxy_list()
            proxy_manager = ProxyManager(proxy_urls) if proxy_urls else NoProxyManager()
        self.proxy_manager = proxy_manager

        self.run_state = RunState(crawl_input.max_items, detail_mode=crawl_input.scrape_details)
        self.normalizer = RecordNormalizer(base_url=self.base_url)
        self.dedup = DedupFilterEngine(
            self.run_state,
            ProductFilters(
                brand=crawl_input.brand,
                color=crawl_input.color,
                size=crawl_input.size,
                min_price=crawl_input.min_price,
                max_price=crawl_input.max_price,
            ),
        )
        self.pagination = PaginationController(
            max_pages=crawl_input.max_pages,
            base_url=self.base_url,
        )
        self.summary = CrawlSummary()
        self.logger = logger.bind(service="crawl_orchestrator")

        self._fetcher: Optional[ResilientFetcher] = None
        self._channels: List = []
        self._detail_ceiling_logged = False

    async def run(self) -> CrawlSummary:
        """Run the crawl (plus one direct rerun if the proxy was rejected).

        Returns:
            CrawlSummary with final counters

        Raises:
            ConfigurationError: If no seed URL can be constructed
        """
        start_urls = build_start_urls(self.crawl_input, self.base_url)
        if not start_urls:
            raise ConfigurationError("no start URLs provided or generated")

        self.logger.info(
            "crawl_started",
            start_urls=start_urls,
            max_items=self.crawl_input.max_items,
            max_pages=self.crawl_input.max_pages,
            scrape_details=self.crawl_input.scrape_details,
        )

        try:
            await self._crawl(start_urls, self.proxy_manager)

            if (
                self.run_state.proxy_circuit_open
                and self.proxy_manager.enabled
                and not self.run_state.should_stop()
            ):
                self.logger.warning(
                    "proxy_rerun_started",
                    reason=self.run_state.proxy_reason,
                )
                self.run_state.prepare_rerun()
                self.summary.reran_without_proxy = True
                await self._crawl(start_urls, NoProxyManager())
        finally:
            if self._owns_primitive:
                await self.primitive.aclose()
            await self.sink.close()

        self.summary.items_saved = self.run_state.items_saved
        self.summary.items_enqueued = self.run_state.items_enqueued
        self.summary.proxy_circuit_open = self.run_state.proxy_circuit_open
        self.summary.proxy_reason = self.run_state.proxy_reason

        self.logger.info("crawl_completed", **self.summary.to_dict())
        return self.summary

    async def _crawl(self, start_urls: List[str], proxy_manager: ProxyManager) -> None:
        """One pass over the seed URLs with a fresh queue and session pool."""
        session_pool = SessionPool(proxy_manager=proxy_manager)
        self._fetcher = ResilientFetcher(
            self.primitive,
            proxy_manager,
            self.run_state,
            session_pool,
            max_attempts=self.fetch_max_attempts,
            wait_min=self.retry_wait_min,
            wait_max=self.retry_wait_max,
        )
        self._channels = build_channels(self._fetcher, self.base_url, self.crawl_input.channels)

        queue: asyncio.Queue = asyncio.Queue()
        for url in start_urls:
            queue.put_nowait(PageTask(url=url))

        workers = [
            asyncio.create_task(self._worker(queue, i))
            for i in range(self.crawl_input.max_concurrency)
        ]
        try:
            await queue.join()
        finally:
            for worker in workers:
                worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

    async def _worker(self, queue: asyncio.Queue, worker_id: int) -> None:
        while True:
            task = await queue.get()
            try:
                if self.run_state.should_stop():
                    continue
                for successor in await self._process(task):
                    queue.put_nowait(successor)
            except Exception as e:
                self.summary.pages_failed += 1
                self.logger.error(
                    "task_failed",
                    worker_id=worker_id,
                    url=task.url,
                    kind=task.kind.value,
                    error=str(e),
                    exc_info=True,
                )
            finally:
                queue.task_done()

    async def _process(self, task: PageTask) -> List[PageTask]:
        if task.kind == TaskKind.DETAIL:
            await self._process_detail(task)
            return []

        if self.run_state.detail_mode and self.run_state.ceiling_reached:
            if not self._detail_ceiling_logged:
                self._detail_ceiling_logged = True
                self.logger.info("detail_queue_limit_reached", max_items=self.run_state.max_items)
            return []

        if task.strategy == PaginationState.API_PAGING and task.carried_state.get("bootstrap"):
            return await self._process_api_page(task)
        return await self._process_listing(task)

    def _channel(self, name: str):
        for channel in self._channels:
            if channel.name == name:
                return channel
        return None

    async def _process_listing(self, task: PageTask) -> List[PageTask]:
        """Fetch a LISTING or GRID page, extract, persist, and paginate."""
        response = await self._fetcher.fetch(task.url)
        if response is None:
            self.summary.pages_failed += 1
            return []
        self.summary.pages_processed += 1

        carried = task.carried_state
        is_root = task.kind == TaskKind.LISTING and task.strategy in (None, PaginationState.INIT)
        context = ChannelContext(url=task.url, body=response.text, task=task, brand=self.crawl_input.brand)

        bootstrap = None
        page_size = page_size_from_url(task.url) or carried.get("page_size") or settings.DEFAULT_PAGE_SIZE
        start_offset = task.offset
        if is_root:
            bootstrap = extract_bootstrap_config(response.text, context.preloaded_state)
            start_offset = start_from_url(task.url) or 0
            search_state = bootstrap.search_state
            if search_state is not None:
                if search_state.limit:
                    page_size = search_state.limit
                start_offset = search_state.offset or start_offset
        context.bootstrap = bootstrap
        context.offset = start_offset
        context.limit = page_size

        results = {}
        candidates: List[Dict[str, Any]] = []
        for channel in self._channels:
            if channel.performs_io and not is_root:
                continue
            result = await channel.extract(context)
            if result is not None and result.has_candidates:
                results[channel.name] = result
                candidates.extend(result.candidates)

        self.logger.info(
            "listing_page_extracted",
            url=task.url,
            kind=task.kind.value,
            page_number=task.page_number,
            channels=list(results),
            candidates=len(candidates),
        )

        records = self.normalizer.normalize_many(candidates)
        detail_tasks = await self._persist_or_enqueue(records)

        outcome = ListingOutcome(
            api_result=results.get("api"),
            embedded_result=results.get("embedded_state"),
            bootstrap=bootstrap,
            candidate_count=len(candidates),
            page_size=page_size,
            start_offset=start_offset,
            next_link=find_next_link(context.soup, task.url),
        )
        successor = self.pagination.next_task(task, outcome, self.run_state.ceiling_reached)
        return detail_tasks + ([successor] if successor else [])

    async def _process_api_page(self, task: PageTask) -> List[PageTask]:
        """API continuation page: no HTML fetch, just the next search call."""
        api_channel = self._channel("api")
        if api_channel is None:
            return []

        await asyncio.sleep(self.api_page_delay)

        carried = task.carried_state
        limit = carried.get("limit") or settings.DEFAULT_PAGE_SIZE
        context = ChannelContext(
            url=task.url,
            task=task,
            bootstrap=carried["bootstrap"],
            offset=task.offset,
            limit=limit,
            brand=self.crawl_input.brand,
        )
        self.logger.info("api_page_requested", page_number=task.page_number, offset=task.offset)
        result = await api_channel.extract(context)
        if result is None or not result.has_candidates:
            self.logger.warning("api_page_empty", offset=task.offset)
            return []
        self.summary.pages_processed += 1

        records = self.normalizer.normalize_many(result.candidates)
        detail_tasks = await self._persist_or_enqueue(records)

        outcome = ListingOutcome(
            api_result=result,
            bootstrap=carried["bootstrap"],
            candidate_count=len(result.candidates),
            page_size=limit,
            start_offset=task.offset,
        )
        successor = self.pagination.next_task(task, outcome, self.run_state.ceiling_reached)
        return detail_tasks + ([successor] if successor else [])

    async def _persist_or_enqueue(self, records: List[ProductRecord]) -> List[PageTask]:
        """Listing mode: dedup and push. Detail mode: reserve and build DETAIL tasks."""
        if not self.crawl_input.scrape_details:
            accepted = await self.dedup.accept(records)
            if accepted:
                await self.sink.push([record.to_dict() for record in accepted])
                self.logger.info(
                    "items_saved",
                    count=len(accepted),
                    total=self.run_state.items_saved,
                    max_items=self.run_state.max_items,
                )
            return []

        tasks = []
        for record in records:
            if self.run_state.ceiling_reached:
                break
            if not record.url or not self.dedup.filters.matches(record):
                continue
            if await self.run_state.reserve_detail(record.url):
                tasks.append(
                    PageTask(url=record.url, kind=TaskKind.DETAIL, carried_state={"base": record})
                )
        if tasks:
            self.logger.debug("detail_tasks_enqueued", count=len(tasks), total=self.run_state.items_enqueued)
        return tasks

    async def _process_detail(self, task: PageTask) -> None:
        """Fetch a product page and enrich the carried listing record."""
        base: Optional[ProductRecord] = task.carried_state.get("base")

        response = await self._fetcher.fetch(task.url)
        if response is None:
            self.summary.pages_failed += 1
            return
        self.summary.pages_processed += 1

        context = ChannelContext(url=task.url, body=response.text, task=task)
        detail = None
        source = None
        for name in ("embedded_state", "structured_data"):
            channel = self._channel(name)
            if channel is None:
                continue
            result = await channel.extract(context)
            if result is not None and result.has_candidates:
                detail, source = result.candidates[0], name
                break

        if detail is None:
            html_channel = self._channel("html_tiles")
            result = await html_channel.extract(context) if html_channel else None
            if result is not None:
                detail, source = match_tile(result.candidates, base), html_channel.name

        candidate = dict(detail or {})
        if base is None:
            candidate.setdefault("url", task.url)
        record = self.normalizer.normalize(candidate, base=base)
        if record is None:
            return

        accepted = await self.dedup.accept([record])
        if accepted:
            await self.sink.push([r.to_dict(include_enrichment=True) for r in accepted])
        self.logger.info(
            "detail_page_processed",
            url=task.url,
            source=source,
            saved=bool(accepted),
            total=self.run_state.items_saved,
        )
