"""Command-line runner for the catalog crawler.

Usage:
    # Crawl the default category (listing mode, 20 items)
    catalog-scraper

    # Brand-filtered crawl with detail pages, written as JSON lines
    catalog-scraper --category men --brand Birkenstock --details --output items.jsonl

    # Actor-style JSON input file; flags override its values
    catalog-scraper --input input.json --max-items 100
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog
from pydantic import ValidationError

from catalog_scraper.config import settings
from catalog_scraper.core.exceptions import ConfigurationError
from catalog_scraper.logging_config import configure_logging
from catalog_scraper.schemas.crawl_input import CrawlInput
from catalog_scraper.scrapers.orchestrator import CrawlOrchestrator, CrawlSummary
from catalog_scraper.scrapers.sink import DatasetSink, JsonLinesSink, MemorySink

log = structlog.get_logger("catalog_scraper.cli")

# CLI flag dest -> CrawlInput field
_FLAG_FIELDS = {
    "start_urls": "start_urls",
    "category": "category",
    "brand": "brand",
    "color": "color",
    "size": "size",
    "min_price": "min_price",
    "max_price": "max_price",
    "max_items": "max_items",
    "max_pages": "max_pages",
    "details": "scrape_details",
    "concurrency": "max_concurrency",
    "proxies": "proxy_urls",
    "channels": "channels",
}


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="catalog-scraper",
        description="Crawl a Commerce Cloud storefront catalog into a product dataset.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--input", type=Path, help="JSON file with crawl input (actor-style keys)")
    parser.add_argument(
        "--start-url",
        action="append",
        dest="start_urls",
        metavar="URL",
        help="Listing URL to crawl (repeatable). Overrides --category.",
    )
    parser.add_argument("--category", help=f"Category path (default: {settings.DEFAULT_CATEGORY})")
    parser.add_argument("--brand", help="Keep only products of this brand")
    parser.add_argument("--color", help="Keep only products offered in this color")
    parser.add_argument("--size", help="Keep only products offered in this size")
    parser.add_argument("--min-price", help="Inclusive lower price bound")
    parser.add_argument("--max-price", help="Inclusive upper price bound")
    parser.add_argument(
        "--max-items",
        type=int,
        help=f"Stop after this many products (default: {settings.DEFAULT_MAX_ITEMS})",
    )
    parser.add_argument(
        "--max-pages",
        type=int,
        help=f"Page ceiling per listing root (default: {settings.DEFAULT_MAX_PAGES})",
    )
    parser.add_argument(
        "--details",
        action="store_const",
        const=True,
        default=None,
        help="Visit each product page and add enrichment fields",
    )
    parser.add_argument("--concurrency", type=int, help=f"Worker count (default: {settings.MAX_CONCURRENCY})")
    parser.add_argument(
        "--proxy",
        action="append",
        dest="proxies",
        metavar="PROXY_URL",
        help="Proxy URL (repeatable). Defaults to PROXY_LIST.",
    )
    parser.add_argument(
        "--channel",
        action="append",
        dest="channels",
        metavar="NAME",
        help="Enable only these extraction channels (repeatable)",
    )
    parser.add_argument("--output", type=Path, help="Write items as JSON lines to this file")
    parser.add_argument("--log-level", default=settings.LOG_LEVEL, help="Log level (default: %(default)s)")
    parser.add_argument(
        "--json-logs",
        action="store_true",
        default=settings.LOG_JSON,
        help="Emit logs as JSON lines",
    )
    return parser.parse_args(argv)


def build_crawl_input(args: argparse.Namespace) -> CrawlInput:
    """Merge the optional input file with CLI flags (flags win).

    Raises:
        ConfigurationError: If the input file is unreadable or the input is invalid
    """
    data: Dict[str, Any] = {}
    if args.input is not None:
        try:
            data = json.loads(args.input.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"cannot read input file {args.input}: {e}")
        if not isinstance(data, dict):
            raise ConfigurationError(f"input file {args.input} must hold a JSON object")

    for dest, field_name in _FLAG_FIELDS.items():
        value = getattr(args, dest)
        if value is not None:
            alias = CrawlInput.model_fields[field_name].alias
            if alias:
                data.pop(alias, None)
            data[field_name] = value

    try:
        return CrawlInput.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(str(e))


def print_summary(summary: CrawlSummary, sink: DatasetSink, output: Optional[Path]) -> None:
    print()
    print("=" * 50)
    print("  Crawl summary")
    print("=" * 50)
    print(f"  Items saved       : {summary.items_saved}")
    print(f"  Detail tasks      : {summary.items_enqueued}")
    print(f"  Pages processed   : {summary.pages_processed}")
    print(f"  Pages failed      : {summary.pages_failed}")
    if summary.proxy_circuit_open:
        print(f"  Proxy disabled    : {summary.proxy_reason}")
        print(f"  Direct rerun      : {'yes' if summary.reran_without_proxy else 'no'}")
    if output is not None:
        print(f"  Output            : {output}")
    print("=" * 50)

    if isinstance(sink, MemorySink):
        for item in sink.items:
            print(json.dumps(item, ensure_ascii=False))


async def run(args: argparse.Namespace) -> CrawlSummary:
    crawl_input = build_crawl_input(args)
    sink: DatasetSink = JsonLinesSink(args.output) if args.output else MemorySink()

    orchestrator = CrawlOrchestrator(crawl_input, sink=sink)
    summary = await orchestrator.run()
    print_summary(summary, sink, args.output)
    return summary


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    configure_logging(args.log_level, args.json_logs)

    try:
        asyncio.run(run(args))
    except ConfigurationError as e:
        log.error("configuration_error", error=e.message)
        sys.exit(1)
    except KeyboardInterrupt:
        log.warning("crawl_interrupted")
        sys.exit(130)


if __name__ == "__main__":
    main()
