"""Scraper engine: channels, normalization, pagination, dedup and the fetch layer.

This package provides:
- Data structures (ProductRecord, PageTask) and the base channel interface
- Extraction channels for the search API, page state, JSON-LD and HTML markup
- The crawl orchestrator that ties them together
"""

from .base import (
    BaseChannel,
    ParsingChannel,
    ChannelContext,
    ChannelResult,
    PageTask,
    ProductRecord,
    TaskKind,
)

__all__ = [
    # Base classes
    "BaseChannel",
    "ParsingChannel",
    # Data structures
    "ChannelContext",
    "ChannelResult",
    "PageTask",
    "ProductRecord",
    "TaskKind",
]
