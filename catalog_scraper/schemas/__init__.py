"""Pydantic schemas for crawl input."""

from .crawl_input import CrawlInput

__all__ = ["CrawlInput"]
