"""Scraper utilities for proxy management, retries, headers and data normalization."""

from .proxy_manager import ProxyManager, ProxyEntry, NoProxyManager
from .user_agents import build_browser_headers, get_random_user_agent, USER_AGENTS
from .normalizer import (
    PriceNormalizer,
    normalize_url,
    normalize_product_url,
    to_absolute,
    to_boolean,
    uniq_strings,
)
from .retry import build_fetch_retrying, RETRYABLE_FETCH_ERRORS


__all__ = [
    # Proxy management
    "ProxyManager",
    "ProxyEntry",
    "NoProxyManager",
    # Headers
    "build_browser_headers",
    "get_random_user_agent",
    "USER_AGENTS",
    # Normalization
    "PriceNormalizer",
    "normalize_url",
    "normalize_product_url",
    "to_absolute",
    "to_boolean",
    "uniq_strings",
    # Retry
    "build_fetch_retrying",
    "RETRYABLE_FETCH_ERRORS",
]
