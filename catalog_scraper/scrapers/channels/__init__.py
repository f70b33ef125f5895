"""Extraction channels, one module per data source.

Channels are run in priority order: search API, embedded page state,
JSON-LD structured data, raw HTML markup. The API channel needs a fetcher
and is built by the orchestrator; the parsing channels are stateless.
"""

from typing import List, Optional

from .api import SearchApiChannel
from .embedded_state import EmbeddedStateChannel
from .html_tiles import HtmlTileChannel
from .structured_data import StructuredDataChannel

CHANNEL_PRIORITY = ["api", "embedded_state", "structured_data", "html_tiles"]


def build_channels(fetcher, base_url: Optional[str] = None, enabled: Optional[List[str]] = None):
    """Build the ordered channel list.

    Args:
        fetcher: Resilient fetcher for the API channel
        base_url: Site origin used to resolve relative links
        enabled: Channel names to keep (all when None)

    Returns:
        Channels in priority order
    """
    channels = [
        SearchApiChannel(fetcher),
        EmbeddedStateChannel(),
        StructuredDataChannel(),
        HtmlTileChannel(base_url=base_url),
    ]
    if enabled is None:
        return channels
    wanted = set(enabled)
    return [c for c in channels if c.name in wanted]


__all__ = [
    "CHANNEL_PRIORITY",
    "SearchApiChannel",
    "EmbeddedStateChannel",
    "StructuredDataChannel",
    "HtmlTileChannel",
    "build_channels",
]
