"""Cross-channel deduplication and user filter predicates."""

from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Sequence

import structlog

from catalog_scraper.scrapers.base import ProductRecord
from catalog_scraper.scrapers.run_state import RunState

logger = structlog.get_logger(__name__)


def _contains(haystack: Optional[str], needle: str) -> bool:
    return bool(haystack) and needle.lower() in haystack.lower()


@dataclass
class ProductFilters:
    """User-supplied predicates. Unset predicates always pass.

    Predicates only judge what is known: a record with no brand passes the
    brand filter, a record with no price passes the price bounds, and an
    empty color or size list passes the color or size filter.
    """

    brand: Optional[str] = None
    color: Optional[str] = None
    size: Optional[str] = None
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None

    def matches(self, record: ProductRecord) -> bool:
        if self.brand and record.brand and not _contains(record.brand, self.brand):
            return False

        if record.price is not None:
            if self.min_price is not None and record.price < self.min_price:
                return False
            if self.max_price is not None and record.price > self.max_price:
                return False

        if self.color and record.colors:
            if not any(_contains(c, self.color) for c in record.colors):
                return False

        if self.size and record.sizes:
            if not any(_contains(s, self.size) for s in record.sizes):
                return False

        return True


class DedupFilterEngine:
    """Decides which normalized records are persisted.

    Order per record: completeness check, filter predicates, then the
    atomic seen-key check and ceiling truncation inside RunState.
    """

    def __init__(self, run_state: RunState, filters: ProductFilters = None):
        self.run_state = run_state
        self.filters = filters or ProductFilters()

    async def accept(self, records: Sequence[ProductRecord]) -> List[ProductRecord]:
        """Filter a batch and admit what is new.

        Args:
            records: Normalized records in page order

        Returns:
            The accepted sub-batch, in order; may be empty
        """
        candidates = []
        incomplete = filtered = 0
        for record in records:
            if not record.is_complete:
                incomplete += 1
                continue
            if not self.filters.matches(record):
                filtered += 1
                continue
            candidates.append(record)

        accepted = await self.run_state.admit(candidates) if candidates else []
        logger.debug(
            "batch_deduplicated",
            received=len(records),
            incomplete=incomplete,
            filtered=filtered,
            accepted=len(accepted),
        )
        return accepted
