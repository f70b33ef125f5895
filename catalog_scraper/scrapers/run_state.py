"""Shared, mutable state of one crawl run.

Only the orchestrator, the fetcher and the dedup engine hold a handle to
RunState; extraction channels never see it. Every mutation happens under a
single asyncio lock so that seen-key checks, counter bumps and the ceiling
check are one atomic step.
"""

import asyncio
from typing import List, Optional, Sequence

import structlog

logger = structlog.get_logger(__name__)


class RunState:
    """Counters, identity sets, the proxy circuit latch and the stop signal."""

    def __init__(self, max_items: int, detail_mode: bool = False):
        """Initialize run state.

        Args:
            max_items: Item ceiling for the run
            detail_mode: Whether listing pages feed detail tasks instead of the sink
        """
        self.max_items = max_items
        self.detail_mode = detail_mode

        self.items_saved = 0
        self.items_enqueued = 0
        self.seen_identity_keys = set()
        self.queued_detail_urls = set()

        self.proxy_circuit_open = False
        self.proxy_reason: Optional[str] = None

        self.stop_event = asyncio.Event()
        self._lock = asyncio.Lock()

    @property
    def ceiling_reached(self) -> bool:
        """Whether the counter that governs this run has hit ``max_items``."""
        count = self.items_enqueued if self.detail_mode else self.items_saved
        return count >= self.max_items

    def should_stop(self) -> bool:
        return self.stop_event.is_set()

    async def admit(self, records: Sequence) -> List:
        """Atomically accept records that are new and fit under the ceiling.

        A record is a duplicate when any of its identity keys (product id or
        canonical url) was seen before. Accepted records mark all their keys
        as seen and bump ``items_saved``.

        Args:
            records: Complete, filter-passing ProductRecords in arrival order

        Returns:
            The admitted records, in order
        """
        admitted = []
        async with self._lock:
            for record in records:
                if self.items_saved >= self.max_items:
                    break
                keys = record.identity_keys()
                if not keys or any(key in self.seen_identity_keys for key in keys):
                    continue
                self.seen_identity_keys.update(keys)
                self.items_saved += 1
                admitted.append(record)

            if self.items_saved >= self.max_items and not self.stop_event.is_set():
                logger.info("item_ceiling_reached", items_saved=self.items_saved)
                self.stop_event.set()
        return admitted

    async def reserve_detail(self, url: str) -> bool:
        """Reserve one detail-page slot for ``url``.

        Returns:
            True if the url was neither queued nor already saved and the
            enqueue ceiling allows another task
        """
        async with self._lock:
            if not url or url in self.queued_detail_urls:
                return False
            if f"url:{url}" in self.seen_identity_keys:
                return False
            if self.items_enqueued >= self.max_items:
                return False
            self.queued_detail_urls.add(url)
            self.items_enqueued += 1
            return True

    async def open_proxy_circuit(self, reason: str) -> bool:
        """Latch the proxy circuit open. The first reason wins.

        Returns:
            True if this call opened the circuit
        """
        async with self._lock:
            if self.proxy_circuit_open:
                return False
            self.proxy_circuit_open = True
            self.proxy_reason = reason
        logger.warning("proxy_circuit_opened", reason=reason)
        return True

    def request_stop(self) -> None:
        self.stop_event.set()

    def prepare_rerun(self) -> None:
        """Reset detail reservations before a second pass over the seed URLs.

        Seen identity keys and ``items_saved`` carry over, so the rerun never
        emits a product twice and the item ceiling stays global. Detail pages
        reserved by the first pass may have been lost with the proxy and can
        be reserved again.
        """
        self.queued_detail_urls = set()
        self.items_enqueued = 0
