"""Tests for deduplication, filters and the item ceiling."""

import asyncio
from decimal import Decimal

from catalog_scraper.scrapers.base import ProductRecord
from catalog_scraper.scrapers.dedup import DedupFilterEngine, ProductFilters
from catalog_scraper.scrapers.run_state import RunState


def _record(i, **overrides):
    fields = {
        "title": f"Shoe {i}",
        "url": f"https://www.brownsshoes.com/en/product/shoe-{i}/P{i}.html",
        "brand": "Birkenstock",
        "price": Decimal("100"),
        "colors": ["Black"],
        "sizes": ["8", "9"],
        "product_id": f"P{i}",
    }
    fields.update(overrides)
    return ProductRecord(**fields)


class TestDedup:
    async def test_same_product_is_emitted_once(self):
        engine = DedupFilterEngine(RunState(max_items=100))

        first = await engine.accept([_record(1), _record(2)])
        again = await engine.accept([_record(1), _record(2), _record(3)])

        assert [r.product_id for r in first] == ["P1", "P2"]
        assert [r.product_id for r in again] == ["P3"]

    async def test_id_and_url_keys_overlap(self):
        engine = DedupFilterEngine(RunState(max_items=100))
        await engine.accept([_record(1)])

        # Same url, id unknown on this channel
        by_url = _record(1, product_id=None)
        # Same id, url resolved differently
        by_id = _record(1, url="https://www.brownsshoes.com/en/product/other/P1.html")

        assert await engine.accept([by_url, by_id]) == []

    async def test_variants_sharing_a_url_collapse(self):
        engine = DedupFilterEngine(RunState(max_items=100))
        url = "https://www.brownsshoes.com/en/product/arizona/P1.html"

        accepted = await engine.accept([_record(1, url=url), _record(2, url=url, colors=["Taupe"])])

        assert [r.product_id for r in accepted] == ["P1"]
        assert _record(2, url=url).identity_keys() == ["id:P2", f"url:{url}"]

    async def test_duplicates_within_one_batch(self):
        engine = DedupFilterEngine(RunState(max_items=100))
        accepted = await engine.accept([_record(1), _record(1), _record(2)])
        assert [r.product_id for r in accepted] == ["P1", "P2"]

    async def test_incomplete_records_are_dropped(self):
        run_state = RunState(max_items=100)
        engine = DedupFilterEngine(run_state)

        accepted = await engine.accept([_record(1, title=None), _record(2, url=None, product_id=None)])

        assert accepted == []
        assert run_state.items_saved == 0


class TestFilters:
    async def test_price_bounds(self):
        record = _record(1, price=Decimal("120"))

        out_of_range = ProductFilters(min_price=Decimal("50"), max_price=Decimal("100"))
        in_range = ProductFilters(min_price=Decimal("50"), max_price=Decimal("150"))

        assert await DedupFilterEngine(RunState(10), out_of_range).accept([record]) == []
        assert await DedupFilterEngine(RunState(10), in_range).accept([record]) == [record]

    def test_unknown_values_pass(self):
        filters = ProductFilters(brand="Blundstone", color="Red", size="10", max_price=Decimal("50"))
        unknown = ProductRecord(title="A", url="https://x/p", brand=None, price=None)
        assert filters.matches(unknown)

    def test_substring_matching_is_case_insensitive(self):
        record = _record(1, brand="Birkenstock Papillio", colors=["Mocha Brown"], sizes=["9.5 W"])

        assert ProductFilters(brand="birkenstock").matches(record)
        assert ProductFilters(color="brown").matches(record)
        assert ProductFilters(size="9.5").matches(record)
        assert not ProductFilters(brand="Blundstone").matches(record)
        assert not ProductFilters(color="red").matches(record)
        assert not ProductFilters(size="11").matches(record)


class TestCeiling:
    async def test_batch_truncated_at_ceiling(self):
        run_state = RunState(max_items=25)
        engine = DedupFilterEngine(run_state)

        first = await engine.accept([_record(i) for i in range(20)])
        second = await engine.accept([_record(i) for i in range(20, 40)])

        assert len(first) == 20
        assert [r.product_id for r in second] == [f"P{i}" for i in range(20, 25)]
        assert run_state.items_saved == 25
        assert run_state.should_stop()
        assert await engine.accept([_record(99)]) == []

    async def test_concurrent_batches_never_overshoot(self):
        run_state = RunState(max_items=30)
        engine = DedupFilterEngine(run_state)

        batches = [[_record(b * 100 + i) for i in range(20)] for b in range(5)]
        results = await asyncio.gather(*(engine.accept(batch) for batch in batches))

        assert sum(len(r) for r in results) == 30
        assert run_state.items_saved == 30
