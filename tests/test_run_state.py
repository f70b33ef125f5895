"""Tests for RunState."""

import asyncio

from catalog_scraper.scrapers.run_state import RunState


class TestDetailReservations:
    async def test_each_url_reserved_once(self):
        run_state = RunState(max_items=10, detail_mode=True)

        assert await run_state.reserve_detail("https://x/p1")
        assert not await run_state.reserve_detail("https://x/p1")
        assert not await run_state.reserve_detail("")
        assert run_state.items_enqueued == 1

    async def test_enqueue_ceiling(self):
        run_state = RunState(max_items=2, detail_mode=True)

        results = [await run_state.reserve_detail(f"https://x/p{i}") for i in range(4)]

        assert results == [True, True, False, False]
        assert run_state.ceiling_reached
        # Detail mode is governed by enqueued tasks, not saved items
        assert run_state.items_saved == 0

    async def test_rerun_releases_reservations(self):
        run_state = RunState(max_items=2, detail_mode=True)
        await run_state.reserve_detail("https://x/p1")
        run_state.seen_identity_keys.add("id:P1")

        run_state.prepare_rerun()

        assert run_state.items_enqueued == 0
        assert await run_state.reserve_detail("https://x/p1")
        assert "id:P1" in run_state.seen_identity_keys

    async def test_saved_product_url_is_not_reserved(self):
        run_state = RunState(max_items=10, detail_mode=True)
        run_state.seen_identity_keys.update(["id:P1", "url:https://x/p1"])

        assert not await run_state.reserve_detail("https://x/p1")
        assert run_state.items_enqueued == 0
        assert await run_state.reserve_detail("https://x/p2")


class TestProxyCircuit:
    async def test_first_reason_wins(self):
        run_state = RunState(max_items=10)

        opened = await asyncio.gather(
            run_state.open_proxy_circuit("Proxy responded with 407"),
            run_state.open_proxy_circuit("UPSTREAM407"),
        )

        assert opened == [True, False]
        assert run_state.proxy_circuit_open
        assert run_state.proxy_reason == "Proxy responded with 407"

    def test_stop_request(self):
        run_state = RunState(max_items=10)
        assert not run_state.should_stop()
        run_state.request_stop()
        assert run_state.should_stop()
