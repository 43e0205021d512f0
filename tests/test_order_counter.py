"""
Tests for the per-restaurant, per-day order number allocator.
"""

import asyncio
from datetime import date

import pytest

from dineai.services.counters import OrderCounterAllocator


class TestOrderCounter:

    @pytest.mark.asyncio
    async def test_first_order_of_the_day_is_one(self, counters):
        assert await counters.next_order_id("R1", "2024-05-01") == 1
        assert await counters.next_order_id("R1", "2024-05-01") == 2

    @pytest.mark.asyncio
    async def test_counters_are_independent_per_restaurant(self, counters):
        assert await counters.next_order_id("R1", "2024-05-01") == 1
        assert await counters.next_order_id("R2", "2024-05-01") == 1
        assert await counters.next_order_id("R1", "2024-05-01") == 2

    @pytest.mark.asyncio
    async def test_counter_resets_on_a_new_day(self, counters):
        await counters.next_order_id("R1", date(2024, 5, 1))
        await counters.next_order_id("R1", date(2024, 5, 1))
        assert await counters.next_order_id("R1", date(2024, 5, 2)) == 1

    @pytest.mark.asyncio
    async def test_peek_does_not_allocate(self, counters):
        assert await counters.peek("R1", "2024-05-01") == 0
        await counters.next_order_id("R1", "2024-05-01")
        assert await counters.peek("R1", "2024-05-01") == 1
        assert await counters.peek("R1", "2024-05-01") == 1

    @pytest.mark.asyncio
    async def test_default_day_is_restaurant_local_today(self, counters, test_settings):
        await counters.next_order_id("R1")
        today = test_settings.local_today().isoformat()
        assert counters.day_key() == today
        assert await counters.peek("R1", today) == 1

    @pytest.mark.asyncio
    async def test_concurrent_allocations_are_unique_and_contiguous(
        self, session_factory, test_settings
    ):
        """Should hand out 1..N exactly once under concurrent callers."""
        allocators = [OrderCounterAllocator(session_factory, test_settings) for _ in range(4)]
        calls = [
            allocators[i % len(allocators)].next_order_id("R1", "2024-05-01")
            for i in range(20)
        ]

        issued = await asyncio.gather(*calls)

        assert sorted(issued) == list(range(1, 21))
        assert await allocators[0].peek("R1", "2024-05-01") == 20
