"""Tests for pruning date-partitioned usage and extension documents."""

from __future__ import annotations

from limiter.core.daily_reset import DailyReset
from limiter.storage import keys


class TestDailyReset:
    async def test_prunes_everything_but_today(self, store, clock):
        await store.set({
            keys.usage_key("2024-01-01"): {"s1": {"timeSpentSeconds": 30, "opens": 2}},
            keys.usage_key("2024-01-02"): {"s1": {"timeSpentSeconds": 10, "opens": 1}},
            keys.extensions_key("2023-12-31"): {"s1": {"extendedMinutes": 5}},
            keys.SITES: [],
        })
        removed = await DailyReset(store, clock=clock).perform()

        assert sorted(removed) == ["extensions-2023-12-31", "usageStats-2024-01-01"]
        assert await store.keys() == sorted([keys.SITES, "usageStats-2024-01-02"])

    async def test_second_run_removes_nothing(self, store, clock):
        await store.set({keys.usage_key("2024-01-01"): {}})
        reset = DailyReset(store, clock=clock)
        await reset.perform()
        assert await reset.perform() == []
        assert reset.last_run == clock()

    async def test_next_day_prunes_yesterday(self, store, usage, clock):
        await usage.add("2024-01-02", "s1", seconds=40)
        clock.advance(13 * 3600)
        await DailyReset(store, clock=clock).perform()
        assert await usage.get_day("2024-01-02") == {}

    def test_seconds_until_next_midnight(self, store, clock):
        reset = DailyReset(store, clock=clock)
        assert reset.seconds_until_next_midnight() == 12 * 3600
        clock.advance(12 * 3600 - 30)
        assert reset.seconds_until_next_midnight() == 30
