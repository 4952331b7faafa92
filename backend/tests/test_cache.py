"""
Tests for the per-business TTL cache and read-through fetchers.
"""

import asyncio
from datetime import date

import pytest

from app.core.config import SchedulingSettings
from app.services.scheduling.base import StoreUnavailableError
from app.services.scheduling.cache import (
    BusinessDataCache,
    CacheEntity,
    CachedBusinessData,
    local_day_window,
)
from app.services.scheduling.memory_store import InMemorySchedulingStore

from conftest import TZ, local


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return BusinessDataCache(default_ttl=300, appointments_ttl=120, clock=clock)


class TestBusinessDataCache:
    """Tests for BusinessDataCache."""

    def test_hit_within_ttl(self, cache, clock):
        cache.set(CacheEntity.SERVICES, "biz", ["haircut"])
        clock.advance(299)
        assert cache.get(CacheEntity.SERVICES, "biz") == ["haircut"]

    def test_miss_after_ttl(self, cache, clock):
        cache.set(CacheEntity.SERVICES, "biz", ["haircut"])
        clock.advance(300.5)
        assert cache.get(CacheEntity.SERVICES, "biz") is None
        assert cache.stats()["size"] == 0

    def test_appointments_expire_sooner(self, cache, clock):
        cache.set(CacheEntity.APPOINTMENTS, "biz", ["a"], qualifier="all")
        cache.set(CacheEntity.STAFF, "biz", ["sarah"])
        clock.advance(120.5)

        assert cache.get(CacheEntity.APPOINTMENTS, "biz", "all") is None
        assert cache.get(CacheEntity.STAFF, "biz") == ["sarah"]

    def test_none_is_not_cached(self, cache):
        cache.set(CacheEntity.BUSINESS, "biz", None)
        assert cache.stats()["size"] == 0

    def test_keys_are_exact(self, cache):
        """A business id that is a prefix of another never collides."""
        cache.set(CacheEntity.STAFF, "biz-1", ["a"])
        cache.set(CacheEntity.STAFF, "biz-10", ["b"])

        assert cache.invalidate("biz-1") == 1
        assert cache.get(CacheEntity.STAFF, "biz-10") == ["b"]

    def test_qualifiers_are_separate_entries(self, cache):
        cache.set(CacheEntity.STAFF_HOURS, "biz", ["x"], qualifier="staff:1")
        cache.set(CacheEntity.STAFF_HOURS, "biz", ["y"], qualifier="staff:2")
        assert cache.get(CacheEntity.STAFF_HOURS, "biz", "staff:1") == ["x"]
        assert cache.get(CacheEntity.STAFF_HOURS, "biz") is None

    def test_invalidate_one_type(self, cache):
        cache.set(CacheEntity.APPOINTMENTS, "biz", ["a"], qualifier="all")
        cache.set(CacheEntity.APPOINTMENTS, "biz", ["b"], qualifier="staff:1")
        cache.set(CacheEntity.SERVICES, "biz", ["s"])

        assert cache.invalidate("biz", CacheEntity.APPOINTMENTS) == 2
        assert cache.get(CacheEntity.SERVICES, "biz") == ["s"]

    def test_invalidate_everything_for_business(self, cache):
        cache.set(CacheEntity.SERVICES, "biz", ["s"])
        cache.set(CacheEntity.STAFF, "biz", ["t"])
        cache.set(CacheEntity.STAFF, "other", ["u"])

        assert cache.invalidate("biz") == 2
        assert cache.get(CacheEntity.STAFF, "other") == ["u"]

    def test_unknown_entity_type_rejected(self, cache):
        with pytest.raises(ValueError):
            cache.set("widgets", "biz", [1])

    def test_stats_and_clear(self, cache):
        cache.set(CacheEntity.SERVICES, "biz", ["s"])
        cache.set(CacheEntity.STAFF_HOURS, "biz", ["h"], qualifier="staff:1")

        assert cache.stats() == {"size": 2, "keys": ["services:biz", "staff_hours:biz:staff:1"]}
        cache.clear()
        assert cache.stats()["size"] == 0

    def test_from_settings(self):
        cache = BusinessDataCache.from_settings(
            SchedulingSettings(default_ttl_seconds=60, appointments_ttl_seconds=10)
        )
        assert cache.ttl_for(CacheEntity.HOURS) == 60
        assert cache.ttl_for(CacheEntity.APPOINTMENTS) == 10


class SlowStore(InMemorySchedulingStore):
    async def get_services(self, business_id):
        await asyncio.sleep(1)
        return await super().get_services(business_id)


class BrokenStore(InMemorySchedulingStore):
    async def get_staff(self, business_id):
        raise ConnectionError("database is down")


class TestCachedBusinessData:
    """Tests for the read-through fetchers."""

    @pytest.fixture
    def data(self, seeded, settings, cache):
        return CachedBusinessData(seeded.store, cache, settings)

    async def test_second_read_is_served_from_cache(self, data, seeded):
        first = await data.get_services(seeded.business_id)
        second = await data.get_services(seeded.business_id)

        assert first == second
        assert seeded.store.calls["get_services"] == 1

    async def test_calendar_config_built_from_cached_hours(self, data, seeded):
        business = await data.get_business(seeded.business_id)
        config = await data.get_calendar_config(business)
        await data.get_calendar_config(business)

        assert config.timezone == TZ
        assert config.slot_interval_minutes == 30
        assert set(config.hours) == {"monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"}
        assert seeded.store.calls["get_business_hours"] == 1

    async def test_missing_timezone_uses_default(self, settings, cache):
        store = InMemorySchedulingStore()
        business = store.add_business("No Zone", timezone=None)
        data = CachedBusinessData(store, cache, settings)

        config = await data.get_calendar_config(business)

        assert config.timezone == settings.default_timezone

    async def test_staff_schedule_cached_per_staff(self, data, seeded):
        mike = await data.get_staff_schedule(seeded.mike.id, seeded.business_id)
        sarah = await data.get_staff_schedule(seeded.sarah.id, seeded.business_id)
        await data.get_staff_schedule(seeded.mike.id, seeded.business_id)

        assert not mike.is_empty
        assert sarah.is_empty
        assert seeded.store.calls["get_staff_hours"] == 2

    async def test_appointments_expire_after_two_minutes(self, data, seeded, clock):
        await data.get_appointments(seeded.business_id, TZ, date(2026, 10, 23), 1)
        clock.advance(60)
        await data.get_appointments(seeded.business_id, TZ, date(2026, 10, 23), 1)
        assert seeded.store.calls["get_appointments"] == 1

        clock.advance(61)
        await data.get_appointments(seeded.business_id, TZ, date(2026, 10, 23), 1)
        assert seeded.store.calls["get_appointments"] == 2

    async def test_appointment_windows_cached_separately(self, data, seeded):
        await data.get_appointments(seeded.business_id, TZ, date(2026, 10, 23), 1)
        await data.get_appointments(seeded.business_id, TZ, date(2026, 10, 23), 14)
        await data.get_appointments(seeded.business_id, TZ, date(2026, 10, 23), 1, staff_id=seeded.sarah.id)
        assert seeded.store.calls["get_appointments"] == 3

    async def test_live_read_skips_cache(self, data, seeded):
        start, end = local_day_window(date(2026, 10, 23), 1, TZ)
        await data.fetch_live_appointments(seeded.business_id, start, end)
        await data.fetch_live_appointments(seeded.business_id, start, end)
        assert seeded.store.calls["get_appointments"] == 2

    async def test_prime_reloads_static_entities(self, data, seeded):
        await data.get_services(seeded.business_id)
        seeded.store.add_service(seeded.business_id, "Beard Trim", duration_minutes=20)

        await data.prime(seeded.business_id)

        names = [s.name for s in await data.get_services(seeded.business_id)]
        assert "Beard Trim" in names
        assert seeded.store.calls["get_services"] == 2

    async def test_timeout_raises_store_unavailable(self, cache):
        store = SlowStore()
        data = CachedBusinessData(store, cache, SchedulingSettings(store_timeout_seconds=0.01))

        with pytest.raises(StoreUnavailableError):
            await data.get_services("biz")

    async def test_store_error_raises_store_unavailable(self, cache, settings):
        data = CachedBusinessData(BrokenStore(), cache, settings)

        with pytest.raises(StoreUnavailableError):
            await data.get_staff("biz")
        assert cache.stats()["size"] == 0


class TestLocalDayWindow:
    def test_window_spans_local_midnights(self):
        start, end = local_day_window(date(2026, 10, 23), 1, TZ)
        assert start == local(2026, 10, 23, 0)
        assert end == local(2026, 10, 24, 0)

    def test_window_over_fall_back_is_25_hours(self):
        start, end = local_day_window(date(2026, 11, 1), 1, TZ)
        assert (end - start).total_seconds() == 25 * 3600
