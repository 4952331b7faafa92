"""Pytest configuration and fixtures."""
from datetime import datetime, time, timezone
from types import SimpleNamespace

import pytest

from app.core.config import SchedulingSettings
from app.services.scheduling.base import AppointmentRecord, BusinessCalendarConfig, DayHours
from app.services.scheduling.engine import SchedulingEngine
from app.services.scheduling.memory_store import InMemorySchedulingStore
from app.services.scheduling.time_resolver import to_absolute_instant

TZ = "America/New_York"

# Thursday 2026-10-22, 08:00 in New York (EDT)
NOW = datetime(2026, 10, 22, 12, 0, tzinfo=timezone.utc)

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday"]


def local(year, month, day, hour, minute=0, tz=TZ):
    """Absolute instant for a wall-clock time in ``tz``."""
    return to_absolute_instant(year, month, day, hour, minute, tz)


def weekday_config(business_id="biz", tz=TZ, interval=30, open_at=time(9, 0), close_at=time(17, 0)):
    """Mon-Fri opening hours, closed at the weekend."""
    hours = [DayHours(day=d, open=open_at, close=close_at) for d in WEEKDAYS]
    hours += [DayHours(day="saturday", is_closed=True), DayHours(day="sunday", is_closed=True)]
    return BusinessCalendarConfig.build(business_id, tz, hours, slot_interval_minutes=interval)


def booking(start, end, status="scheduled", staff_id=None, business_id="biz"):
    return AppointmentRecord(
        id=None,
        business_id=business_id,
        start_at=start,
        end_at=end,
        status=status,
        staff_id=staff_id,
    )


@pytest.fixture
def settings():
    """Settings with a short debounce so coalescing tests stay fast."""
    return SchedulingSettings(refresh_debounce_seconds=0.05)


@pytest.fixture
def seeded():
    """In-memory store with one Mon-Fri 9-5 business, a 60 minute service and two staff."""
    store = InMemorySchedulingStore()
    business = store.add_business("Test Salon", timezone=TZ, slot_interval_minutes=30)
    for day in WEEKDAYS:
        store.set_hours(business.id, day, time(9, 0), time(17, 0))
    store.set_hours(business.id, "saturday", None, None, closed=True)
    store.set_hours(business.id, "sunday", None, None, closed=True)

    haircut = store.add_service(business.id, "Haircut", duration_minutes=60)
    sarah = store.add_staff(business.id, "Sarah", "Lee", specialty="Senior Stylist")
    mike = store.add_staff(business.id, "Mike", "Chen", specialty="Barber")
    store.set_staff_hours(mike.id, "friday", off=True)
    store.set_staff_hours(mike.id, "wednesday", time(12, 0), time(16, 0))
    store.add_staff(business.id, "Former", "Employee", active=False)

    return SimpleNamespace(
        store=store,
        business_id=business.id,
        haircut=haircut,
        sarah=sarah,
        mike=mike,
    )


@pytest.fixture
def engine(seeded, settings):
    """Engine over the seeded store with the clock frozen at NOW."""
    return SchedulingEngine(seeded.store, settings=settings, now_provider=lambda: NOW)
