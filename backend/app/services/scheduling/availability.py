"""
Per-day slot computation.

Pure and synchronous: given hours, bookings and a duration, returns the
bookable start times for one local calendar day. The only dependence on
the wall clock is dropping slots that have already started today.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional

from app.services.scheduling.base import (
    AppointmentRecord,
    BusinessCalendarConfig,
    ClosedDay,
    OpenHours,
    ResourceScheduleOverride,
    weekday_name,
)
from app.services.scheduling.time_resolver import (
    format_minutes,
    local_parts,
    now_in_timezone,
)

logger = logging.getLogger(__name__)

NOON_MINUTES = 12 * 60
EVENING_MINUTES = 17 * 60


@dataclass
class DaySlots:
    day: date
    day_name: str
    slots: list[str] = field(default_factory=list)
    slot_times: list[time] = field(default_factory=list)
    closed: bool = False

    @property
    def fully_booked(self) -> bool:
        return not self.closed and not self.slots


def _minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def effective_hours(
    day: date,
    config: BusinessCalendarConfig,
    override: Optional[ResourceScheduleOverride] = None,
) -> Optional[OpenHours]:
    """Open hours that govern ``day``, or None when the day is closed.

    A resource day marked off closes the day outright. Explicit resource
    hours win over the business's. Anything else falls back to the
    business calendar, where a missing weekday counts as closed.
    """
    weekday = day.weekday()
    if override is not None:
        resource_day = override.day_schedule(weekday)
        if isinstance(resource_day, ClosedDay):
            return None
        if isinstance(resource_day, OpenHours):
            return resource_day

    business_day = config.day_schedule(weekday)
    if isinstance(business_day, OpenHours):
        return business_day
    return None


def booked_intervals(
    bookings: Iterable[AppointmentRecord],
    day: date,
    duration_minutes: int,
    tz: str,
) -> list[tuple[int, int]]:
    """[start, end) minute ranges of the day's non-cancelled bookings, in local time."""
    intervals = []
    for booking in bookings:
        if not booking.is_active:
            continue
        local_start = local_parts(booking.start_at, tz)
        if local_start.date() != day:
            continue
        start = _minutes(local_start.time())
        local_end = local_parts(booking.end_at, tz)
        end = _minutes(local_end.time())
        if end <= start or end == 0:
            # Bad stored end time; assume the requested duration.
            end = start + duration_minutes
        intervals.append((start, end))
    return intervals


def compute_day_slots(
    business_id: str,
    day: date,
    duration_minutes: int,
    business_hours: BusinessCalendarConfig,
    existing_bookings: Iterable[AppointmentRecord],
    *,
    resource_hours: Optional[ResourceScheduleOverride] = None,
    slot_interval_minutes: Optional[int] = None,
    timezone: Optional[str] = None,
    now: Optional[datetime] = None,
) -> DaySlots:
    """Bookable start times on ``day`` for an appointment of ``duration_minutes``.

    A candidate survives when it ends by closing time, is still in the
    future if ``day`` is today, and does not overlap a booking. Results
    are chronological.
    """
    tz = timezone or business_hours.timezone
    interval = slot_interval_minutes or business_hours.slot_interval_minutes
    result = DaySlots(day=day, day_name=weekday_name(day.weekday()).capitalize())

    hours = effective_hours(day, business_hours, resource_hours)
    if hours is None:
        result.closed = True
        return result

    open_minute = _minutes(hours.start)
    close_minute = _minutes(hours.end)
    busy = booked_intervals(existing_bookings, day, duration_minutes, tz)

    local_now = now_in_timezone(tz, now)
    is_today = local_now.date() == day
    now_minute = local_now.hour * 60 + local_now.minute

    for start in range(open_minute, close_minute, interval):
        end = start + duration_minutes
        if end > close_minute:
            continue
        if is_today and start <= now_minute:
            continue
        if any(start < booked_end and end > booked_start for booked_start, booked_end in busy):
            continue
        result.slot_times.append(time(start // 60, start % 60))
        result.slots.append(format_minutes(start))

    logger.debug(
        f"Business {business_id} {day.isoformat()}: {len(result.slots)} slots "
        f"({hours.start:%H:%M}-{hours.end:%H:%M}, {len(busy)} booked, {duration_minutes}min)"
    )
    return result


def next_open_day(
    day: date,
    config: BusinessCalendarConfig,
    override: Optional[ResourceScheduleOverride] = None,
    days_ahead: int = 7,
) -> Optional[date]:
    """First day after ``day`` (within ``days_ahead``) that is not closed."""
    for offset in range(1, days_ahead + 1):
        candidate = day + timedelta(days=offset)
        if effective_hours(candidate, config, override) is not None:
            return candidate
    return None


def summarize_slots(slot_times: list[time]) -> str:
    """Spoken overview, e.g. "morning starting at 9:00 AM or afternoon starting at 1:00 PM"."""
    firsts: dict[str, time] = {}
    for value in slot_times:
        minute = _minutes(value)
        if minute < NOON_MINUTES:
            bucket = "morning"
        elif minute < EVENING_MINUTES:
            bucket = "afternoon"
        else:
            bucket = "evening"
        firsts.setdefault(bucket, value)

    parts = [
        f"{name} starting at {format_minutes(_minutes(firsts[name]))}"
        for name in ("morning", "afternoon", "evening")
        if name in firsts
    ]
    if not parts:
        return ""
    if len(parts) == 1:
        return parts[0]
    if len(parts) == 2:
        return f"{parts[0]} or {parts[1]}"
    return f"{', '.join(parts[:-1])}, or {parts[-1]}"
