from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional

from app.services.scheduling.availability import NOON_MINUTES, EVENING_MINUTES, compute_day_slots
from app.services.scheduling.base import (
    AppointmentRecord,
    BusinessCalendarConfig,
    ResourceScheduleOverride,
)
from app.services.scheduling.time_resolver import (
    format_clock,
    format_display_date,
    next_monday,
    today_in_timezone,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_DAYS = 14
DEFAULT_TARGET_DAYS = 5


@dataclass
class PlannedDay:
    day: str
    date: date
    display_date: str
    slots: list[str]

    def to_dict(self) -> dict:
        return {"day": self.day, "date": self.display_date, "slots": self.slots}


@dataclass
class RangePlan:
    days: list[PlannedDay] = field(default_factory=list)
    days_examined: int = 0

    @property
    def available(self) -> bool:
        return bool(self.days)


def range_start_date(range_hint: str, today: date) -> date:
    """Upcoming Monday for "next week" requests, otherwise tomorrow."""
    if "next week" in (range_hint or "").lower():
        return next_monday(today)
    return today + timedelta(days=1)


def representative_slots(slot_times: list[time]) -> list[str]:
    """First morning slot and first 12:00-17:00 slot; the first two slots if neither exists."""
    picks: list[time] = []
    morning = next((t for t in slot_times if t.hour * 60 + t.minute < NOON_MINUTES), None)
    if morning is not None:
        picks.append(morning)
    afternoon = next(
        (t for t in slot_times if NOON_MINUTES <= t.hour * 60 + t.minute < EVENING_MINUTES),
        None,
    )
    if afternoon is not None:
        picks.append(afternoon)
    if not picks:
        picks = slot_times[:2]
    return [format_clock(t) for t in picks]


def plan_range(
    business_id: str,
    range_hint: str,
    duration_minutes: int,
    business_hours: BusinessCalendarConfig,
    existing_bookings: Iterable[AppointmentRecord],
    *,
    resource_hours: Optional[ResourceScheduleOverride] = None,
    timezone: Optional[str] = None,
    now: Optional[datetime] = None,
    max_days: int = DEFAULT_MAX_DAYS,
    target_days: int = DEFAULT_TARGET_DAYS,
) -> RangePlan:
    """Walk forward day by day collecting days with at least one open slot.

    Stops after ``target_days`` qualifying days or ``max_days`` examined.
    An empty plan means nothing was open in the window.
    """
    tz = timezone or business_hours.timezone
    bookings = list(existing_bookings)
    current = range_start_date(range_hint, today_in_timezone(tz, now))
    plan = RangePlan()

    while len(plan.days) < target_days and plan.days_examined < max_days:
        day_slots = compute_day_slots(
            business_id,
            current,
            duration_minutes,
            business_hours,
            bookings,
            resource_hours=resource_hours,
            timezone=tz,
            now=now,
        )
        if not day_slots.closed and day_slots.slots:
            plan.days.append(
                PlannedDay(
                    day=day_slots.day_name,
                    date=current,
                    display_date=format_display_date(current),
                    slots=representative_slots(day_slots.slot_times),
                )
            )
        current += timedelta(days=1)
        plan.days_examined += 1

    logger.info(
        f"Range plan for business {business_id} ({range_hint!r}): "
        f"{len(plan.days)} open days in {plan.days_examined} examined"
    )
    return plan
