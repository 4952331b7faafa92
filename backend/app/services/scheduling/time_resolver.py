"""
Timezone-aware date/time resolution for spoken scheduling requests.

Everything here works in the business's IANA timezone, never the host's.
Parsing helpers never raise on malformed input: they fall back to a
documented default and log a warning so callers can tell a guess was used.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil import parser as date_parser

from app.core.config import FALLBACK_TIMEZONE
from app.services.scheduling.base import WEEKDAY_NAMES

logger = logging.getLogger(__name__)

DEFAULT_TIME = time(10, 0)

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_IN_DAYS = re.compile(r"in (\d+) days?")
_CLOCK_24H = re.compile(r"^(\d{1,2}):(\d{2})$")
_CLOCK_LOOSE = re.compile(r"(\d{1,2})(?::(\d{2}))?\s*(am|pm)?", re.IGNORECASE)
_NOON = re.compile(r"\bnoon\b")


# ──────────────────────────────────────────────────────────────────────────────
# Clock helpers
# ──────────────────────────────────────────────────────────────────────────────


def resolve_timezone(tz: Optional[str]) -> ZoneInfo:
    """Return a ZoneInfo for ``tz``, falling back to America/New_York."""
    try:
        return ZoneInfo(tz or FALLBACK_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError, TypeError):
        logger.warning(f"Invalid timezone {tz!r}, falling back to {FALLBACK_TIMEZONE}")
        return ZoneInfo(FALLBACK_TIMEZONE)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def now_in_timezone(tz: Optional[str], now: Optional[datetime] = None) -> datetime:
    """Current wall-clock time in ``tz`` as a naive datetime.

    ``now`` is an absolute instant (aware); it defaults to the real clock.
    """
    instant = now or utc_now()
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(resolve_timezone(tz)).replace(tzinfo=None)


def today_in_timezone(tz: Optional[str], now: Optional[datetime] = None) -> date:
    """Today's calendar date in ``tz``."""
    return now_in_timezone(tz, now).date()


def to_absolute_instant(
    year: int, month: int, day: int, hour: int, minute: int, tz: Optional[str]
) -> datetime:
    """Return the UTC instant at which the wall clock in ``tz`` reads the given time.

    The offset comes from the zone's rules for that date, so DST is
    honoured. The result is rendered back into ``tz`` and compared with
    the request. An ambiguous fall-back time resolves to its first
    occurrence. A wall time inside a spring-forward gap cannot round-trip;
    it is shifted forward by the gap length and logged.
    """
    zone = resolve_timezone(tz)
    local = datetime(year, month, day, hour, minute, tzinfo=zone)
    instant = local.astimezone(timezone.utc)

    rendered = instant.astimezone(zone)
    if (rendered.year, rendered.month, rendered.day, rendered.hour, rendered.minute) != (
        year,
        month,
        day,
        hour,
        minute,
    ):
        logger.warning(
            f"Local time {year:04d}-{month:02d}-{day:02d} {hour:02d}:{minute:02d} "
            f"does not exist in {zone.key}; using {rendered:%H:%M}"
        )
    return instant


def local_parts(instant: datetime, tz: Optional[str]) -> datetime:
    """Render an absolute instant as naive wall-clock time in ``tz``."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(resolve_timezone(tz)).replace(tzinfo=None)


# ──────────────────────────────────────────────────────────────────────────────
# Date expressions
# ──────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Today:
    pass


@dataclass(frozen=True)
class Tomorrow:
    pass


@dataclass(frozen=True)
class InNDays:
    days: int


@dataclass(frozen=True)
class NextWeek:
    pass


@dataclass(frozen=True)
class NamedWeekday:
    weekday: int  # Monday == 0
    relative: bool  # "next <day>"


@dataclass(frozen=True)
class EndOfWeek:
    pass


@dataclass(frozen=True)
class Literal:
    value: date


@dataclass(frozen=True)
class Unrecognized:
    text: str


DateExpression = Union[Today, Tomorrow, InNDays, NextWeek, NamedWeekday, EndOfWeek, Literal, Unrecognized]


def classify_date_expression(text: str, today: Optional[date] = None) -> DateExpression:
    """Classify a spoken date into one recognised form, in priority order.

    ``today`` only seeds the generic parser's missing fields (e.g. a bare
    "March 3rd" gets the current year).
    """
    raw = (text or "").strip()
    value = raw.lower()

    if _ISO_DATE.match(value):
        try:
            return Literal(date.fromisoformat(value))
        except ValueError:
            pass

    if value == "today":
        return Today()

    if value == "tomorrow":
        return Tomorrow()

    if "day after tomorrow" in value:
        return InNDays(2)

    in_days = _IN_DAYS.search(value)
    if in_days:
        return InNDays(int(in_days.group(1)))

    if value == "next week":
        return NextWeek()

    for index, name in enumerate(WEEKDAY_NAMES):
        if name in value:
            return NamedWeekday(index, relative="next" in value)

    if "end of" in value and "week" in value:
        return EndOfWeek()

    if value:
        default = datetime.combine(today or date(2000, 1, 1), time())
        try:
            return Literal(date_parser.parse(raw, default=default).date())
        except (ValueError, OverflowError):
            pass

    return Unrecognized(raw)


def interpret_date_expression(expression: DateExpression, today: date) -> Optional[date]:
    """Resolve a classified expression against ``today``; None if unrecognised or unrepresentable."""
    try:
        return _interpret(expression, today)
    except OverflowError:
        logger.warning(f"Date expression {expression!r} falls outside the calendar")
        return None


def _interpret(expression: DateExpression, today: date) -> Optional[date]:
    if isinstance(expression, Literal):
        return expression.value
    if isinstance(expression, Today):
        return today
    if isinstance(expression, Tomorrow):
        return today + timedelta(days=1)
    if isinstance(expression, InNDays):
        return today + timedelta(days=expression.days)
    if isinstance(expression, NextWeek):
        return next_monday(today)
    if isinstance(expression, NamedWeekday):
        delta = expression.weekday - today.weekday()
        if expression.relative or delta <= 0:
            delta += 7
        return today + timedelta(days=delta)
    if isinstance(expression, EndOfWeek):
        return today + timedelta(days=(4 - today.weekday()) % 7 or 7)
    return None


def next_monday(today: date) -> date:
    return today + timedelta(days=(7 - today.weekday()) or 7)


def parse_date_expression(text: str, tz: Optional[str], now: Optional[datetime] = None) -> date:
    """Resolve a spoken date to a calendar date in ``tz``.

    Unrecognised input degrades to today.
    """
    today = today_in_timezone(tz, now)
    expression = classify_date_expression(text, today)
    resolved = interpret_date_expression(expression, today)
    if resolved is None:
        logger.warning(f"Could not parse date {text!r}, defaulting to today ({today.isoformat()})")
        return today
    return resolved


def is_range_request(text: str) -> bool:
    value = (text or "").lower().strip()
    return (
        value == "next week"
        or value == "this week"
        or "any day" in value
        or "anytime" in value
        or "sometime" in value
    )


# ──────────────────────────────────────────────────────────────────────────────
# Time expressions
# ──────────────────────────────────────────────────────────────────────────────


def _safe_time(hour: int, minute: int, text: str) -> time:
    try:
        return time(hour, minute)
    except ValueError:
        logger.warning(f"Could not parse time {text!r}, defaulting to {DEFAULT_TIME:%H:%M}")
        return DEFAULT_TIME


def parse_time_expression(text: Union[str, time, None]) -> time:
    """Resolve a spoken time of day ("2pm", "14:30", "afternoon").

    A bare hour from 1 to 7 without am/pm is read as afternoon, since
    that is when businesses are open. Unparseable input gives 10:00.
    """
    if isinstance(text, time):
        return text
    value = (text or "").lower().strip()

    clock = _CLOCK_24H.match(value)
    if clock:
        return _safe_time(int(clock.group(1)), int(clock.group(2)), value)

    loose = _CLOCK_LOOSE.search(value)
    if loose:
        hour = int(loose.group(1))
        minute = int(loose.group(2) or 0)
        meridiem = (loose.group(3) or "").lower()
        if meridiem == "pm" and hour < 12:
            hour += 12
        if meridiem == "am" and hour == 12:
            hour = 0
        if not meridiem and 1 <= hour <= 7:
            hour += 12
        return _safe_time(hour, minute, value)

    if "morning" in value or "first thing" in value:
        return time(9, 0)
    if "afternoon" in value:
        return time(14, 0)
    if _NOON.search(value) or "lunch" in value:
        return time(12, 0)
    if "evening" in value or "end of day" in value:
        return time(16, 0)

    logger.warning(f"Could not parse time {text!r}, defaulting to {DEFAULT_TIME:%H:%M}")
    return DEFAULT_TIME


# ──────────────────────────────────────────────────────────────────────────────
# Display formatting
# ──────────────────────────────────────────────────────────────────────────────


def format_minutes(minutes: int) -> str:
    """Format minutes-from-midnight as a 12-hour clock, e.g. 570 -> "9:30 AM"."""
    hour, minute = divmod(minutes, 60)
    hour12 = 12 if hour % 12 == 0 else hour % 12
    meridiem = "AM" if hour < 12 else "PM"
    return f"{hour12}:{minute:02d} {meridiem}"


def format_clock(value: time) -> str:
    return format_minutes(value.hour * 60 + value.minute)


def format_display_date(value: date) -> str:
    """e.g. "Friday, October 23"."""
    return f"{value:%A}, {value:%B} {value.day}"


def format_instant_time(instant: datetime, tz: Optional[str]) -> str:
    local = local_parts(instant, tz)
    return format_minutes(local.hour * 60 + local.minute)


def format_instant_date(instant: datetime, tz: Optional[str]) -> str:
    return format_display_date(local_parts(instant, tz).date())
