from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, time, timezone
from enum import Enum
from typing import Any, Optional, Protocol, Union


WEEKDAY_NAMES = [
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
]

DEFAULT_SERVICE_DURATION_MINUTES = 30
DEFAULT_BOOKING_DURATION_MINUTES = 60
MAX_ESTIMATED_DURATION_MINUTES = 8 * 60
DEFAULT_SLOT_INTERVAL_MINUTES = 30


# ──────────────────────────────────────────────────────────────────────────────
# Day schedules
# ──────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class OpenHours:
    start: time
    end: time


@dataclass(frozen=True)
class ClosedDay:
    pass


@dataclass(frozen=True)
class UnspecifiedDay:
    pass


DaySchedule = Union[OpenHours, ClosedDay, UnspecifiedDay]

CLOSED = ClosedDay()
UNSPECIFIED = UnspecifiedDay()


def parse_clock(value: Optional[str]) -> Optional[time]:
    """Parse a stored "HH:MM" (or "HH:MM:SS") string, or None if unusable."""
    if not value:
        return None
    parts = str(value).strip().split(":")
    try:
        hour = int(parts[0])
        minute = int(parts[1]) if len(parts) > 1 else 0
        return time(hour, minute)
    except (ValueError, IndexError):
        return None


def weekday_name(index: int) -> str:
    return WEEKDAY_NAMES[index % 7]


@dataclass
class DayHours:
    """Business opening hours for one weekday."""

    day: str
    open: Optional[time] = None
    close: Optional[time] = None
    is_closed: bool = False

    def schedule(self) -> DaySchedule:
        if self.is_closed:
            return CLOSED
        if self.open is None and self.close is None:
            return CLOSED
        return OpenHours(self.open or time(9, 0), self.close or time(17, 0))


@dataclass
class StaffDayHours:
    """A staff member's hours for one weekday, or an explicit day off."""

    day: str
    start: Optional[time] = None
    end: Optional[time] = None
    is_off: bool = False

    def schedule(self) -> DaySchedule:
        if self.is_off:
            return CLOSED
        if self.start is None and self.end is None:
            return UNSPECIFIED
        return OpenHours(self.start or time(9, 0), self.end or time(17, 0))


@dataclass
class BusinessCalendarConfig:
    business_id: str
    timezone: str
    slot_interval_minutes: int = DEFAULT_SLOT_INTERVAL_MINUTES
    hours: dict[str, DayHours] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        business_id: str,
        timezone: str,
        hours: list[DayHours],
        slot_interval_minutes: Optional[int] = None,
    ) -> "BusinessCalendarConfig":
        by_day: dict[str, DayHours] = {}
        for entry in hours:
            # One record per weekday; later rows win.
            by_day[entry.day.lower()] = entry
        return cls(
            business_id=business_id,
            timezone=timezone,
            slot_interval_minutes=slot_interval_minutes or DEFAULT_SLOT_INTERVAL_MINUTES,
            hours=by_day,
        )

    @property
    def has_hours(self) -> bool:
        return bool(self.hours)

    def day_schedule(self, weekday: int) -> DaySchedule:
        """Total over weekdays; a missing record is reported as CLOSED."""
        entry = self.hours.get(weekday_name(weekday))
        if entry is None:
            return CLOSED
        return entry.schedule()


@dataclass
class ResourceScheduleOverride:
    staff_id: str
    business_id: str
    days: dict[str, StaffDayHours] = field(default_factory=dict)

    @classmethod
    def build(cls, staff_id: str, business_id: str, hours: list[StaffDayHours]) -> "ResourceScheduleOverride":
        return cls(
            staff_id=staff_id,
            business_id=business_id,
            days={entry.day.lower(): entry for entry in hours},
        )

    @property
    def is_empty(self) -> bool:
        return not self.days

    def day_schedule(self, weekday: int) -> DaySchedule:
        entry = self.days.get(weekday_name(weekday))
        if entry is None:
            return UNSPECIFIED
        return entry.schedule()


# ──────────────────────────────────────────────────────────────────────────────
# Records read from / written to the store
# ──────────────────────────────────────────────────────────────────────────────


@dataclass
class BusinessRecord:
    id: str
    name: str
    timezone: Optional[str] = None
    slot_interval_minutes: Optional[int] = None


@dataclass
class ServiceDefinition:
    id: str
    business_id: str
    name: str
    duration_minutes: Optional[int] = None
    active: bool = True
    price: Optional[float] = None
    description: Optional[str] = None

    @property
    def duration(self) -> int:
        return self.duration_minutes or DEFAULT_SERVICE_DURATION_MINUTES


@dataclass
class StaffMember:
    id: str
    business_id: str
    first_name: str
    last_name: str = ""
    specialty: Optional[str] = None
    active: bool = True

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def matches(self, name: str) -> bool:
        wanted = name.strip().lower()
        return wanted in {self.first_name.lower(), self.full_name.lower()}


class AppointmentStatus(str, Enum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


ALLOWED_TRANSITIONS: dict[AppointmentStatus, set[AppointmentStatus]] = {
    AppointmentStatus.SCHEDULED: {AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED},
    AppointmentStatus.CONFIRMED: {AppointmentStatus.CANCELLED},
    AppointmentStatus.CANCELLED: set(),
}


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes from storage as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class AppointmentRecord:
    id: Optional[str]
    business_id: str
    start_at: datetime
    end_at: datetime
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    staff_id: Optional[str] = None
    service_id: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    notes: Optional[str] = None

    def __post_init__(self):
        self.start_at = ensure_aware(self.start_at)
        self.end_at = ensure_aware(self.end_at)
        if not isinstance(self.status, AppointmentStatus):
            self.status = AppointmentStatus(str(self.status).lower())

    @property
    def is_active(self) -> bool:
        return self.status != AppointmentStatus.CANCELLED

    @property
    def duration_minutes(self) -> int:
        return int((self.end_at - self.start_at).total_seconds() // 60)

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return start < self.end_at and end > self.start_at


# ──────────────────────────────────────────────────────────────────────────────
# Errors and results
# ──────────────────────────────────────────────────────────────────────────────


class SchedulingError(Exception):
    """Base exception for the scheduling engine."""


class StoreUnavailableError(SchedulingError):
    """The persistent store failed or timed out."""


class InvalidTransitionError(SchedulingError):
    def __init__(self, current: AppointmentStatus, target: AppointmentStatus):
        super().__init__(f"Cannot move appointment from {current.value} to {target.value}")
        self.current = current
        self.target = target


def ensure_transition(current: AppointmentStatus, target: AppointmentStatus) -> None:
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(current, target)


class SchedulingErrorCode(str, Enum):
    CONFIGURATION_MISSING = "configuration_missing"
    PAST_DATE = "past_date"
    RESOURCE_NOT_FOUND = "resource_not_found"
    FULLY_BOOKED = "fully_booked"
    CLOSED = "closed"
    NO_AVAILABILITY = "no_availability"
    CONFLICT = "conflict"
    MISSING_INFORMATION = "missing_information"
    APPOINTMENT_NOT_FOUND = "appointment_not_found"
    INVALID_TRANSITION = "invalid_transition"
    BUSINESS_NOT_FOUND = "business_not_found"
    STORE_UNAVAILABLE = "store_unavailable"
    TOO_FAR_OUT = "too_far_out"


@dataclass
class EngineResult:
    """Typed outcome of a public engine operation.

    ``message`` is always something the agent can say next, including on
    failure paths.
    """

    success: bool
    message: str
    error: Optional[SchedulingErrorCode] = None
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, message: str, **data: Any) -> "EngineResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, error: SchedulingErrorCode, message: str, **data: Any) -> "EngineResult":
        return cls(success=False, message=message, error=error, data=data)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": self.success,
            "message": self.message,
            "error": self.error.value if self.error else None,
        }
        payload.update(self.data)
        return payload


# ──────────────────────────────────────────────────────────────────────────────
# Persistent store contract
# ──────────────────────────────────────────────────────────────────────────────


class SchedulingStore(Protocol):
    """Narrow read/write contract the engine needs from persistence."""

    async def get_business(self, business_id: str) -> Optional[BusinessRecord]:
        ...

    async def get_business_hours(self, business_id: str) -> list[DayHours]:
        ...

    async def get_services(self, business_id: str) -> list[ServiceDefinition]:
        ...

    async def get_staff(self, business_id: str) -> list[StaffMember]:
        ...

    async def get_staff_hours(self, staff_id: str) -> list[StaffDayHours]:
        ...

    async def get_appointments(
        self,
        business_id: str,
        *,
        staff_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[AppointmentRecord]:
        ...

    async def get_appointment(self, appointment_id: str) -> Optional[AppointmentRecord]:
        ...

    async def get_upcoming_appointment_by_phone(
        self, business_id: str, customer_phone: str, after: datetime
    ) -> Optional[AppointmentRecord]:
        ...

    async def create_appointment(self, record: AppointmentRecord) -> AppointmentRecord:
        ...

    async def update_appointment(
        self, appointment_id: str, changes: dict[str, Any]
    ) -> Optional[AppointmentRecord]:
        ...
