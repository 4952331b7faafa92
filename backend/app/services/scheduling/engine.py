"""
Public entry points of the scheduling engine.

Every operation returns an ``EngineResult`` whose ``message`` is something
the phone agent can say next. Store failures surface here, and only here,
as a ``store_unavailable`` result with a take-a-message fallback.
"""

from __future__ import annotations

import functools
import logging
from datetime import date, datetime, time, timedelta
from typing import Any, Awaitable, Callable, Optional

from app.core.config import SchedulingSettings, get_scheduling_settings
from app.services.scheduling.availability import compute_day_slots, next_open_day, summarize_slots
from app.services.scheduling.base import (
    DEFAULT_SERVICE_DURATION_MINUTES,
    WEEKDAY_NAMES,
    AppointmentRecord,
    AppointmentStatus,
    BusinessRecord,
    ClosedDay,
    EngineResult,
    InvalidTransitionError,
    OpenHours,
    ResourceScheduleOverride,
    SchedulingErrorCode,
    ServiceDefinition,
    StaffMember,
    StoreUnavailableError,
)
from app.services.scheduling.booking_guard import BookingConflictGuard
from app.services.scheduling.cache import BusinessDataCache, CachedBusinessData
from app.services.scheduling.coalescer import UpdateCoalescer
from app.services.scheduling.range_planner import plan_range, range_start_date
from app.services.scheduling.time_resolver import (
    format_display_date,
    format_instant_date,
    format_instant_time,
    is_range_request,
    now_in_timezone,
    parse_date_expression,
    resolve_timezone,
    today_in_timezone,
    utc_now,
)

logger = logging.getLogger(__name__)

TECHNICAL_DIFFICULTY_MESSAGE = (
    "I'm having a little technical difficulty pulling up the schedule right now. "
    "Can I take a message and have someone call you back?"
)
NO_HOURS_MESSAGE = (
    "I don't have our current schedule in the system yet. Let me take your information "
    "and have someone call you back to schedule an appointment. What's a good number to reach you?"
)


def store_guarded(operation: Callable[..., Awaitable[EngineResult]]):
    """Turn StoreUnavailableError into a store_unavailable result."""

    @functools.wraps(operation)
    async def wrapper(*args, **kwargs) -> EngineResult:
        try:
            return await operation(*args, **kwargs)
        except StoreUnavailableError as exc:
            logger.error(f"{operation.__name__} degraded: {exc}")
            return EngineResult.fail(SchedulingErrorCode.STORE_UNAVAILABLE, TECHNICAL_DIFFICULTY_MESSAGE)

    return wrapper


def format_hours_label(value: time) -> str:
    """Short clock label such as "9 AM" or "5:30 PM"."""
    hour12 = 12 if value.hour % 12 == 0 else value.hour % 12
    meridiem = "AM" if value.hour < 12 else "PM"
    if value.minute:
        return f"{hour12}:{value.minute:02d} {meridiem}"
    return f"{hour12} {meridiem}"


def roster_payload(staff: list[StaffMember]) -> list[dict[str, Any]]:
    return [{"id": s.id, "name": s.full_name, "specialty": s.specialty} for s in staff]


def resolve_service(
    services: list[ServiceDefinition],
    service_id: Optional[str] = None,
    service_name: Optional[str] = None,
) -> Optional[ServiceDefinition]:
    """Service by id (must belong to the business), else first name containing ``service_name``."""
    if service_id:
        for service in services:
            if str(service.id) == str(service_id):
                return service
        logger.warning(f"Service {service_id} is not offered by this business, ignoring it")
    if service_name:
        wanted = service_name.strip().lower()
        for service in services:
            if wanted and wanted in service.name.lower():
                return service
        logger.warning(f"Could not find service matching {service_name!r}")
    return None


def availability_duration(services: list[ServiceDefinition], service_id: Optional[str] = None) -> int:
    """Duration used to size open slots.

    With no service chosen, the shortest configured service is used so
    every slot that could fit some service is shown.
    """
    service = resolve_service(services, service_id) if service_id else None
    if service is not None:
        return service.duration
    if services:
        return min(s.duration for s in services)
    return DEFAULT_SERVICE_DURATION_MINUTES


class SchedulingEngine:
    """Availability and booking operations for the phone agent.

    Construct once per process and share; the cache, coalescer and booking
    locks it owns are process-wide state.
    """

    def __init__(
        self,
        store,
        cache: Optional[BusinessDataCache] = None,
        coalescer: Optional[UpdateCoalescer] = None,
        settings: Optional[SchedulingSettings] = None,
        now_provider: Optional[Callable[[], datetime]] = None,
    ):
        self.settings = settings or get_scheduling_settings()
        self.cache = cache or BusinessDataCache.from_settings(self.settings)
        self.data = CachedBusinessData(store, self.cache, self.settings)
        self.guard = BookingConflictGuard(self.data)
        self.coalescer = coalescer or UpdateCoalescer(
            self.refresh_business, delay_seconds=self.settings.refresh_debounce_seconds
        )
        self._now = now_provider or utc_now
        self._config_listeners: list[Callable[[str], Awaitable[None]]] = []

    # ──────────────────────────────────────────────────────────────────────────
    # Shared lookups
    # ──────────────────────────────────────────────────────────────────────────

    def _timezone(self, business: BusinessRecord) -> str:
        return resolve_timezone(business.timezone or self.settings.default_timezone).key

    async def _business(self, business_id: str) -> tuple[Optional[BusinessRecord], Optional[EngineResult]]:
        business = await self.data.get_business(business_id)
        if business is None:
            logger.warning(f"Business {business_id} not found")
            return None, EngineResult.fail(
                SchedulingErrorCode.BUSINESS_NOT_FOUND,
                "I'm having trouble finding this business's schedule. Can I take a message instead?",
            )
        return business, None

    async def _resolve_staff(
        self,
        business_id: str,
        staff_id: Optional[str],
        staff_name: Optional[str],
    ) -> tuple[Optional[StaffMember], Optional[EngineResult]]:
        if not staff_id and not staff_name:
            return None, None

        roster = await self.data.get_staff(business_id)
        active = [s for s in roster if s.active]
        if staff_id:
            match = next((s for s in roster if str(s.id) == str(staff_id)), None)
        else:
            match = next((s for s in active if s.matches(staff_name)), None)
        if match is not None:
            return match, None

        wanted = staff_name or staff_id
        names = ", ".join(s.full_name for s in active)
        message = f"I couldn't find a team member named {wanted}."
        if names:
            message += f" Our team includes {names}. Who would you like to book with?"
        else:
            message += " Would you like me to book with whoever is available?"
        return None, EngineResult.fail(
            SchedulingErrorCode.RESOURCE_NOT_FOUND,
            message,
            available_staff=roster_payload(active),
        )

    async def _staff_override(self, staff: Optional[StaffMember], business_id: str) -> Optional[ResourceScheduleOverride]:
        if staff is None:
            return None
        override = await self.data.get_staff_schedule(staff.id, business_id)
        return None if override.is_empty else override

    def _beyond_horizon(self, day: date, today: date) -> Optional[EngineResult]:
        horizon = self.settings.booking_horizon_days
        latest = today + timedelta(days=horizon)
        if day <= latest:
            return None
        logger.info(f"Requested date {day.isoformat()} is past the {horizon}-day booking horizon")
        return EngineResult.fail(
            SchedulingErrorCode.TOO_FAR_OUT,
            f"I can only schedule up to {horizon} days ahead. Would a nearer date work for you?",
            available=False,
            latest_date=format_display_date(latest),
        )

    async def _find_appointment(
        self,
        business_id: str,
        appointment_id: Optional[str],
        caller_phone: Optional[str],
    ) -> Optional[AppointmentRecord]:
        if appointment_id:
            appointment = await self.data.call_store(
                "fetching appointment", lambda: self.data.store.get_appointment(appointment_id)
            )
            if appointment is not None and str(appointment.business_id) == str(business_id):
                return appointment
            return None
        if caller_phone:
            return await self.data.call_store(
                "looking up caller's appointment",
                lambda: self.data.store.get_upcoming_appointment_by_phone(business_id, caller_phone, self._now()),
            )
        return None

    # ──────────────────────────────────────────────────────────────────────────
    # Availability
    # ──────────────────────────────────────────────────────────────────────────

    @store_guarded
    async def check_availability(
        self,
        business_id: str,
        date_text: str,
        service_id: Optional[str] = None,
        staff_id: Optional[str] = None,
        staff_name: Optional[str] = None,
    ) -> EngineResult:
        """Open slots for one day, or a multi-day summary for range phrases like "next week"."""
        business, failure = await self._business(business_id)
        if failure:
            return failure
        tz = self._timezone(business)

        staff, failure = await self._resolve_staff(business_id, staff_id, staff_name)
        if failure:
            return failure
        staff_label = staff.first_name if staff else None

        services = await self.data.get_services(business_id)
        duration = availability_duration(services, service_id)

        config = await self.data.get_calendar_config(business)
        if not config.has_hours:
            logger.info(f"No business hours configured for {business_id}, offering callback")
            return EngineResult.fail(SchedulingErrorCode.CONFIGURATION_MISSING, NO_HOURS_MESSAGE, available=False)

        override = await self._staff_override(staff, business_id)
        now = self._now()
        today = today_in_timezone(tz, now)
        staff_fields = {"staff_id": staff.id if staff else None, "staff_name": staff_label}

        if is_range_request(date_text):
            start = range_start_date(date_text, today)
            bookings = await self.data.get_appointments(
                business_id, tz, start, days_ahead=self.settings.range_max_days, staff_id=staff.id if staff else None
            )
            plan = plan_range(
                business_id,
                date_text,
                duration,
                config,
                bookings,
                resource_hours=override,
                timezone=tz,
                now=now,
                max_days=self.settings.range_max_days,
                target_days=self.settings.range_target_days,
            )
            if not plan.available:
                message = (
                    f"I'm sorry, {staff_label} doesn't have any availability in the next two weeks. "
                    "Would you like to check further out, or try a different team member?"
                    if staff_label
                    else "I'm sorry, we don't have any availability in the next two weeks. "
                    "Would you like me to check further out, or would you prefer to leave your number for a callback?"
                )
                return EngineResult.fail(SchedulingErrorCode.NO_AVAILABILITY, message, available=False, **staff_fields)

            first = plan.days[0]
            days_list = ", ".join(d.day for d in plan.days)
            subject = f"{staff_label} has" if staff_label else "We have"
            message = (
                f"{subject} availability on {days_list}. The soonest opening is "
                f"{first.display_date} at {first.slots[0]}. Would that work for you?"
            )
            return EngineResult.ok(
                message,
                available=True,
                is_multiple_days=True,
                available_days=[d.to_dict() for d in plan.days],
                suggestion={"date": first.display_date, "time": first.slots[0]},
                **staff_fields,
            )

        day = parse_date_expression(date_text, tz, now)
        if day < today:
            return EngineResult.fail(
                SchedulingErrorCode.PAST_DATE,
                "That date has already passed. Would you like to check a future date?",
                available=False,
            )
        too_far = self._beyond_horizon(day, today)
        if too_far:
            return too_far

        bookings = await self.data.get_appointments(
            business_id, tz, day, days_ahead=1, staff_id=staff.id if staff else None
        )
        result = compute_day_slots(
            business_id,
            day,
            duration,
            config,
            bookings,
            resource_hours=override,
            timezone=tz,
            now=now,
        )
        display_date = format_display_date(day)

        if result.closed:
            suggestion = next_open_day(day, config, override)
            suggested_day = WEEKDAY_NAMES[suggestion.weekday()].capitalize() if suggestion else None
            who = f"{staff_label} doesn't work" if staff_label else "We're closed"
            message = f"{who} on {result.day_name}s."
            if suggested_day:
                message += f" Would {suggested_day} work for you instead?"
            else:
                message += " Can I take your number and have someone call you back?"
            return EngineResult.fail(
                SchedulingErrorCode.CLOSED,
                message,
                available=False,
                is_closed=True,
                date=display_date,
                suggested_day=suggested_day,
                **staff_fields,
            )

        if result.fully_booked:
            message = (
                f"{staff_label} is fully booked on {display_date}. Would you like to check a different day, "
                "or would another team member work for you?"
                if staff_label
                else f"We're fully booked on {display_date}. Would you like to check a different day?"
            )
            return EngineResult.fail(
                SchedulingErrorCode.FULLY_BOOKED, message, available=False, date=display_date, **staff_fields
            )

        subject = f"{staff_label} has" if staff_label else "We have"
        message = (
            f"{subject} openings on {display_date} in the {summarize_slots(result.slot_times)}. "
            "What time works best for you?"
        )
        return EngineResult.ok(
            message,
            available=True,
            date=display_date,
            iso_date=day.isoformat(),
            available_slots=result.slots,
            total_available=len(result.slots),
            duration_minutes=duration,
            **staff_fields,
        )

    # ──────────────────────────────────────────────────────────────────────────
    # Booking lifecycle
    # ──────────────────────────────────────────────────────────────────────────

    @store_guarded
    async def book_appointment(
        self,
        business_id: str,
        date_text: str,
        time_text: str,
        *,
        service_id: Optional[str] = None,
        service_name: Optional[str] = None,
        staff_id: Optional[str] = None,
        staff_name: Optional[str] = None,
        estimated_duration_minutes: Optional[int] = None,
        customer_name: Optional[str] = None,
        customer_phone: Optional[str] = None,
        customer_email: Optional[str] = None,
        notes: Optional[str] = None,
        caller_phone: Optional[str] = None,
    ) -> EngineResult:
        business, failure = await self._business(business_id)
        if failure:
            return failure
        tz = self._timezone(business)

        phone = customer_phone or caller_phone
        if not phone:
            return EngineResult.fail(
                SchedulingErrorCode.MISSING_INFORMATION,
                "Before I book that, what's the best phone number to reach you?",
                missing=["customer_phone"],
            )

        staff, failure = await self._resolve_staff(business_id, staff_id, staff_name)
        if failure:
            return failure

        now = self._now()
        day = parse_date_expression(date_text, tz, now)
        too_far = self._beyond_horizon(day, today_in_timezone(tz, now))
        if too_far:
            return too_far

        services = await self.data.get_services(business_id)
        service = resolve_service(services, service_id, service_name)

        commit = await self.guard.commit_booking(
            business_id,
            day,
            time_text,
            tz,
            staff_id=staff.id if staff else None,
            service=service,
            estimated_duration_minutes=estimated_duration_minutes,
            customer_name=customer_name,
            customer_phone=phone,
            customer_email=customer_email,
            notes=notes,
            now=now,
        )

        staff_label = staff.first_name if staff else None
        date_label = format_instant_date(commit.start_at, tz)
        time_label = format_instant_time(commit.start_at, tz)

        if commit.in_past:
            return EngineResult.fail(
                SchedulingErrorCode.PAST_DATE,
                f"{date_label} at {time_label} has already passed. What other day or time would work for you?",
            )

        if not commit.committed:
            who = f"{staff_label} is" if staff_label else "that time slot is"
            return EngineResult.fail(
                SchedulingErrorCode.CONFLICT,
                f"I'm sorry, {who} already booked at {commit.conflict_at}. Would you like to try a different time?",
                committed=False,
                conflict_at=commit.conflict_at,
            )

        with_staff = f" with {staff_label}" if staff_label else ""
        return EngineResult.ok(
            f"Your appointment{with_staff} has been booked for {date_label} at {time_label}.",
            committed=True,
            appointment_id=commit.appointment_id,
            date=date_label,
            time=time_label,
            start_at=commit.start_at.isoformat(),
            end_at=commit.end_at.isoformat(),
            staff_id=staff.id if staff else None,
            staff_name=staff_label,
            service=service.name if service else (service_name or "General appointment"),
        )

    @store_guarded
    async def reschedule_appointment(
        self,
        business_id: str,
        new_date: str,
        new_time: str,
        *,
        appointment_id: Optional[str] = None,
        reason: Optional[str] = None,
        caller_phone: Optional[str] = None,
    ) -> EngineResult:
        business, failure = await self._business(business_id)
        if failure:
            return failure
        tz = self._timezone(business)

        appointment = await self._find_appointment(business_id, appointment_id, caller_phone)
        if appointment is None:
            return EngineResult.fail(
                SchedulingErrorCode.APPOINTMENT_NOT_FOUND,
                "I couldn't find your upcoming appointment. Can you give me a few more details?",
            )

        now = self._now()
        day = parse_date_expression(new_date, tz, now)
        too_far = self._beyond_horizon(day, today_in_timezone(tz, now))
        if too_far:
            return too_far

        old_date = format_instant_date(appointment.start_at, tz)
        try:
            commit = await self.guard.reschedule(appointment, day, new_time, tz, reason=reason, now=now)
        except InvalidTransitionError:
            return EngineResult.fail(
                SchedulingErrorCode.INVALID_TRANSITION,
                "That appointment was cancelled, so I can't move it. Would you like to book a new one?",
            )

        date_label = format_instant_date(commit.start_at, tz)
        time_label = format_instant_time(commit.start_at, tz)
        if commit.in_past:
            return EngineResult.fail(
                SchedulingErrorCode.PAST_DATE,
                f"{date_label} at {time_label} has already passed. What other day or time would work for you?",
            )
        if not commit.committed:
            return EngineResult.fail(
                SchedulingErrorCode.CONFLICT,
                f"I'm sorry, that time is already booked at {commit.conflict_at}. Would you like to try a different time?",
                committed=False,
                conflict_at=commit.conflict_at,
            )

        return EngineResult.ok(
            f"Your appointment has been rescheduled from {old_date} to {date_label} at {time_label}.",
            appointment_id=appointment.id,
            new_date=date_label,
            new_time=time_label,
        )

    @store_guarded
    async def cancel_appointment(
        self,
        business_id: str,
        *,
        appointment_id: Optional[str] = None,
        reason: Optional[str] = None,
        caller_phone: Optional[str] = None,
    ) -> EngineResult:
        business, failure = await self._business(business_id)
        if failure:
            return failure
        tz = self._timezone(business)

        appointment = await self._find_appointment(business_id, appointment_id, caller_phone)
        if appointment is None:
            return EngineResult.fail(
                SchedulingErrorCode.APPOINTMENT_NOT_FOUND,
                "I couldn't find your upcoming appointment. Do you have an appointment scheduled with us?",
            )

        date_label = format_instant_date(appointment.start_at, tz)
        time_label = format_instant_time(appointment.start_at, tz)
        try:
            await self.guard.transition(
                appointment,
                AppointmentStatus.CANCELLED,
                note=f"[Cancelled via phone{': ' + reason if reason else ''}]",
            )
        except InvalidTransitionError:
            return EngineResult.fail(
                SchedulingErrorCode.INVALID_TRANSITION,
                f"Your appointment for {date_label} at {time_label} is already cancelled. "
                "Would you like to book a new one?",
            )

        return EngineResult.ok(
            f"Your appointment for {date_label} at {time_label} has been cancelled. "
            "Would you like to reschedule for another time?",
            appointment_id=appointment.id,
            cancelled_date=date_label,
            cancelled_time=time_label,
        )

    @store_guarded
    async def confirm_appointment(
        self,
        business_id: str,
        *,
        appointment_id: Optional[str] = None,
        confirmed: bool = True,
        caller_phone: Optional[str] = None,
    ) -> EngineResult:
        business, failure = await self._business(business_id)
        if failure:
            return failure
        tz = self._timezone(business)

        appointment = await self._find_appointment(business_id, appointment_id, caller_phone)
        if appointment is None:
            return EngineResult.fail(
                SchedulingErrorCode.APPOINTMENT_NOT_FOUND,
                "I couldn't find an upcoming appointment to confirm. Would you like to schedule one?",
            )

        date_label = format_instant_date(appointment.start_at, tz)
        time_label = format_instant_time(appointment.start_at, tz)

        if not confirmed:
            return EngineResult.ok(
                f"No problem. Your current appointment is {date_label} at {time_label}. "
                "What day would work better for you?",
                confirmed=False,
                appointment_id=appointment.id,
                current_date=date_label,
                current_time=time_label,
            )

        today = today_in_timezone(tz, self._now())
        try:
            await self.guard.transition(
                appointment,
                AppointmentStatus.CONFIRMED,
                note=f"[Confirmed via phone on {today.isoformat()}]",
            )
        except InvalidTransitionError as exc:
            return EngineResult.fail(
                SchedulingErrorCode.INVALID_TRANSITION,
                f"That appointment is already {exc.current.value}. Is there anything else I can help with?",
            )

        return EngineResult.ok(
            f"Your appointment for {date_label} at {time_label} is confirmed. We'll see you then!",
            confirmed=True,
            appointment_id=appointment.id,
            date=date_label,
            time=time_label,
        )

    # ──────────────────────────────────────────────────────────────────────────
    # Services and team
    # ──────────────────────────────────────────────────────────────────────────

    @store_guarded
    async def get_services(self, business_id: str) -> EngineResult:
        """Active services with duration and price, plus a short spoken list."""
        business, failure = await self._business(business_id)
        if failure:
            return failure

        services = [s for s in await self.data.get_services(business_id) if s.active]
        if not services:
            return EngineResult.ok(
                "We offer a variety of services. I can book a general appointment and "
                "our team will take care of the details. Would you like to do that?",
                services=[],
                count=0,
            )

        names = [s.name for s in services]
        spoken = ", ".join(names[:3])
        if len(names) > 3:
            spoken += f", and {len(names) - 3} more"
        return EngineResult.ok(
            f"We offer {spoken}. Which service are you interested in?",
            services=[
                {
                    "id": s.id,
                    "name": s.name,
                    "duration": s.duration,
                    "price": s.price,
                    "description": s.description,
                }
                for s in services
            ],
            count=len(services),
        )

    @store_guarded
    async def get_staff_members(self, business_id: str) -> EngineResult:
        business, failure = await self._business(business_id)
        if failure:
            return failure

        active = [s for s in await self.data.get_staff(business_id) if s.active]
        if not active:
            return EngineResult.ok(
                "Any of our team members can help you. Would you like me to book with whoever is available?",
                staff=[],
                count=0,
            )
        names = ", ".join(s.full_name for s in active)
        return EngineResult.ok(
            f"Our team includes {names}. Do you have a preference?",
            staff=roster_payload(active),
            count=len(active),
        )

    @store_guarded
    async def get_staff_schedule(
        self,
        business_id: str,
        staff_name: Optional[str] = None,
        staff_id: Optional[str] = None,
    ) -> EngineResult:
        """Which days a team member works, falling back to business hours when they have none of their own."""
        business, failure = await self._business(business_id)
        if failure:
            return failure

        if not staff_id and not (staff_name or "").strip():
            return EngineResult.fail(
                SchedulingErrorCode.MISSING_INFORMATION,
                "Which team member would you like to know about?",
                missing=["staff_name"],
            )

        staff, failure = await self._resolve_staff(business_id, staff_id, staff_name)
        if failure:
            return failure

        name = staff.first_name
        config = await self.data.get_calendar_config(business)
        override = await self._staff_override(staff, business_id)
        working_days, days_off, schedule = [], [], []
        for index, day_name in enumerate(WEEKDAY_NAMES):
            label = day_name.capitalize()
            own = override.day_schedule(index) if override else None
            if isinstance(own, ClosedDay):
                days_off.append(label)
                continue
            hours = own if isinstance(own, OpenHours) else config.day_schedule(index)
            if isinstance(hours, OpenHours):
                working_days.append(label)
                schedule.append(f"{label}: {format_hours_label(hours.start)} - {format_hours_label(hours.end)}")

        if not working_days:
            message = f"I don't have {name}'s schedule on file. Would you like me to check a specific day?"
        elif override is None:
            message = f"{name} works our regular business hours, {', '.join(working_days)}."
        else:
            message = f"{name} works {', '.join(working_days)}."
            if days_off:
                message += f" {name} is off on {', '.join(days_off)}."
        return EngineResult.ok(
            message,
            staff_id=staff.id,
            staff_name=staff.full_name,
            uses_business_hours=override is None,
            working_days=working_days,
            days_off=days_off,
            schedule=schedule,
        )

    # ──────────────────────────────────────────────────────────────────────────
    # Business hours
    # ──────────────────────────────────────────────────────────────────────────

    @store_guarded
    async def get_business_hours(self, business_id: str) -> EngineResult:
        business, failure = await self._business(business_id)
        if failure:
            return failure
        tz = self._timezone(business)
        config = await self.data.get_calendar_config(business)

        if not config.has_hours:
            return EngineResult.ok(
                "We are typically open Monday through Friday from 9 AM to 5 PM.",
                hours="Monday through Friday, 9 AM to 5 PM",
                is_open=None,
            )

        lines = []
        for index, name in enumerate(WEEKDAY_NAMES):
            if name not in config.hours:
                continue
            schedule = config.day_schedule(index)
            label = name.capitalize()
            if isinstance(schedule, OpenHours):
                lines.append(f"{label}: {format_hours_label(schedule.start)} to {format_hours_label(schedule.end)}")
            else:
                lines.append(f"{label}: Closed")
        hours_text = ", ".join(lines)

        local_now = now_in_timezone(tz, self._now())
        weekday = local_now.weekday()
        today = config.day_schedule(weekday)
        current = local_now.hour * 60 + local_now.minute
        is_open = False

        if isinstance(today, OpenHours):
            opens = today.start.hour * 60 + today.start.minute
            closes = today.end.hour * 60 + today.end.minute
            is_open = opens <= current < closes
            if is_open:
                status = f"We're currently open until {format_hours_label(today.end)}."
            elif current < opens:
                status = f"We open today at {format_hours_label(today.start)}."
            else:
                status = "We're closed for today."
                upcoming = next_open_day(local_now.date(), config)
                if upcoming is not None:
                    reopen = config.day_schedule(upcoming.weekday())
                    status += (
                        f" We open again {WEEKDAY_NAMES[upcoming.weekday()].capitalize()} "
                        f"at {format_hours_label(reopen.start)}."
                    )
        else:
            status = "We're closed today."

        return EngineResult.ok(
            f"{status} Our regular hours are: {hours_text}",
            hours=hours_text,
            is_open=is_open,
            status_message=status,
        )

    # ──────────────────────────────────────────────────────────────────────────
    # Write-side hooks
    # ──────────────────────────────────────────────────────────────────────────

    def invalidate_after_write(self, business_id: str, entity_type: Optional[str] = None) -> int:
        """Drop cached data after an external write. Returns the number of entries removed."""
        try:
            removed = self.cache.invalidate(business_id, entity_type)
        except ValueError:
            logger.warning(f"Unknown cache entity type {entity_type!r} for business {business_id}, nothing invalidated")
            return 0
        logger.info(
            f"Invalidated {removed} cache entries for business {business_id} ({entity_type or 'all'})"
        )
        return removed

    def notify_config_changed(self, business_id: str) -> None:
        """Debounced: the refresh runs once after a burst of edits goes quiet."""
        self.coalescer.schedule_refresh(business_id)

    def add_config_listener(self, callback: Callable[[str], Awaitable[None]]) -> None:
        """Register a downstream consumer run on each coalesced refresh."""
        self._config_listeners.append(callback)

    async def refresh_business(self, business_id: str) -> None:
        await self.data.prime(business_id)
        for listener in self._config_listeners:
            await listener(business_id)

    async def shutdown(self) -> None:
        await self.coalescer.shutdown()
