"""
Conflict-checked appointment writes.

Every write re-reads live bookings for a narrow window around the target
time (bypassing the cache), checks overlap, then writes. Commits for the
same (business, staff) key are serialized through an asyncio.Lock, which
closes the check-then-write race inside one process only; multiple
workers still need a storage-level exclusion constraint.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Optional, Union

from app.services.scheduling.base import (
    DEFAULT_BOOKING_DURATION_MINUTES,
    MAX_ESTIMATED_DURATION_MINUTES,
    AppointmentRecord,
    AppointmentStatus,
    ServiceDefinition,
    ensure_transition,
)
from app.services.scheduling.cache import CacheEntity, CachedBusinessData
from app.services.scheduling.time_resolver import (
    format_instant_date,
    format_instant_time,
    parse_date_expression,
    parse_time_expression,
    to_absolute_instant,
    utc_now,
)

logger = logging.getLogger(__name__)

CONFLICT_WINDOW = timedelta(days=1)


@dataclass
class BookingCommit:
    committed: bool
    start_at: datetime
    end_at: datetime
    appointment: Optional[AppointmentRecord] = None
    conflict_at: Optional[str] = None
    conflicting_appointment_id: Optional[str] = None
    in_past: bool = False

    @property
    def appointment_id(self) -> Optional[str]:
        return self.appointment.id if self.appointment else None


def resolve_duration(
    service: Optional[ServiceDefinition] = None,
    estimated_duration_minutes: Optional[int] = None,
) -> int:
    """Service duration, else the caller's estimate (capped at 8h), else 60 minutes."""
    if service is not None:
        return service.duration
    if estimated_duration_minutes and estimated_duration_minutes > 0:
        return min(int(estimated_duration_minutes), MAX_ESTIMATED_DURATION_MINUTES)
    return DEFAULT_BOOKING_DURATION_MINUTES


def resolve_start(
    day: Union[str, date],
    at: Union[str, time],
    tz: str,
    now: Optional[datetime] = None,
) -> datetime:
    """Absolute start instant for a spoken or literal date and time in ``tz``."""
    target_day = day if isinstance(day, date) else parse_date_expression(day, tz, now)
    target_time = parse_time_expression(at)
    return to_absolute_instant(
        target_day.year,
        target_day.month,
        target_day.day,
        target_time.hour,
        target_time.minute,
        tz,
    )


def _append_note(existing: Optional[str], note: str) -> str:
    return f"{existing or ''}\n{note}".strip()


class BookingConflictGuard:
    def __init__(self, data: CachedBusinessData):
        self.data = data
        # Entries live only while a commit holds or waits on the lock.
        self._locks: weakref.WeakValueDictionary[tuple[str, str], asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, business_id: str, staff_id: Optional[str]) -> asyncio.Lock:
        key = (str(business_id), str(staff_id) if staff_id else "*")
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def find_conflict(
        self,
        business_id: str,
        start_at: datetime,
        end_at: datetime,
        staff_id: Optional[str] = None,
        exclude_id: Optional[str] = None,
    ) -> Optional[AppointmentRecord]:
        """First non-cancelled booking overlapping [start_at, end_at), read live."""
        existing = await self.data.fetch_live_appointments(
            business_id,
            start_at - CONFLICT_WINDOW,
            end_at + CONFLICT_WINDOW,
            staff_id=staff_id,
        )
        for appointment in existing:
            if not appointment.is_active:
                continue
            if exclude_id is not None and str(appointment.id) == str(exclude_id):
                continue
            if appointment.overlaps(start_at, end_at):
                return appointment
        return None

    def _conflict(self, start_at: datetime, end_at: datetime, clash: AppointmentRecord, tz: str) -> BookingCommit:
        conflict_at = format_instant_time(clash.start_at, tz)
        logger.info(
            f"Booking conflict for business {clash.business_id}: "
            f"{start_at.isoformat()} overlaps appointment {clash.id} at {conflict_at}"
        )
        return BookingCommit(
            committed=False,
            start_at=start_at,
            end_at=end_at,
            conflict_at=conflict_at,
            conflicting_appointment_id=clash.id,
        )

    async def commit_booking(
        self,
        business_id: str,
        day: Union[str, date],
        at: Union[str, time],
        tz: str,
        *,
        staff_id: Optional[str] = None,
        service: Optional[ServiceDefinition] = None,
        estimated_duration_minutes: Optional[int] = None,
        customer_name: Optional[str] = None,
        customer_phone: Optional[str] = None,
        customer_email: Optional[str] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> BookingCommit:
        start_at = resolve_start(day, at, tz, now)
        duration = resolve_duration(service, estimated_duration_minutes)
        end_at = start_at + timedelta(minutes=duration)

        if start_at <= (now or utc_now()):
            return BookingCommit(committed=False, start_at=start_at, end_at=end_at, in_past=True)

        async with self._lock_for(business_id, staff_id):
            clash = await self.find_conflict(business_id, start_at, end_at, staff_id=staff_id)
            if clash is not None:
                return self._conflict(start_at, end_at, clash, tz)

            record = AppointmentRecord(
                id=None,
                business_id=business_id,
                start_at=start_at,
                end_at=end_at,
                status=AppointmentStatus.SCHEDULED,
                staff_id=staff_id,
                service_id=service.id if service else None,
                customer_name=customer_name,
                customer_phone=customer_phone,
                customer_email=customer_email,
                notes=notes or "",
            )
            created = await self.data.call_store(
                "creating appointment", lambda: self.data.store.create_appointment(record)
            )
            self.data.cache.invalidate(business_id, CacheEntity.APPOINTMENTS)

        logger.info(
            f"Booked appointment {created.id} for business {business_id} "
            f"at {start_at.isoformat()} ({duration}min, staff={staff_id or 'any'})"
        )
        return BookingCommit(committed=True, start_at=start_at, end_at=end_at, appointment=created)

    async def reschedule(
        self,
        appointment: AppointmentRecord,
        day: Union[str, date],
        at: Union[str, time],
        tz: str,
        *,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> BookingCommit:
        """Move an appointment, keeping its duration. A confirmed appointment goes back to scheduled."""
        ensure_transition_allows_move(appointment)
        start_at = resolve_start(day, at, tz, now)
        end_at = start_at + timedelta(minutes=appointment.duration_minutes or DEFAULT_BOOKING_DURATION_MINUTES)

        if start_at <= (now or utc_now()):
            return BookingCommit(committed=False, start_at=start_at, end_at=end_at, in_past=True)

        async with self._lock_for(appointment.business_id, appointment.staff_id):
            clash = await self.find_conflict(
                appointment.business_id,
                start_at,
                end_at,
                staff_id=appointment.staff_id,
                exclude_id=appointment.id,
            )
            if clash is not None:
                return self._conflict(start_at, end_at, clash, tz)

            old_date = format_instant_date(appointment.start_at, tz)
            note = f"[Rescheduled from {old_date}{': ' + reason if reason else ''}]"
            changes: dict[str, Any] = {
                "start_at": start_at,
                "end_at": end_at,
                "status": AppointmentStatus.SCHEDULED.value,
                "notes": _append_note(appointment.notes, note),
            }
            updated = await self.data.call_store(
                "rescheduling appointment",
                lambda: self.data.store.update_appointment(appointment.id, changes),
            )
            self.data.cache.invalidate(appointment.business_id, CacheEntity.APPOINTMENTS)

        logger.info(f"Rescheduled appointment {appointment.id} to {start_at.isoformat()}")
        return BookingCommit(committed=True, start_at=start_at, end_at=end_at, appointment=updated)

    async def transition(
        self,
        appointment: AppointmentRecord,
        target: AppointmentStatus,
        note: Optional[str] = None,
    ) -> AppointmentRecord:
        """Apply a status change; raises InvalidTransitionError if the state machine forbids it."""
        ensure_transition(appointment.status, target)
        changes: dict[str, Any] = {"status": target.value}
        if note:
            changes["notes"] = _append_note(appointment.notes, note)
        updated = await self.data.call_store(
            f"marking appointment {target.value}",
            lambda: self.data.store.update_appointment(appointment.id, changes),
        )
        self.data.cache.invalidate(appointment.business_id, CacheEntity.APPOINTMENTS)
        logger.info(f"Appointment {appointment.id}: {appointment.status.value} -> {target.value}")
        return updated or appointment


def ensure_transition_allows_move(appointment: AppointmentRecord) -> None:
    """Cancelled appointments are terminal and cannot be moved."""
    if not appointment.is_active:
        ensure_transition(appointment.status, AppointmentStatus.SCHEDULED)
