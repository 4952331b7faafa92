from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

from app.core.database import AsyncSessionLocal
from app.models import Appointment, Business, BusinessHours, Service, Staff, StaffHours
from app.services.db_service import DBService
from app.services.scheduling.base import (
    AppointmentRecord,
    BusinessRecord,
    DayHours,
    ServiceDefinition,
    StaffDayHours,
    StaffMember,
    parse_clock,
)


def _str_id(value) -> Optional[str]:
    return str(value) if value is not None else None


def business_to_record(row: Business) -> BusinessRecord:
    return BusinessRecord(
        id=str(row.id),
        name=row.name,
        timezone=row.timezone,
        slot_interval_minutes=row.booking_slot_interval_minutes,
    )


def hours_to_record(row: BusinessHours) -> DayHours:
    return DayHours(
        day=(row.day or "").lower(),
        open=parse_clock(row.open),
        close=parse_clock(row.close),
        is_closed=bool(row.is_closed),
    )


def service_to_record(row: Service) -> ServiceDefinition:
    return ServiceDefinition(
        id=str(row.id),
        business_id=str(row.business_id),
        name=row.name,
        duration_minutes=row.duration_minutes,
        active=bool(row.active),
        price=float(row.price) if row.price is not None else None,
        description=row.description,
    )


def staff_to_record(row: Staff) -> StaffMember:
    return StaffMember(
        id=str(row.id),
        business_id=str(row.business_id),
        first_name=row.first_name,
        last_name=row.last_name or "",
        specialty=row.specialty,
        active=bool(row.active),
    )


def staff_hours_to_record(row: StaffHours) -> StaffDayHours:
    return StaffDayHours(
        day=(row.day or "").lower(),
        start=parse_clock(row.start_time),
        end=parse_clock(row.end_time),
        is_off=bool(row.is_off),
    )


def appointment_to_record(row: Appointment) -> AppointmentRecord:
    return AppointmentRecord(
        id=str(row.id),
        business_id=str(row.business_id),
        start_at=row.start_at,
        end_at=row.end_at,
        status=row.status or "scheduled",
        staff_id=_str_id(row.staff_id),
        service_id=_str_id(row.service_id),
        customer_name=row.customer_name,
        customer_phone=row.customer_phone,
        customer_email=row.customer_email,
        notes=row.notes,
    )


class SqlSchedulingStore:
    """SchedulingStore over the Postgres schema, one short session per call."""

    def __init__(self, session_factory=AsyncSessionLocal):
        self.session_factory = session_factory

    async def get_business(self, business_id: str) -> Optional[BusinessRecord]:
        async with self.session_factory() as session:
            row = await DBService(session).get_business(business_id)
            return business_to_record(row) if row else None

    async def get_business_hours(self, business_id: str) -> list[DayHours]:
        async with self.session_factory() as session:
            rows = await DBService(session).get_business_hours(business_id)
            return [hours_to_record(r) for r in rows]

    async def get_services(self, business_id: str) -> list[ServiceDefinition]:
        async with self.session_factory() as session:
            rows = await DBService(session).get_services(business_id)
            return [service_to_record(r) for r in rows]

    async def get_staff(self, business_id: str) -> list[StaffMember]:
        async with self.session_factory() as session:
            rows = await DBService(session).get_staff(business_id)
            return [staff_to_record(r) for r in rows]

    async def get_staff_hours(self, staff_id: str) -> list[StaffDayHours]:
        async with self.session_factory() as session:
            rows = await DBService(session).get_staff_hours(staff_id)
            return [staff_hours_to_record(r) for r in rows]

    async def get_appointments(
        self,
        business_id: str,
        *,
        staff_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[AppointmentRecord]:
        async with self.session_factory() as session:
            rows = await DBService(session).get_appointments(business_id, staff_id=staff_id, start=start, end=end)
            return [appointment_to_record(r) for r in rows]

    async def get_appointment(self, appointment_id: str) -> Optional[AppointmentRecord]:
        async with self.session_factory() as session:
            row = await DBService(session).get_appointment(appointment_id)
            return appointment_to_record(row) if row else None

    async def get_upcoming_appointment_by_phone(
        self, business_id: str, customer_phone: str, after: datetime
    ) -> Optional[AppointmentRecord]:
        async with self.session_factory() as session:
            row = await DBService(session).get_upcoming_appointment_by_phone(business_id, customer_phone, after)
            return appointment_to_record(row) if row else None

    async def create_appointment(self, record: AppointmentRecord) -> AppointmentRecord:
        data = {
            "business_id": uuid.UUID(record.business_id),
            "staff_id": uuid.UUID(record.staff_id) if record.staff_id else None,
            "service_id": uuid.UUID(record.service_id) if record.service_id else None,
            "customer_name": record.customer_name,
            "customer_phone": record.customer_phone,
            "customer_email": record.customer_email,
            "start_at": record.start_at,
            "end_at": record.end_at,
            "status": record.status.value,
            "notes": record.notes,
        }
        async with self.session_factory() as session:
            row = await DBService(session).create_appointment(data)
            return appointment_to_record(row)

    async def update_appointment(self, appointment_id: str, changes: dict[str, Any]) -> Optional[AppointmentRecord]:
        async with self.session_factory() as session:
            row = await DBService(session).update_appointment(appointment_id, changes)
            return appointment_to_record(row) if row else None
