from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import datetime, time
from typing import Any, Optional

from app.services.scheduling.base import (
    AppointmentRecord,
    AppointmentStatus,
    BusinessRecord,
    DayHours,
    ServiceDefinition,
    StaffDayHours,
    StaffMember,
    ensure_aware,
)


class InMemorySchedulingStore:
    """Dict-backed SchedulingStore for tests and local smoke runs.

    Counts every read in ``calls`` so cache behaviour can be asserted.
    """

    def __init__(self):
        self.businesses: dict[str, BusinessRecord] = {}
        self.hours: dict[str, list[DayHours]] = {}
        self.services: dict[str, list[ServiceDefinition]] = {}
        self.staff: dict[str, list[StaffMember]] = {}
        self.staff_hours: dict[str, list[StaffDayHours]] = {}
        self.appointments: dict[str, AppointmentRecord] = {}
        self.calls: dict[str, int] = {}

    def _count(self, name: str) -> None:
        self.calls[name] = self.calls.get(name, 0) + 1

    # ==================== SEEDING ====================

    def add_business(
        self,
        name: str,
        timezone: str = "America/New_York",
        slot_interval_minutes: Optional[int] = 30,
        business_id: Optional[str] = None,
    ) -> BusinessRecord:
        business = BusinessRecord(
            id=business_id or str(uuid.uuid4()),
            name=name,
            timezone=timezone,
            slot_interval_minutes=slot_interval_minutes,
        )
        self.businesses[business.id] = business
        self.hours.setdefault(business.id, [])
        return business

    def set_hours(self, business_id: str, day: str, open_at: Optional[time], close_at: Optional[time], closed: bool = False) -> None:
        rows = [h for h in self.hours.get(business_id, []) if h.day != day]
        rows.append(DayHours(day=day, open=open_at, close=close_at, is_closed=closed))
        self.hours[business_id] = rows

    def add_service(
        self,
        business_id: str,
        name: str,
        duration_minutes: Optional[int] = None,
        price: Optional[float] = None,
        description: Optional[str] = None,
        active: bool = True,
    ) -> ServiceDefinition:
        service = ServiceDefinition(
            id=str(uuid.uuid4()),
            business_id=business_id,
            name=name,
            duration_minutes=duration_minutes,
            active=active,
            price=price,
            description=description,
        )
        self.services.setdefault(business_id, []).append(service)
        return service

    def add_staff(
        self,
        business_id: str,
        first_name: str,
        last_name: str = "",
        specialty: Optional[str] = None,
        active: bool = True,
    ) -> StaffMember:
        member = StaffMember(
            id=str(uuid.uuid4()),
            business_id=business_id,
            first_name=first_name,
            last_name=last_name,
            specialty=specialty,
            active=active,
        )
        self.staff.setdefault(business_id, []).append(member)
        return member

    def set_staff_hours(
        self,
        staff_id: str,
        day: str,
        start: Optional[time] = None,
        end: Optional[time] = None,
        off: bool = False,
    ) -> None:
        rows = [h for h in self.staff_hours.get(staff_id, []) if h.day != day]
        rows.append(StaffDayHours(day=day, start=start, end=end, is_off=off))
        self.staff_hours[staff_id] = rows

    def add_appointment(self, record: AppointmentRecord) -> AppointmentRecord:
        stored = replace(record, id=record.id or str(uuid.uuid4()))
        self.appointments[stored.id] = stored
        return stored

    # ==================== SchedulingStore ====================

    async def get_business(self, business_id: str) -> Optional[BusinessRecord]:
        self._count("get_business")
        return self.businesses.get(str(business_id))

    async def get_business_hours(self, business_id: str) -> list[DayHours]:
        self._count("get_business_hours")
        return list(self.hours.get(str(business_id), []))

    async def get_services(self, business_id: str) -> list[ServiceDefinition]:
        self._count("get_services")
        return [s for s in self.services.get(str(business_id), []) if s.active]

    async def get_staff(self, business_id: str) -> list[StaffMember]:
        self._count("get_staff")
        return list(self.staff.get(str(business_id), []))

    async def get_staff_hours(self, staff_id: str) -> list[StaffDayHours]:
        self._count("get_staff_hours")
        return list(self.staff_hours.get(str(staff_id), []))

    async def get_appointments(
        self,
        business_id: str,
        *,
        staff_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[AppointmentRecord]:
        self._count("get_appointments")
        rows = []
        for record in self.appointments.values():
            if record.business_id != str(business_id):
                continue
            if staff_id and record.staff_id != str(staff_id):
                continue
            if start is not None and record.start_at < ensure_aware(start):
                continue
            if end is not None and record.start_at >= ensure_aware(end):
                continue
            rows.append(replace(record))
        return sorted(rows, key=lambda r: r.start_at)

    async def get_appointment(self, appointment_id: str) -> Optional[AppointmentRecord]:
        self._count("get_appointment")
        record = self.appointments.get(str(appointment_id))
        return replace(record) if record else None

    async def get_upcoming_appointment_by_phone(
        self, business_id: str, customer_phone: str, after: datetime
    ) -> Optional[AppointmentRecord]:
        self._count("get_upcoming_appointment_by_phone")
        matches = [
            r
            for r in self.appointments.values()
            if r.business_id == str(business_id)
            and r.customer_phone == customer_phone
            and r.status == AppointmentStatus.SCHEDULED
            and r.start_at > ensure_aware(after)
        ]
        if not matches:
            return None
        return replace(min(matches, key=lambda r: r.start_at))

    async def create_appointment(self, record: AppointmentRecord) -> AppointmentRecord:
        self._count("create_appointment")
        return replace(self.add_appointment(record))

    async def update_appointment(self, appointment_id: str, changes: dict[str, Any]) -> Optional[AppointmentRecord]:
        self._count("update_appointment")
        record = self.appointments.get(str(appointment_id))
        if record is None:
            return None
        updated = replace(record, **changes)
        self.appointments[updated.id] = updated
        return replace(updated)
