from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from app.models import Business, BusinessHours, Service, Staff, StaffHours, Appointment
from typing import Optional, List
from datetime import datetime
import uuid


def _as_uuid(value: Optional[str]) -> Optional[uuid.UUID]:
    if value is None:
        return None
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


class DBService:
    """
    Service for database operations
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    # ==================== BUSINESSES ====================

    async def get_business(self, business_id: str) -> Optional[Business]:
        """Get business by ID"""
        b_uuid = _as_uuid(business_id)
        if b_uuid is None:
            return None

        result = await self.session.execute(
            select(Business).where(Business.id == b_uuid)
        )
        return result.scalar_one_or_none()

    async def get_business_hours(self, business_id: str) -> List[BusinessHours]:
        """Get weekday hours configured for a business"""
        b_uuid = _as_uuid(business_id)
        if b_uuid is None:
            return []

        result = await self.session.execute(
            select(BusinessHours).where(BusinessHours.business_id == b_uuid)
        )
        return result.scalars().all()

    # ==================== SERVICES ====================

    async def get_services(self, business_id: str) -> List[Service]:
        """Get active services offered by a business"""
        b_uuid = _as_uuid(business_id)
        if b_uuid is None:
            return []

        result = await self.session.execute(
            select(Service)
            .where(Service.business_id == b_uuid, Service.active.is_(True))
            .order_by(Service.name)
        )
        return result.scalars().all()

    # ==================== STAFF ====================

    async def get_staff(self, business_id: str) -> List[Staff]:
        """Get the staff roster for a business (active and inactive)"""
        b_uuid = _as_uuid(business_id)
        if b_uuid is None:
            return []

        result = await self.session.execute(
            select(Staff)
            .where(Staff.business_id == b_uuid)
            .order_by(Staff.first_name, Staff.last_name)
        )
        return result.scalars().all()

    async def get_staff_hours(self, staff_id: str) -> List[StaffHours]:
        """Get per-weekday hours for one staff member"""
        s_uuid = _as_uuid(staff_id)
        if s_uuid is None:
            return []

        result = await self.session.execute(
            select(StaffHours).where(StaffHours.staff_id == s_uuid)
        )
        return result.scalars().all()

    # ==================== APPOINTMENTS ====================

    async def create_appointment(self, data: dict) -> Appointment:
        """Create new appointment"""
        appointment = Appointment(**data)
        self.session.add(appointment)
        await self.session.commit()
        await self.session.refresh(appointment)
        return appointment

    async def get_appointment(self, appointment_id: str) -> Optional[Appointment]:
        """Get appointment by ID"""
        a_uuid = _as_uuid(appointment_id)
        if a_uuid is None:
            return None

        result = await self.session.execute(
            select(Appointment).where(Appointment.id == a_uuid)
        )
        return result.scalar_one_or_none()

    async def get_appointments(
        self,
        business_id: str,
        staff_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[Appointment]:
        """Get appointments for a business, optionally narrowed to a staff member and window.

        The window is half-open on start_at: ``start <= start_at < end``.
        """
        b_uuid = _as_uuid(business_id)
        if b_uuid is None:
            return []

        query = select(Appointment).where(Appointment.business_id == b_uuid)
        if staff_id:
            s_uuid = _as_uuid(staff_id)
            if s_uuid is None:
                return []
            query = query.where(Appointment.staff_id == s_uuid)
        if start is not None:
            query = query.where(Appointment.start_at >= start)
        if end is not None:
            query = query.where(Appointment.start_at < end)

        result = await self.session.execute(query.order_by(Appointment.start_at))
        return result.scalars().all()

    async def get_upcoming_appointment_by_phone(
        self,
        business_id: str,
        customer_phone: str,
        after: datetime,
    ) -> Optional[Appointment]:
        """Get the earliest scheduled appointment after ``after`` for a caller."""
        b_uuid = _as_uuid(business_id)
        if b_uuid is None:
            return None

        result = await self.session.execute(
            select(Appointment)
            .where(
                Appointment.business_id == b_uuid,
                Appointment.customer_phone == customer_phone,
                Appointment.status == "scheduled",
                Appointment.start_at > after,
            )
            .order_by(Appointment.start_at.asc())
            .limit(1)
        )
        return result.scalars().first()

    async def update_appointment(
        self,
        appointment_id: str,
        data: dict
    ) -> Optional[Appointment]:
        """Update appointment"""
        appointment = await self.get_appointment(appointment_id)
        if appointment:
            for key, value in data.items():
                setattr(appointment, key, value)
            await self.session.commit()
            await self.session.refresh(appointment)
        return appointment
