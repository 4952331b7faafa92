from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
from app.core.database import Base


class Staff(Base):
    __tablename__ = "staff"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    business_id = Column(UUID(as_uuid=True), ForeignKey("businesses.id"), nullable=False)

    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    specialty = Column(String, nullable=True)  # e.g. "Senior Barber"
    active = Column(Boolean, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    business = relationship("Business", backref="staff")

    def __repr__(self):
        return f"<Staff(id={self.id}, name={self.first_name} {self.last_name})>"


class StaffHours(Base):
    __tablename__ = "staff_hours"
    __table_args__ = (
        UniqueConstraint("staff_id", "day", name="uq_staff_hours_staff_day"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    staff_id = Column(UUID(as_uuid=True), ForeignKey("staff.id"), nullable=False)

    day = Column(String, nullable=False)  # monday, tuesday, etc.
    start_time = Column(String, nullable=True)  # HH:MM
    end_time = Column(String, nullable=True)  # HH:MM
    is_off = Column(Boolean, default=False)

    staff = relationship("Staff", backref="hours")

    def __repr__(self):
        return f"<StaffHours(staff={self.staff_id}, day={self.day}, off={self.is_off})>"
