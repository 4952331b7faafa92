from sqlalchemy import Column, String, Boolean, ForeignKey, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
import uuid
from app.core.database import Base


class BusinessHours(Base):
    __tablename__ = "business_hours"
    __table_args__ = (
        UniqueConstraint("business_id", "day", name="uq_business_hours_business_day"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    business_id = Column(UUID(as_uuid=True), ForeignKey("businesses.id"), nullable=False)

    day = Column(String, nullable=False)  # monday, tuesday, etc.
    open = Column(String, nullable=True)  # HH:MM
    close = Column(String, nullable=True)  # HH:MM
    is_closed = Column(Boolean, default=False)

    business = relationship("Business", backref="hours")

    def __repr__(self):
        return f"<BusinessHours(business={self.business_id}, day={self.day})>"
