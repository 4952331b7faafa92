from app.models.business import Business
from app.models.business_hours import BusinessHours
from app.models.service import Service
from app.models.staff import Staff, StaffHours
from app.models.appointment import Appointment

__all__ = ["Business", "BusinessHours", "Service", "Staff", "StaffHours", "Appointment"]
