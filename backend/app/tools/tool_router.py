from __future__ import annotations

import logging
from typing import Any, Optional

from app.services.scheduling.engine import SchedulingEngine

logger = logging.getLogger(__name__)


def _as_int(value: Any) -> Optional[int]:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_bool(value: Any, default: bool = True) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() not in {"false", "no", "0"}
    return bool(value)


class ToolRouter:
    """Executes agent tool calls against the scheduling engine (tenant-scoped)."""

    def __init__(self, engine: SchedulingEngine):
        self.engine = engine

    async def execute(
        self,
        tool_name: str,
        arguments: dict,
        *,
        business_id: str,
        caller_phone: Optional[str] = None,
    ) -> dict[str, Any]:
        if not business_id:
            return {"error": "missing_business_id"}

        logger.info(f"Tool call {tool_name} for business {business_id}")

        if tool_name == "check_availability":
            date_text = arguments.get("date")
            if not date_text:
                return {"error": "missing_date"}
            result = await self.engine.check_availability(
                business_id,
                date_text,
                service_id=arguments.get("service_id"),
                staff_id=arguments.get("staff_id"),
                staff_name=arguments.get("staff_name"),
            )
            return result.to_dict()

        if tool_name == "book_appointment":
            date_text = arguments.get("date")
            time_text = arguments.get("time")
            if not date_text or not time_text:
                return {"error": "missing_date_or_time"}
            result = await self.engine.book_appointment(
                business_id,
                date_text,
                time_text,
                service_id=arguments.get("service_id"),
                service_name=arguments.get("service_name"),
                staff_id=arguments.get("staff_id"),
                staff_name=arguments.get("staff_name"),
                estimated_duration_minutes=_as_int(arguments.get("estimated_duration")),
                customer_name=arguments.get("customer_name"),
                customer_phone=arguments.get("customer_phone"),
                customer_email=arguments.get("customer_email"),
                notes=arguments.get("notes"),
                caller_phone=caller_phone,
            )
            return result.to_dict()

        if tool_name == "reschedule_appointment":
            new_date = arguments.get("new_date")
            new_time = arguments.get("new_time")
            if not new_date or not new_time:
                return {"error": "missing_date_or_time"}
            result = await self.engine.reschedule_appointment(
                business_id,
                new_date,
                new_time,
                appointment_id=arguments.get("appointment_id"),
                reason=arguments.get("reason"),
                caller_phone=caller_phone,
            )
            return result.to_dict()

        if tool_name == "cancel_appointment":
            result = await self.engine.cancel_appointment(
                business_id,
                appointment_id=arguments.get("appointment_id"),
                reason=arguments.get("reason"),
                caller_phone=caller_phone,
            )
            return result.to_dict()

        if tool_name == "confirm_appointment":
            result = await self.engine.confirm_appointment(
                business_id,
                appointment_id=arguments.get("appointment_id"),
                confirmed=_as_bool(arguments.get("confirmed")),
                caller_phone=caller_phone,
            )
            return result.to_dict()

        if tool_name == "get_business_hours":
            result = await self.engine.get_business_hours(business_id)
            return result.to_dict()

        if tool_name == "get_services":
            result = await self.engine.get_services(business_id)
            return result.to_dict()

        if tool_name == "get_staff_members":
            result = await self.engine.get_staff_members(business_id)
            return result.to_dict()

        if tool_name == "get_staff_schedule":
            result = await self.engine.get_staff_schedule(
                business_id,
                staff_name=arguments.get("staff_name"),
                staff_id=arguments.get("staff_id"),
            )
            return result.to_dict()

        return {"error": "unknown_tool"}
