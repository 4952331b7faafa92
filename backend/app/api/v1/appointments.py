from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, ValidationError

from app.services.scheduling.engine import SchedulingEngine
from app.tools.tool_definitions import TOOL_NAMES
from app.tools.tool_router import ToolRouter

logger = logging.getLogger(__name__)

router = APIRouter(tags=["appointments"])


class _BaseToolArgs(BaseModel):
    """Common base for tool argument models.

    We keep this minimal and tolerant of extra fields coming from Vapi.
    """

    class Config:
        extra = "ignore"


class CheckAvailabilityArgs(_BaseToolArgs):
    business_id: str
    date: str
    service_id: Optional[str] = None
    staff_id: Optional[str] = None
    staff_name: Optional[str] = None


class BookAppointmentArgs(_BaseToolArgs):
    business_id: str
    date: str
    time: str
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    service_id: Optional[str] = None
    service_name: Optional[str] = None
    staff_id: Optional[str] = None
    staff_name: Optional[str] = None
    estimated_duration: Optional[int] = None
    notes: Optional[str] = None


class RescheduleAppointmentArgs(_BaseToolArgs):
    business_id: str
    new_date: str
    new_time: str
    appointment_id: Optional[str] = None
    reason: Optional[str] = None


class CancelAppointmentArgs(_BaseToolArgs):
    business_id: str
    appointment_id: Optional[str] = None
    reason: Optional[str] = None


class ConfirmAppointmentArgs(_BaseToolArgs):
    business_id: str
    appointment_id: Optional[str] = None
    confirmed: bool = True


class BusinessArgs(_BaseToolArgs):
    business_id: str


class StaffScheduleArgs(_BaseToolArgs):
    business_id: str
    staff_name: Optional[str] = None
    staff_id: Optional[str] = None


def get_engine(request: Request) -> SchedulingEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Scheduling engine not initialised")
    return engine


def _tool_calls(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    message = payload.get("message") or {}
    return message.get("toolCallList") or message.get("toolCalls") or []


def _extract_tool_call(payload: Dict[str, Any]) -> tuple[Optional[str], Dict[str, Any], Optional[str]]:
    """Return (function name, arguments, toolCallId) of the first tool call in a Vapi payload.

    Expected shape (simplified):
    {
        "message": {
            "toolCallList": [
                {
                    "id": "call_123",
                    "function": {
                        "name": "check_availability",
                        "arguments": { ... } or "{...}"  # JSON string
                    }
                }
            ]
        }
    }
    """

    tool_calls = _tool_calls(payload)
    if not tool_calls:
        raise HTTPException(status_code=400, detail="Missing toolCallList in request payload")

    call = tool_calls[0] or {}
    function = call.get("function") or {}
    args = function.get("arguments")

    # Vapi sometimes sends arguments as a JSON string
    if isinstance(args, str):
        try:
            args = json.loads(args)
        except json.JSONDecodeError:
            raise HTTPException(status_code=400, detail="Invalid JSON in tool arguments")

    if args is None:
        args = {}
    if not isinstance(args, dict):
        raise HTTPException(status_code=400, detail="Tool arguments must be an object")

    return function.get("name"), args, call.get("id")


def _caller_phone(payload: Dict[str, Any]) -> Optional[str]:
    call = (payload.get("message") or {}).get("call") or {}
    customer = call.get("customer") or {}
    return customer.get("number")


def _vapi_result(result: Any, tool_call_id: Optional[str] = None) -> Dict[str, Any]:
    """Wrap a tool result in Vapi's expected response envelope.

    If a tool_call_id is provided, include it so Vapi can match the result to
    the originating tool call.
    """

    wrapped: Dict[str, Any] = {"result": result}
    if tool_call_id:
        wrapped["toolCallId"] = tool_call_id
    return {"results": [wrapped]}


async def _run_tool(
    request: Request,
    engine: SchedulingEngine,
    tool_name: str,
    args_model: type[_BaseToolArgs],
) -> Dict[str, Any]:
    payload = await request.json()
    _, raw_args, tool_call_id = _extract_tool_call(payload)
    try:
        args = args_model(**raw_args)
    except ValidationError as exc:
        logger.warning(f"Rejected {tool_name} arguments: {exc}")
        raise HTTPException(status_code=422, detail="Invalid tool arguments")
    arguments = args.dict(exclude={"business_id"}, exclude_none=True)

    result = await ToolRouter(engine).execute(
        tool_name,
        arguments,
        business_id=args.business_id,
        caller_phone=_caller_phone(payload),
    )
    return _vapi_result(result, tool_call_id)


@router.post("/appointments/check-availability")
async def check_availability(request: Request, engine: SchedulingEngine = Depends(get_engine)):
    """Vapi tool endpoint: open times for a day or a range like "next week"."""
    return await _run_tool(request, engine, "check_availability", CheckAvailabilityArgs)


@router.post("/appointments/book")
async def book_appointment(request: Request, engine: SchedulingEngine = Depends(get_engine)):
    """Vapi tool endpoint: conflict-checked booking."""
    return await _run_tool(request, engine, "book_appointment", BookAppointmentArgs)


@router.post("/appointments/reschedule")
async def reschedule_appointment(request: Request, engine: SchedulingEngine = Depends(get_engine)):
    return await _run_tool(request, engine, "reschedule_appointment", RescheduleAppointmentArgs)


@router.post("/appointments/cancel")
async def cancel_appointment(request: Request, engine: SchedulingEngine = Depends(get_engine)):
    return await _run_tool(request, engine, "cancel_appointment", CancelAppointmentArgs)


@router.post("/appointments/confirm")
async def confirm_appointment(request: Request, engine: SchedulingEngine = Depends(get_engine)):
    return await _run_tool(request, engine, "confirm_appointment", ConfirmAppointmentArgs)


@router.post("/business-hours")
async def business_hours(request: Request, engine: SchedulingEngine = Depends(get_engine)):
    return await _run_tool(request, engine, "get_business_hours", BusinessArgs)


@router.post("/services")
async def list_services(request: Request, engine: SchedulingEngine = Depends(get_engine)):
    return await _run_tool(request, engine, "get_services", BusinessArgs)


@router.post("/staff")
async def list_staff(request: Request, engine: SchedulingEngine = Depends(get_engine)):
    return await _run_tool(request, engine, "get_staff_members", BusinessArgs)


@router.post("/staff/schedule")
async def staff_schedule(request: Request, engine: SchedulingEngine = Depends(get_engine)):
    """Vapi tool endpoint: which days a team member works."""
    return await _run_tool(request, engine, "get_staff_schedule", StaffScheduleArgs)


@router.post("/tools")
async def dispatch_tool(request: Request, engine: SchedulingEngine = Depends(get_engine)):
    """Single Vapi server URL: dispatch on the tool call's function name.

    The business id comes from the arguments or, failing that, from
    ``message.call.assistant.metadata.business_id``.
    """
    payload = await request.json()
    tool_name, arguments, tool_call_id = _extract_tool_call(payload)
    if tool_name not in TOOL_NAMES:
        logger.warning(f"Unknown tool requested: {tool_name!r}")
        return _vapi_result({"error": "unknown_tool"}, tool_call_id)

    call = (payload.get("message") or {}).get("call") or {}
    metadata = (call.get("assistant") or {}).get("metadata") or {}
    business_id = arguments.pop("business_id", None) or metadata.get("business_id")

    result = await ToolRouter(engine).execute(
        tool_name,
        arguments,
        business_id=business_id,
        caller_phone=_caller_phone(payload),
    )
    return _vapi_result(result, tool_call_id)
