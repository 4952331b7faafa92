from __future__ import annotations

TOOLS = [
    {
        "type": "function",
        "function": {
            "name": "check_availability",
            "description": (
                "Check open appointment times for a day (\"tomorrow\", \"next Friday\", \"2025-03-04\") "
                "or a range (\"next week\", \"any day this week\")."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "date": {"type": "string"},
                    "service_id": {"type": "string"},
                    "staff_id": {"type": "string"},
                    "staff_name": {"type": "string"},
                },
                "required": ["date"],
                "additionalProperties": False,
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "book_appointment",
            "description": "Book an appointment once the caller has picked a day and time.",
            "parameters": {
                "type": "object",
                "properties": {
                    "date": {"type": "string"},
                    "time": {"type": "string"},
                    "customer_name": {"type": "string"},
                    "customer_phone": {"type": "string"},
                    "customer_email": {"type": "string"},
                    "service_id": {"type": "string"},
                    "service_name": {"type": "string"},
                    "staff_id": {"type": "string"},
                    "staff_name": {"type": "string"},
                    "estimated_duration": {
                        "type": "integer",
                        "description": "Minutes, only when no listed service matches.",
                    },
                    "notes": {"type": "string"},
                },
                "required": ["date", "time"],
                "additionalProperties": False,
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "reschedule_appointment",
            "description": "Move the caller's upcoming appointment to a new day and time.",
            "parameters": {
                "type": "object",
                "properties": {
                    "appointment_id": {"type": "string"},
                    "new_date": {"type": "string"},
                    "new_time": {"type": "string"},
                    "reason": {"type": "string"},
                },
                "required": ["new_date", "new_time"],
                "additionalProperties": False,
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "cancel_appointment",
            "description": "Cancel the caller's upcoming appointment.",
            "parameters": {
                "type": "object",
                "properties": {
                    "appointment_id": {"type": "string"},
                    "reason": {"type": "string"},
                },
                "required": [],
                "additionalProperties": False,
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "confirm_appointment",
            "description": "Confirm the caller's upcoming appointment, or note that they want a different time.",
            "parameters": {
                "type": "object",
                "properties": {
                    "appointment_id": {"type": "string"},
                    "confirmed": {"type": "boolean"},
                },
                "required": ["confirmed"],
                "additionalProperties": False,
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "get_business_hours",
            "description": "Get the business's weekly hours and whether it is open right now.",
            "parameters": {
                "type": "object",
                "properties": {},
                "required": [],
                "additionalProperties": False,
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "get_services",
            "description": "List the services offered, with duration and price.",
            "parameters": {
                "type": "object",
                "properties": {},
                "required": [],
                "additionalProperties": False,
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "get_staff_members",
            "description": "List the team members a caller can book with.",
            "parameters": {
                "type": "object",
                "properties": {},
                "required": [],
                "additionalProperties": False,
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "get_staff_schedule",
            "description": "Tell the caller which days and hours a team member works.",
            "parameters": {
                "type": "object",
                "properties": {
                    "staff_name": {"type": "string"},
                    "staff_id": {"type": "string"},
                },
                "required": [],
                "additionalProperties": False,
            },
        },
    },
]

TOOL_NAMES = [tool["function"]["name"] for tool in TOOLS]
