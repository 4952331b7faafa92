from __future__ import annotations

import argparse
import asyncio
import json
from datetime import time

from app.core.config import configure_logging, get_scheduling_settings
from app.services.scheduling.engine import SchedulingEngine
from app.services.scheduling.memory_store import InMemorySchedulingStore
from app.services.scheduling.sql_store import SqlSchedulingStore
from app.tools.tool_router import ToolRouter

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday"]


def seed_demo_store(timezone: str) -> tuple[InMemorySchedulingStore, str]:
    store = InMemorySchedulingStore()
    business = store.add_business("Demo Salon", timezone=timezone)
    for day in WEEKDAYS:
        store.set_hours(business.id, day, time(9, 0), time(17, 0))
    store.set_hours(business.id, "saturday", None, None, closed=True)
    store.add_service(business.id, "Haircut", duration_minutes=60)
    store.add_staff(business.id, "Sarah", "Lee", specialty="Senior Stylist")
    return store, business.id


async def run_smoke(
    business_id: str | None,
    date_text: str,
    time_text: str,
    customer_phone: str,
    timezone: str,
) -> None:
    if business_id:
        store = SqlSchedulingStore()
    else:
        store, business_id = seed_demo_store(timezone)

    engine = SchedulingEngine(store, settings=get_scheduling_settings())
    router = ToolRouter(engine)

    availability = await router.execute(
        "check_availability",
        {"date": date_text},
        business_id=business_id,
    )
    first = await router.execute(
        "book_appointment",
        {"date": date_text, "time": time_text, "customer_name": "Smoke Test"},
        business_id=business_id,
        caller_phone=customer_phone,
    )
    second = await router.execute(
        "book_appointment",
        {"date": date_text, "time": time_text, "customer_name": "Smoke Test"},
        business_id=business_id,
        caller_phone=customer_phone,
    )
    await engine.shutdown()

    print(json.dumps({
        "business_id": business_id,
        "availability": availability,
        "first_booking": first,
        "second_booking": second,
        "cache": engine.cache.stats(),
    }, indent=2, default=str))


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Smoke test availability and double-booking protection.")
    parser.add_argument("--business-id", help="Business UUID; omit to use a seeded in-memory demo business")
    parser.add_argument("--date", default="tomorrow", help='Spoken date, e.g. "next Friday"')
    parser.add_argument("--time", default="2pm", help='Spoken time, e.g. "2pm"')
    parser.add_argument("--customer-phone", default="+15555550100", help="Caller phone number")
    parser.add_argument("--timezone", default="America/New_York", help="Demo business timezone")
    return parser.parse_args()


def main() -> None:
    configure_logging()
    args = parse_args()
    asyncio.run(run_smoke(args.business_id, args.date, args.time, args.customer_phone, args.timezone))


if __name__ == "__main__":
    main()
