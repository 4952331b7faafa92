from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.api.v1.appointments import get_engine
from app.services.scheduling.cache import CacheEntity
from app.services.scheduling.engine import SchedulingEngine

router = APIRouter()


class InvalidateRequest(BaseModel):
    entity_type: Optional[CacheEntity] = None


@router.post("/businesses/{business_id}/invalidate")
async def invalidate_business_cache(
    business_id: str,
    body: Optional[InvalidateRequest] = None,
    engine: SchedulingEngine = Depends(get_engine),
):
    """Drop cached scheduling data after an edit made outside the phone flow."""
    entity_type = body.entity_type.value if body and body.entity_type else None
    removed = engine.invalidate_after_write(business_id, entity_type)
    return {"business_id": business_id, "entity_type": entity_type, "invalidated": removed}


@router.post("/businesses/{business_id}/config-changed", status_code=202)
async def config_changed(business_id: str, engine: SchedulingEngine = Depends(get_engine)):
    """Queue a debounced refresh; bursts of edits collapse into one."""
    engine.notify_config_changed(business_id)
    return {
        "business_id": business_id,
        "refresh_pending": engine.coalescer.is_pending(business_id),
        "delay_seconds": engine.coalescer.delay_seconds,
    }


@router.get("/cache/stats")
async def cache_stats(engine: SchedulingEngine = Depends(get_engine)):
    return engine.cache.stats()
