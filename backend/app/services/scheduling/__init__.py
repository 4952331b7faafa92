from app.services.scheduling.base import (
    AppointmentRecord,
    AppointmentStatus,
    EngineResult,
    SchedulingError,
    SchedulingErrorCode,
    SchedulingStore,
    StoreUnavailableError,
)
from app.services.scheduling.cache import BusinessDataCache, CacheEntity, CachedBusinessData
from app.services.scheduling.coalescer import UpdateCoalescer
from app.services.scheduling.engine import SchedulingEngine

__all__ = [
    "AppointmentRecord",
    "AppointmentStatus",
    "BusinessDataCache",
    "CacheEntity",
    "CachedBusinessData",
    "EngineResult",
    "SchedulingEngine",
    "SchedulingError",
    "SchedulingErrorCode",
    "SchedulingStore",
    "StoreUnavailableError",
    "UpdateCoalescer",
]
