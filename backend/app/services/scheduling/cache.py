"""
Short-TTL, per-business cache in front of the scheduling store.

Keeps a live call from hitting the database for the same business hours,
services and roster on every turn. Entries are keyed by
(entity type, business id, qualifier) and expire on their own TTL; writes
invalidate either one entity type or everything for a business.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time as _time
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

from app.core.config import SchedulingSettings
from app.services.scheduling.base import (
    AppointmentRecord,
    BusinessCalendarConfig,
    BusinessRecord,
    ResourceScheduleOverride,
    SchedulingStore,
    ServiceDefinition,
    StaffMember,
    StoreUnavailableError,
)
from app.services.scheduling.time_resolver import to_absolute_instant

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CacheEntity(str, Enum):
    BUSINESS = "business"
    HOURS = "hours"
    SERVICES = "services"
    STAFF = "staff"
    STAFF_HOURS = "staff_hours"
    APPOINTMENTS = "appointments"


@dataclass
class CacheEntry:
    value: Any
    stored_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now - self.stored_at > self.ttl


CacheKey = tuple[str, str, Optional[str]]


class BusinessDataCache:
    """Process-wide TTL cache; safe to share between concurrent calls."""

    def __init__(
        self,
        default_ttl: float = 300.0,
        appointments_ttl: float = 120.0,
        clock: Callable[[], float] = _time.monotonic,
    ):
        self.default_ttl = default_ttl
        self.appointments_ttl = appointments_ttl
        self._clock = clock
        self._entries: dict[CacheKey, CacheEntry] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: SchedulingSettings) -> "BusinessDataCache":
        return cls(
            default_ttl=settings.default_ttl_seconds,
            appointments_ttl=settings.appointments_ttl_seconds,
        )

    @staticmethod
    def _key(entity_type: str, business_id: str, qualifier: Optional[str]) -> CacheKey:
        return (CacheEntity(entity_type).value, str(business_id), qualifier)

    def ttl_for(self, entity_type: str) -> float:
        if CacheEntity(entity_type) is CacheEntity.APPOINTMENTS:
            return self.appointments_ttl
        return self.default_ttl

    def get(self, entity_type: str, business_id: str, qualifier: Optional[str] = None) -> Optional[Any]:
        """Return the cached value, or None on a miss or expiry."""
        key = self._key(entity_type, business_id, qualifier)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(self._clock()):
                del self._entries[key]
                return None
            return entry.value

    def set(
        self,
        entity_type: str,
        business_id: str,
        value: Any,
        qualifier: Optional[str] = None,
        ttl: Optional[float] = None,
    ) -> None:
        if value is None:
            return
        key = self._key(entity_type, business_id, qualifier)
        entry = CacheEntry(value=value, stored_at=self._clock(), ttl=ttl or self.ttl_for(entity_type))
        with self._lock:
            self._entries[key] = entry

    def invalidate(self, business_id: str, entity_type: Optional[str] = None) -> int:
        """Drop every entry for a business, or just one entity type. Returns the count."""
        wanted_type = CacheEntity(entity_type).value if entity_type else None
        with self._lock:
            doomed = [
                key
                for key in self._entries
                if key[1] == str(business_id) and (wanted_type is None or key[0] == wanted_type)
            ]
            for key in doomed:
                del self._entries[key]
        if doomed:
            logger.debug(f"[CACHE] Invalidated {len(doomed)} entries for business {business_id} ({wanted_type or 'all'})")
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> dict[str, Any]:
        with self._lock:
            keys = [":".join(part for part in key if part) for key in self._entries]
        return {"size": len(keys), "keys": keys}


class CachedBusinessData:
    """Read-through fetchers over a SchedulingStore.

    Every store call is bounded by ``store_timeout_seconds``; failures and
    timeouts surface as StoreUnavailableError.
    """

    def __init__(self, store: SchedulingStore, cache: BusinessDataCache, settings: SchedulingSettings):
        self.store = store
        self.cache = cache
        self.settings = settings

    async def call_store(self, description: str, factory: Callable[[], Awaitable[T]]) -> T:
        try:
            return await asyncio.wait_for(factory(), timeout=self.settings.store_timeout_seconds)
        except asyncio.TimeoutError as exc:
            logger.error(f"Store timed out while {description}")
            raise StoreUnavailableError(f"Timed out while {description}") from exc
        except StoreUnavailableError:
            raise
        except Exception as exc:
            logger.exception(f"Store failed while {description}")
            raise StoreUnavailableError(f"Store failed while {description}") from exc

    async def _read_through(
        self,
        entity: CacheEntity,
        business_id: str,
        description: str,
        factory: Callable[[], Awaitable[T]],
        qualifier: Optional[str] = None,
    ) -> T:
        cached = self.cache.get(entity, business_id, qualifier)
        if cached is not None:
            logger.debug(f"[CACHE HIT] {description} for business {business_id}")
            return cached
        logger.debug(f"[CACHE MISS] Fetching {description} for business {business_id}")
        value = await self.call_store(f"fetching {description}", factory)
        self.cache.set(entity, business_id, value, qualifier)
        return value

    async def get_business(self, business_id: str) -> Optional[BusinessRecord]:
        return await self._read_through(
            CacheEntity.BUSINESS, business_id, "business", lambda: self.store.get_business(business_id)
        )

    async def get_calendar_config(self, business: BusinessRecord) -> BusinessCalendarConfig:
        hours = await self._read_through(
            CacheEntity.HOURS, business.id, "business hours", lambda: self.store.get_business_hours(business.id)
        )
        return BusinessCalendarConfig.build(
            business_id=business.id,
            timezone=business.timezone or self.settings.default_timezone,
            hours=hours,
            slot_interval_minutes=business.slot_interval_minutes,
        )

    async def get_services(self, business_id: str) -> list[ServiceDefinition]:
        return await self._read_through(
            CacheEntity.SERVICES, business_id, "services", lambda: self.store.get_services(business_id)
        )

    async def get_staff(self, business_id: str) -> list[StaffMember]:
        return await self._read_through(
            CacheEntity.STAFF, business_id, "staff", lambda: self.store.get_staff(business_id)
        )

    async def get_staff_schedule(self, staff_id: str, business_id: str) -> ResourceScheduleOverride:
        hours = await self._read_through(
            CacheEntity.STAFF_HOURS,
            business_id,
            f"staff hours ({staff_id})",
            lambda: self.store.get_staff_hours(staff_id),
            qualifier=f"staff:{staff_id}",
        )
        return ResourceScheduleOverride.build(staff_id, business_id, hours)

    async def get_appointments(
        self,
        business_id: str,
        timezone: str,
        start_day: date,
        days_ahead: int,
        staff_id: Optional[str] = None,
    ) -> list[AppointmentRecord]:
        """Appointments starting within ``days_ahead`` local days from ``start_day``."""
        days = max(1, days_ahead)
        start, end = local_day_window(start_day, days, timezone)
        scope = f"staff:{staff_id}" if staff_id else "all"
        return await self._read_through(
            CacheEntity.APPOINTMENTS,
            business_id,
            f"appointments ({scope}, {start_day.isoformat()} +{days}d)",
            lambda: self.store.get_appointments(business_id, staff_id=staff_id, start=start, end=end),
            qualifier=f"{scope}:{start_day.isoformat()}:{days}",
        )

    async def fetch_live_appointments(
        self,
        business_id: str,
        start: datetime,
        end: datetime,
        staff_id: Optional[str] = None,
    ) -> list[AppointmentRecord]:
        """Uncached read used right before a write."""
        return await self.call_store(
            "re-reading appointments",
            lambda: self.store.get_appointments(business_id, staff_id=staff_id, start=start, end=end),
        )

    async def prime(self, business_id: str) -> None:
        """Reload the mostly-static entities for a business into the cache."""
        self.cache.invalidate(business_id)
        business = await self.get_business(business_id)
        if business is None:
            return
        await self.get_calendar_config(business)
        await self.get_services(business_id)
        await self.get_staff(business_id)


def local_day_window(start_day: date, days: int, tz: str) -> tuple[datetime, datetime]:
    """UTC bounds of ``days`` whole local days starting at ``start_day``."""
    end_day = start_day + timedelta(days=days)
    return (
        to_absolute_instant(start_day.year, start_day.month, start_day.day, 0, 0, tz),
        to_absolute_instant(end_day.year, end_day.month, end_day.day, 0, 0, tz),
    )
