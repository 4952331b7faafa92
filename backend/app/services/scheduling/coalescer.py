from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

RefreshCallback = Callable[[str], Awaitable[None]]


class UpdateCoalescer:
    """Debounces per-business refreshes.

    Each ``schedule_refresh`` call (re)arms a timer for that business; the
    refresh runs once, ``delay_seconds`` after the last call in a burst.
    Timers for different businesses are independent.
    """

    def __init__(self, refresh: RefreshCallback, delay_seconds: float = 2.0):
        self._refresh = refresh
        self.delay_seconds = delay_seconds
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._running: set[asyncio.Task] = set()

    def schedule_refresh(self, business_id: str, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        key = str(business_id)
        loop = loop or asyncio.get_running_loop()
        existing = self._timers.pop(key, None)
        if existing is not None:
            existing.cancel()
            logger.debug(f"Re-armed refresh timer for business {key}")
        self._timers[key] = loop.call_later(self.delay_seconds, self._fire, key)

    def _fire(self, business_id: str) -> None:
        self._timers.pop(business_id, None)
        task = asyncio.ensure_future(self._run(business_id))
        self._running.add(task)
        task.add_done_callback(self._running.discard)

    async def _run(self, business_id: str) -> None:
        logger.info(f"Running coalesced refresh for business {business_id}")
        try:
            await self._refresh(business_id)
        except Exception:
            logger.exception(f"Coalesced refresh failed for business {business_id}")

    def is_pending(self, business_id: str) -> bool:
        return str(business_id) in self._timers

    @property
    def pending_count(self) -> int:
        return len(self._timers)

    async def shutdown(self) -> None:
        """Cancel armed timers and wait for refreshes already running."""
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        if self._running:
            await asyncio.gather(*self._running, return_exceptions=True)
