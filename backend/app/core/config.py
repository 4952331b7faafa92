from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

FALLBACK_TIMEZONE = "America/New_York"


@dataclass
class SchedulingSettings:
    """Runtime knobs for the scheduling engine.

    Loaded once at process start; tests construct their own instance
    instead of touching the environment.
    """

    default_timezone: str = FALLBACK_TIMEZONE
    default_ttl_seconds: float = 300.0
    appointments_ttl_seconds: float = 120.0
    store_timeout_seconds: float = 3.0
    refresh_debounce_seconds: float = 2.0
    range_max_days: int = 14
    range_target_days: int = 5
    booking_horizon_days: int = 365


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={raw!r}, using {default}")
        return default


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={raw!r}, using {default}")
        return default


def get_scheduling_settings() -> SchedulingSettings:
    """Load scheduling settings from environment variables."""
    return SchedulingSettings(
        default_timezone=os.getenv("DEFAULT_TIMEZONE", FALLBACK_TIMEZONE).strip() or FALLBACK_TIMEZONE,
        default_ttl_seconds=_float_env("CACHE_DEFAULT_TTL_SECONDS", 300.0),
        appointments_ttl_seconds=_float_env("CACHE_APPOINTMENTS_TTL_SECONDS", 120.0),
        store_timeout_seconds=_float_env("STORE_TIMEOUT_SECONDS", 3.0),
        refresh_debounce_seconds=_float_env("REFRESH_DEBOUNCE_SECONDS", 2.0),
        range_max_days=_int_env("RANGE_MAX_DAYS", 14),
        range_target_days=_int_env("RANGE_TARGET_DAYS", 5),
        booking_horizon_days=_int_env("BOOKING_HORIZON_DAYS", 365),
    )


def configure_logging() -> None:
    """Configure root logging from LOG_LEVEL (defaults to INFO)."""
    level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
