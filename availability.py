"""
Store availability gate.

Decides whether a store accepts new orders right now from its manual live
flag and optional weekly operating schedule. Pure: no I/O, the clock is an
argument.
"""

from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from schemas import StoreSettings

DEFAULT_OFFSET = timedelta(hours=5, minutes=30)


def parse_hhmm(value: str) -> Optional[int]:
    """Minutes since midnight for ``HH:MM``; None if malformed."""
    try:
        hours, minutes = value.split(":")[:2]
        hours, minutes = int(hours), int(minutes)
    except (AttributeError, ValueError):
        return None
    if not (0 <= hours <= 24 and 0 <= minutes < 60):
        return None
    return hours * 60 + minutes


def resolve_timezone(name: Optional[str], fallback_offset: timedelta = DEFAULT_OFFSET) -> tzinfo:
    if name:
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            pass
    return timezone(fallback_offset)


def is_store_operating_now(settings: StoreSettings, now: Optional[datetime] = None,
                           fallback_offset: timedelta = DEFAULT_OFFSET) -> bool:
    schedule = settings.schedule
    if not schedule.enabled:
        return bool(settings.is_live)

    # Enabled but half configured: stay closed
    if not schedule.days or not schedule.start_time or not schedule.end_time:
        return False
    start = parse_hhmm(schedule.start_time)
    end = parse_hhmm(schedule.end_time)
    if start is None or end is None:
        return False

    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    local = now.astimezone(resolve_timezone(schedule.timezone, fallback_offset))

    weekday = (local.weekday() + 1) % 7  # 0 = Sunday
    if weekday not in schedule.days:
        return False
    minutes = local.hour * 60 + local.minute
    return start <= minutes < end
