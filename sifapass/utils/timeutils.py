"""
SifaPass Billing - Time Helpers

All billing timestamps are timezone-aware UTC.
"""

import math
import time
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def month_start(moment: Optional[datetime] = None) -> datetime:
    """First instant of the UTC month containing ``moment``."""
    moment = ensure_utc(moment) or utcnow()
    return moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def unix_millis() -> int:
    return int(time.time() * 1000)


def ceil_days(start: datetime, end: datetime) -> int:
    """Whole days between two instants, rounded up."""
    seconds = (ensure_utc(end) - ensure_utc(start)).total_seconds()
    return math.ceil(seconds / 86400)


def isoformat(value: Optional[datetime]) -> Optional[str]:
    value = ensure_utc(value)
    return value.isoformat() if value else None
