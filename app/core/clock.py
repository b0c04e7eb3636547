from datetime import datetime, timezone
from typing import Callable, Optional

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current instant as an aware UTC datetime"""
    return datetime.now(timezone.utc)


def aware_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Read a stored timestamp back as aware UTC (naive values are UTC)"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Timestamps are persisted as naive UTC"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
