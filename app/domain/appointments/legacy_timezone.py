"""
Compatibility shim for appointment records with missing or mis-stored
timezone offsets.

Older clients never sent an offset, and one release stored +60 for users in
the primary deployment region (UTC+5). Both cases are compensated here so
the resolver itself stays principled. Delete this module once the offsets
have been backfilled.
"""

from typing import Optional

from app.core.config import settings

PRIMARY_REGION_OFFSET_MINUTES = settings.DEFAULT_TIMEZONE_OFFSET_MINUTES
MISSTORED_OFFSET_MINUTES = 60

# Wall-clock hours (local) whose +60 records are known to be mis-stored
MISSTORED_OFFSET_HOURS = range(12, 24)


def compat_timezone_offset(stored_offset: Optional[int], wall_clock_hour: int) -> int:
    """Offset (minutes ahead of UTC) to use for a stored record"""
    if stored_offset is None:
        return PRIMARY_REGION_OFFSET_MINUTES
    if stored_offset == MISSTORED_OFFSET_MINUTES and wall_clock_hour in MISSTORED_OFFSET_HOURS:
        return PRIMARY_REGION_OFFSET_MINUTES
    return stored_offset
