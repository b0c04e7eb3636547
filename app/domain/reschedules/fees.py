from typing import Optional, Tuple

from app.core.config import settings


def compute_reschedule_fee(
    original_fee: float,
    percentage: Optional[float] = None,
    fixed_fee: Optional[float] = None,
    min_fee: Optional[float] = None,
    default_percentage: Optional[float] = None,
) -> Tuple[float, Optional[float]]:
    """Fee for moving an appointment, and the percentage it was based on.

    A percentage takes precedence over a fixed fee; with neither, the default
    percentage applies. The result is clamped to ``[min_fee, original_fee]``,
    except that an original fee below the floor is charged as is.
    """
    original_fee = round(float(original_fee or 0), 2)
    min_fee = settings.RESCHEDULE_MIN_FEE if min_fee is None else min_fee

    if percentage is None and fixed_fee is None:
        percentage = settings.RESCHEDULE_DEFAULT_PERCENTAGE if default_percentage is None else default_percentage

    if percentage is not None:
        fee = original_fee * float(percentage) / 100
    else:
        fee = float(fixed_fee)

    if original_fee < min_fee:
        return original_fee, percentage

    fee = max(min_fee, min(original_fee, fee))
    return round(fee, 2), percentage
