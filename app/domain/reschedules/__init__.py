# Reschedules domain module
from app.domain.reschedules.models import OPEN_STATUSES, RescheduleRequest, RescheduleStatus

__all__ = [
    "OPEN_STATUSES",
    "RescheduleRequest",
    "RescheduleStatus",
]
