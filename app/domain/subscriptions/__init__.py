# Subscriptions domain module
from app.domain.subscriptions.models import SubscriptionPlan, PlanStatus

__all__ = [
    "SubscriptionPlan",
    "PlanStatus",
]
