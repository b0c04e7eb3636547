"""
Subscription plan policy.

Each tier caps private (in-person) consultations, video consultations and
chat sessions independently. ``None`` means no ceiling. Usage is measured over
the rolling window ``[expires_at - duration_in_days, expires_at]``.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional


@dataclass(frozen=True)
class PlanLimits:
    private_consultations: Optional[int]
    video_consultations: Optional[int]
    chat_sessions: Optional[int]


@dataclass(frozen=True)
class PlanPolicy:
    name: str
    limits: Optional[PlanLimits]
    duration_in_days: int
    price: float


@dataclass(frozen=True)
class SubscriptionWindow:
    start: datetime
    end: datetime


@dataclass(frozen=True)
class Usage:
    private_consultations: int = 0
    video_consultations: int = 0
    chat_sessions: int = 0


FIXED_PLANS: Dict[str, PlanPolicy] = {
    "BASIC": PlanPolicy(
        name="BASIC",
        limits=PlanLimits(private_consultations=10, video_consultations=5, chat_sessions=15),
        duration_in_days=30,
        price=29,
    ),
    "PRO": PlanPolicy(
        name="PRO",
        limits=PlanLimits(private_consultations=20, video_consultations=10, chat_sessions=30),
        duration_in_days=30,
        price=59,
    ),
    "PREMIUM": PlanPolicy(
        name="PREMIUM",
        limits=PlanLimits(private_consultations=None, video_consultations=None, chat_sessions=None),
        duration_in_days=30,
        price=99,
    ),
}

# Names used by older plan records
LEGACY_PLAN_ALIASES = {"FULL": "PREMIUM", "MEDIUM": "PRO"}

LIMIT_LABELS = {
    "private_consultations": "Private Consultation",
    "video_consultations": "Video Consultation",
    "chat_sessions": "Chat",
}


def normalize_plan_name(plan_name: Optional[str]) -> str:
    name = (plan_name or "").strip().upper()
    return LEGACY_PLAN_ALIASES.get(name, name)


def get_plan_policy(plan_name: Optional[str]) -> Optional[PlanPolicy]:
    return FIXED_PLANS.get(normalize_plan_name(plan_name))


def subscription_window(
    expires_at: Optional[datetime],
    duration_in_days: Optional[int]
) -> Optional[SubscriptionWindow]:
    """Rolling usage window ending at the subscription expiry"""
    if not expires_at or not duration_in_days:
        return None
    return SubscriptionWindow(start=expires_at - timedelta(days=duration_in_days), end=expires_at)


def compute_remaining(limits: Optional[PlanLimits], usage: Usage) -> Optional[Dict[str, Optional[int]]]:
    """Remaining allowance per limit; ``None`` for unlimited"""
    if limits is None:
        return None

    def remaining(limit: Optional[int], used: int) -> Optional[int]:
        if limit is None:
            return None
        return max(limit - used, 0)

    return {
        "private_consultations": remaining(limits.private_consultations, usage.private_consultations),
        "video_consultations": remaining(limits.video_consultations, usage.video_consultations),
        "chat_sessions": remaining(limits.chat_sessions, usage.chat_sessions),
    }

