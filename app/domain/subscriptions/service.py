"""
Subscription Quota Enforcement

Gates new bookings and chat sessions on the doctor's plan. Checks are
advisory: they read usage and raise, but never write.
"""

from dataclasses import replace
from typing import Any, Dict, Optional
import logging
import uuid

from app.core.clock import Clock, aware_utc, utc_now
from app.core.exceptions import NotFoundError, QuotaExceededError, SubscriptionInactiveError
from app.domain.accounts.repository import UserRepository
from app.domain.appointments.models import BookingType
from app.domain.subscriptions.policy import (
    LIMIT_LABELS,
    PlanPolicy,
    SubscriptionWindow,
    Usage,
    compute_remaining,
    get_plan_policy,
    subscription_window,
)
from app.domain.subscriptions.repository import SubscriptionUsageRepository

logger = logging.getLogger(__name__)

BOOKING_LIMIT_FIELDS = {
    BookingType.VISIT: "private_consultations",
    BookingType.ONLINE: "video_consultations",
}


class PlanPolicySource:
    """Resolves a subscription plan id to its policy.

    Plans named in the fixed catalog take their limits from it; the stored
    row supplies duration and price. Unknown plan names carry no limits.
    """

    def __init__(self, db):
        self.usage_repo = SubscriptionUsageRepository(db)

    def get_plan(self, plan_id: uuid.UUID) -> Optional[PlanPolicy]:
        plan = self.usage_repo.get_plan(plan_id)
        if plan is None:
            return None

        policy = get_plan_policy(plan.name)
        if policy is None:
            return PlanPolicy(
                name=plan.name,
                limits=None,
                duration_in_days=plan.duration_in_days,
                price=plan.price or 0,
            )
        return replace(
            policy,
            duration_in_days=plan.duration_in_days or policy.duration_in_days,
            price=plan.price if plan.price is not None else policy.price,
        )


class SubscriptionQuotaService:
    """Checks a doctor's plan limits against usage in the rolling window"""

    def __init__(self, db, plans: Optional[PlanPolicySource] = None, clock: Clock = utc_now):
        self.db = db
        self.plans = plans or PlanPolicySource(db)
        self.clock = clock
        self.user_repo = UserRepository(db)
        self.usage_repo = SubscriptionUsageRepository(db)

    def _active_subscription(self, doctor_id: uuid.UUID):
        profile = self.user_repo.get_doctor_profile(doctor_id)
        if profile is None:
            raise NotFoundError("Doctor not found")

        expires_at = aware_utc(profile.subscription_expires_at)
        if not profile.subscription_plan_id or expires_at is None or expires_at <= self.clock():
            raise SubscriptionInactiveError(
                "Doctor does not have an active subscription",
                details={"doctor_id": str(doctor_id)}
            )

        policy = self.plans.get_plan(profile.subscription_plan_id)
        if policy is None:
            raise SubscriptionInactiveError(
                "Doctor's subscription plan no longer exists",
                details={"doctor_id": str(doctor_id)}
            )

        window = subscription_window(expires_at, policy.duration_in_days)
        return policy, window

    def _usage(self, doctor_id: uuid.UUID, window: SubscriptionWindow) -> Usage:
        return Usage(
            private_consultations=self.usage_repo.count_appointments(
                doctor_id, BookingType.VISIT, window.start, window.end
            ),
            video_consultations=self.usage_repo.count_appointments(
                doctor_id, BookingType.ONLINE, window.start, window.end
            ),
            chat_sessions=self.usage_repo.count_conversations(doctor_id, window.start, window.end),
        )

    def _enforce(self, policy: PlanPolicy, field: str, used: int) -> None:
        if policy.limits is None:
            return
        limit = getattr(policy.limits, field)
        if limit is not None and used >= limit:
            label = LIMIT_LABELS[field]
            logger.info(f"Quota reached: {field} {used}/{limit} on plan {policy.name}")
            raise QuotaExceededError(
                f"Doctor has reached the maximum limit of {limit} {label} "
                f"sessions for the {policy.name} plan",
                details={"limit_type": field, "limit": limit, "used": used, "plan": policy.name}
            )

    def check_booking_allowed(self, doctor_id: uuid.UUID, booking_type: BookingType) -> None:
        """Raise unless the doctor may accept another booking of this type"""
        policy, window = self._active_subscription(doctor_id)
        field = BOOKING_LIMIT_FIELDS[BookingType(booking_type)]
        used = self.usage_repo.count_appointments(
            doctor_id, BookingType(booking_type), window.start, window.end
        )
        self._enforce(policy, field, used)

    def check_chat_allowed(self, doctor_id: uuid.UUID) -> None:
        """Raise unless the doctor may open another chat session"""
        policy, window = self._active_subscription(doctor_id)
        used = self.usage_repo.count_conversations(doctor_id, window.start, window.end)
        self._enforce(policy, "chat_sessions", used)

    def get_usage_summary(self, doctor_id: uuid.UUID) -> Dict[str, Any]:
        policy, window = self._active_subscription(doctor_id)
        usage = self._usage(doctor_id, window)
        limits = None
        if policy.limits is not None:
            limits = {
                "private_consultations": policy.limits.private_consultations,
                "video_consultations": policy.limits.video_consultations,
                "chat_sessions": policy.limits.chat_sessions,
            }
        return {
            "plan": policy.name,
            "window_start": window.start,
            "window_end": window.end,
            "limits": limits,
            "usage": {
                "private_consultations": usage.private_consultations,
                "video_consultations": usage.video_consultations,
                "chat_sessions": usage.chat_sessions,
            },
            "remaining": compute_remaining(policy.limits, usage),
        }
