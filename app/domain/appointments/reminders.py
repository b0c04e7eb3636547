"""
Upcoming and starting-now notifications for confirmed online appointments.

Runs once a minute from the worker. No exactly-once delivery is assumed:
each send first checks for a notification recorded for the same
appointment and action within a recent interval.
"""

from datetime import timedelta
from typing import Dict, List, Optional
import logging

from app.core.clock import Clock, utc_now
from app.core.config import settings
from app.core.exceptions import ValidationError
from app.domain.appointments.models import Appointment
from app.domain.appointments.repository import AppointmentRepository
from app.domain.appointments.time_window import appointment_start_utc
from app.infrastructure.notifications import (
    DatabaseNotificationSink, NotificationSink, recently_notified, safe_notify
)

logger = logging.getLogger(__name__)

UPCOMING_ACTION = "APPOINTMENT_UPCOMING"
STARTING_ACTION = "APPOINTMENT_STARTING"

UPCOMING_DEDUP_WINDOW = timedelta(minutes=10)
STARTING_DEDUP_WINDOW = timedelta(minutes=5)
STARTING_TOLERANCE = timedelta(minutes=1)


class AppointmentReminderService:
    def __init__(
        self,
        db,
        notifier: Optional[NotificationSink] = None,
        clock: Clock = utc_now,
        lead_minutes: Optional[int] = None,
    ):
        self.db = db
        self.clock = clock
        self.notifier = notifier or DatabaseNotificationSink(db, clock)
        self.lead = timedelta(minutes=settings.REMINDER_LEAD_MINUTES if lead_minutes is None else lead_minutes)
        self.appointment_repo = AppointmentRepository(db)

    def _candidates(self, now) -> List[Appointment]:
        # Calendar dates are local; one day either side covers every offset
        today = now.date()
        return self.appointment_repo.confirmed_online_between(
            today - timedelta(days=1), today + timedelta(days=1)
        )

    def _start_of(self, appointment: Appointment):
        try:
            return appointment_start_utc(appointment)
        except ValidationError as e:
            logger.warning(f"Skipping appointment {appointment.id} with unreadable schedule: {e.message}")
            return None

    def _notify_parties(self, appointment: Appointment, action: str, title: str, body: str) -> None:
        metadata = {
            "type": "APPOINTMENT",
            "action": action,
            "appointment_id": str(appointment.id),
            "video_call_link": appointment.video_call_link,
        }
        for user_id in (appointment.patient_id, appointment.doctor_id):
            safe_notify(self.notifier, user_id, title, body, metadata)

    def send_upcoming_notifications(self) -> int:
        """Notify both parties of appointments starting within the lead time"""
        now = self.clock()
        sent = 0
        for appointment in self._candidates(now):
            start = self._start_of(appointment)
            if start is None:
                continue
            until_start = start - now
            if not (self.lead - timedelta(minutes=1) < until_start <= self.lead):
                continue
            if recently_notified(self.db, appointment.id, UPCOMING_ACTION, now - UPCOMING_DEDUP_WINDOW):
                continue

            minutes = max(int(until_start.total_seconds() // 60), 1)
            self._notify_parties(
                appointment,
                UPCOMING_ACTION,
                "Appointment starting soon",
                f"Your video consultation starts in {minutes} minutes.",
            )
            sent += 1
        return sent

    def send_start_notifications(self) -> int:
        """Notify both parties of appointments starting now"""
        now = self.clock()
        sent = 0
        for appointment in self._candidates(now):
            start = self._start_of(appointment)
            if start is None:
                continue
            if abs(start - now) > STARTING_TOLERANCE:
                continue
            if recently_notified(self.db, appointment.id, STARTING_ACTION, now - STARTING_DEDUP_WINDOW):
                continue

            self._notify_parties(
                appointment,
                STARTING_ACTION,
                "Appointment starting now",
                "Your video consultation is starting now. Join the call from your appointment.",
            )
            sent += 1
        return sent

    def run(self) -> Dict[str, int]:
        return {
            "upcoming": self.send_upcoming_notifications(),
            "starting": self.send_start_notifications(),
        }
