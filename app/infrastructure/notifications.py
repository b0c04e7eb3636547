import logging
from datetime import datetime
from typing import Any, Dict, Optional
import uuid

from sqlalchemy import Column, String, Text, DateTime, ForeignKey, JSON, Uuid
from sqlalchemy.sql import func

from app.core.clock import Clock, naive_utc, utc_now
from app.infrastructure.database import Base

logger = logging.getLogger(__name__)


class Notification(Base):
    """In-app notification delivered to a user"""
    __tablename__ = "notifications"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    body = Column(Text, nullable=False)
    type = Column(String(50))
    appointment_id = Column(Uuid, index=True)
    action = Column(String(50), index=True)
    data = Column(JSON, default=dict)

    created_at = Column(DateTime, default=func.now(), index=True)


class NotificationSink:
    """Fire-and-forget notification delivery"""

    def notify(
        self,
        user_id: uuid.UUID,
        title: str,
        body: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        raise NotImplementedError


class DatabaseNotificationSink(NotificationSink):
    """Persists notifications as in-app records.

    Delivery failures are logged and never propagated, so a failing sink
    cannot undo the state transition that triggered it.
    """

    def __init__(self, db, clock: Clock = utc_now):
        self.db = db
        self.clock = clock

    def notify(
        self,
        user_id: uuid.UUID,
        title: str,
        body: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        metadata = dict(metadata or {})
        try:
            appointment_id = metadata.get("appointment_id")
            notification = Notification(
                user_id=user_id,
                title=title,
                body=body,
                type=metadata.get("type"),
                appointment_id=uuid.UUID(str(appointment_id)) if appointment_id else None,
                action=metadata.get("action"),
                data={key: str(value) for key, value in metadata.items()},
                created_at=naive_utc(self.clock()),
            )
            self.db.add(notification)
            self.db.commit()
            logger.info(f"Notification '{title}' sent to user {user_id}")
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to send notification to user {user_id}: {e}")


def recently_notified(
    db,
    appointment_id: uuid.UUID,
    action: str,
    since: datetime
) -> bool:
    """Whether a notification for this appointment/action was recorded after ``since``"""
    return db.query(Notification.id).filter(
        Notification.appointment_id == appointment_id,
        Notification.action == action,
        Notification.created_at >= naive_utc(since),
    ).first() is not None


def safe_notify(
    sink: NotificationSink,
    user_id: uuid.UUID,
    title: str,
    body: str,
    metadata: Optional[Dict[str, Any]] = None
) -> None:
    """Deliver through any sink without letting its failure reach the caller"""
    try:
        sink.notify(user_id, title, body, metadata)
    except Exception as e:
        logger.error(f"Notification sink failed for user {user_id}: {e}")
