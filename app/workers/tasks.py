from loguru import logger

from app.domain.appointments.reminders import AppointmentReminderService
from app.infrastructure.database import SessionLocal
from app.workers.celery_app import celery_app


@celery_app.task(name="app.workers.tasks.dispatch_appointment_notifications")
def dispatch_appointment_notifications():
    """
    Periodic tick: notify parties of online appointments about to start.
    """
    db = SessionLocal()
    try:
        result = AppointmentReminderService(db).run()
        if result["upcoming"] or result["starting"]:
            logger.info(
                f"Appointment notifications sent: {result['upcoming']} upcoming, {result['starting']} starting"
            )
        return result
    except Exception as e:
        logger.error(f"Appointment notification tick failed: {e}")
        raise
    finally:
        db.close()
