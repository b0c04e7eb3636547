from celery import Celery
from app.core.config import settings

# Create Celery app
celery_app = Celery(
    "mydoctor_scheduling",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["app.workers.tasks"]
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Worker settings
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    worker_max_tasks_per_child=1000,

    # Beat schedule (periodic tasks)
    beat_schedule={
        "appointment-notifications-every-minute": {
            "task": "app.workers.tasks.dispatch_appointment_notifications",
            "schedule": 60.0,
            # A tick that waits longer than its period is superseded by the next one
            "options": {"expires": 55},
        },
    },

    # Result backend settings
    result_expires=3600,  # 1 hour
    task_ignore_result=False,

    broker_connection_retry_on_startup=True,
)
