# tasks/celery_app.py - Celery application
# ============================================================================

from celery import Celery

from app.core.config import settings

celery_app = Celery(
    "helpdesk",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["app.tasks.ticket_processor", "app.tasks.password_reset"],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    task_acks_late=True,
    broker_connection_timeout=3,
    result_expires=3600,
)

TASK_RETRY_OPTIONS = {
    "autoretry_for": (Exception,),
    "max_retries": 2,
    "retry_backoff": True,
    "retry_jitter": True,
}
