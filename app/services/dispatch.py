# services/dispatch.py - Background dispatch with inline fallback
# ============================================================================

import logging

from app.core.config import settings

logger = logging.getLogger(__name__)


class NonRetriableError(Exception):
    """Raised by background work that must not be retried (e.g. missing record)."""


def enqueue(task, **kwargs) -> bool:
    """Submit a Celery task without waiting on the broker.

    Returns False when the queue is disabled or the broker refused the message;
    the caller is then expected to run the same operation inline.
    """
    if not settings.TASK_QUEUE_ENABLED:
        logger.info(f"Task queue disabled, {task.name} will run inline")
        return False

    try:
        task.apply_async(kwargs=kwargs, retry=False)
    except Exception as e:
        logger.error(f"❌ Could not dispatch {task.name}, running local fallback: {e}")
        return False

    logger.info(f"📨 Dispatched {task.name}")
    return True
