# tasks/password_reset.py - Celery Task for Password Reset Mail
# ============================================================================

import asyncio
import logging

from app.core.database import async_session_maker, engine
from app.services.auth import AuthService
from app.services.dispatch import NonRetriableError
from app.tasks.celery_app import TASK_RETRY_OPTIONS, celery_app

logger = logging.getLogger(__name__)


async def send_password_reset_async(email: str):
    try:
        async with async_session_maker() as db:
            await AuthService().issue_password_reset(email, db)
    finally:
        await engine.dispose()


@celery_app.task(name="user/forgot-password", bind=True, **TASK_RETRY_OPTIONS)
def send_password_reset_task(self, email: str):
    try:
        asyncio.run(send_password_reset_async(email))
    except NonRetriableError as e:
        logger.info(f"Password reset skipped: {e}")
        return {"success": False}
    return {"success": True}
