# tasks/ticket_processor.py - Celery Task for Ticket Analysis
# ============================================================================

import asyncio
import logging

from app.core.database import async_session_maker, engine
from app.services.dispatch import NonRetriableError
from app.services.ticket_agent import process_ticket
from app.tasks.celery_app import TASK_RETRY_OPTIONS, celery_app

logger = logging.getLogger(__name__)


async def process_ticket_async(ticket_id: int):
    try:
        async with async_session_maker() as db:
            ticket = await process_ticket(db, ticket_id, send_notification=True)
            return ticket.id
    finally:
        # Pooled connections belong to this task's event loop
        await engine.dispose()


@celery_app.task(name="ticket/created", bind=True, **TASK_RETRY_OPTIONS)
def process_ticket_task(self, ticket_id: int):
    """
    Analyze a newly created ticket:
    1. Mark it TODO
    2. Ask the AI model for summary, priority, notes and skills
    3. Mark it PENDING and assign a moderator
    4. Notify the assignee
    """
    try:
        asyncio.run(process_ticket_async(ticket_id))
    except NonRetriableError as e:
        logger.error(f"❌ Not retrying ticket {ticket_id}: {e}")
        return {"success": False, "error": str(e)}
    return {"success": True}
