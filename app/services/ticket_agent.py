# services/ticket_agent.py - Ticket analysis pipeline
# ============================================================================
#
# Run by the Celery worker and, when dispatch fails, inline by the request
# that created the ticket.

import logging
from typing import Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.ticket import Ticket, TicketStatus
from app.services.ai import TicketAnalyzer
from app.services.assignment import find_best_assignee
from app.services.dispatch import NonRetriableError
from app.services.email import EmailService

logger = logging.getLogger(__name__)

DEFAULT_SUMMARY = "Summary unavailable."
DEFAULT_PRIORITY = "medium"
DEFAULT_NOTES = "AI analysis unavailable. Moderator can proceed manually."


class TicketNotFoundError(NonRetriableError):
    pass


async def _update_ticket(db: AsyncSession, ticket_id: int, **values) -> None:
    await db.execute(
        update(Ticket).where(Ticket.id == ticket_id).values(**values).execution_options(synchronize_session=False)
    )
    await db.commit()


async def process_ticket(
    db: AsyncSession,
    ticket_id: int,
    send_notification: bool = True,
    analyzer: Optional[TicketAnalyzer] = None,
    email_service: Optional[EmailService] = None,
) -> Ticket:
    ticket = await db.get(Ticket, ticket_id, populate_existing=True)
    if not ticket:
        raise TicketNotFoundError(f"Ticket {ticket_id} not found")

    logger.info(f"🔄 Analyzing ticket {ticket_id}")
    await _update_ticket(db, ticket_id, status=TicketStatus.TODO.value)

    analyzer = analyzer or TicketAnalyzer()
    analysis = await analyzer.analyze(ticket.title, ticket.description)

    skills = analysis.related_skills if analysis else []
    await _update_ticket(
        db,
        ticket_id,
        summary=(analysis.summary if analysis else "") or DEFAULT_SUMMARY,
        priority=analysis.priority if analysis else DEFAULT_PRIORITY,
        helpful_notes=(analysis.helpful_notes if analysis else "") or DEFAULT_NOTES,
        related_skills=skills,
        status=TicketStatus.PENDING.value,
    )

    assignee = await find_best_assignee(db, skills, ticket.created_by)
    await _update_ticket(db, ticket_id, assigned_to=assignee.id if assignee else None)

    ticket = await db.get(Ticket, ticket_id, populate_existing=True)
    logger.info(f"✅ Ticket {ticket_id} analyzed, assigned to {assignee.id if assignee else 'nobody'}")

    if send_notification and assignee and assignee.email:
        try:
            await (email_service or EmailService()).send_ticket_assigned(assignee.email, ticket.title)
        except Exception as e:
            logger.error(f"Email notification failed for ticket {ticket_id}: {e}")

    return ticket
