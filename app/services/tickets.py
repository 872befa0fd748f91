# services/tickets.py - Ticket store & lifecycle
# ============================================================================

import logging
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import HTTPException
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.ticket import Ticket, TicketStatus
from app.models.user import ResolvedTicketEntry, User, UserRole
from app.schemas.ticket import ModeratorStats, SolvedHistoryItem, TicketPublicResponse, TicketResponse
from app.services.auth import Principal
from app.services.credits import CreditLedger
from app.services.dispatch import enqueue
from app.services.ticket_agent import process_ticket
from app.tasks.ticket_processor import process_ticket_task

logger = logging.getLogger(__name__)

RESOLUTION_POINTS = 10
MODERATOR_STATUSES = {TicketStatus.PENDING.value, TicketStatus.RESOLVED.value}
SOLVED_HISTORY_LIMIT = 100


def serialize_ticket(ticket: Ticket, principal: Principal) -> dict:
    if principal.is_staff:
        return TicketResponse.model_validate(ticket).model_dump()
    return TicketPublicResponse.model_validate(ticket).model_dump()


class TicketService:
    def __init__(self, ledger: Optional[CreditLedger] = None):
        self.ledger = ledger or CreditLedger()

    async def _load(self, db: AsyncSession, ticket_id: int) -> Optional[Ticket]:
        return await db.get(Ticket, ticket_id, populate_existing=True)

    async def _stats(self, db: AsyncSession, user_id: int) -> Optional[ModeratorStats]:
        user = await db.get(User, user_id, populate_existing=True)
        return ModeratorStats.model_validate(user) if user else None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_tickets(self, db: AsyncSession, principal: Principal) -> List[dict]:
        query = select(Ticket).order_by(Ticket.created_at.desc(), Ticket.id.desc())
        if not principal.is_staff:
            query = query.where(Ticket.created_by == principal.id)
        result = await db.execute(query)
        return [serialize_ticket(ticket, principal) for ticket in result.scalars().all()]

    async def get_ticket(self, db: AsyncSession, principal: Principal, ticket_id: int) -> dict:
        ticket = await self._load(db, ticket_id)
        if not ticket or (not principal.is_staff and ticket.created_by != principal.id):
            raise HTTPException(status_code=404, detail="Ticket not found!")
        return {"ticket": serialize_ticket(ticket, principal)}

    async def list_assigned(self, db: AsyncSession, principal: Principal) -> dict:
        if not principal.is_moderator:
            raise HTTPException(status_code=403, detail="Forbidden")

        result = await db.execute(
            select(Ticket)
            .where(Ticket.assigned_to == principal.id, Ticket.status != TicketStatus.RESOLVED.value)
            .order_by(Ticket.created_at.desc(), Ticket.id.desc())
        )
        tickets = [TicketResponse.model_validate(t).model_dump() for t in result.scalars().all()]

        history = await db.execute(
            select(ResolvedTicketEntry)
            .where(ResolvedTicketEntry.user_id == principal.id)
            .order_by(ResolvedTicketEntry.resolved_at.desc(), ResolvedTicketEntry.id.desc())
            .limit(SOLVED_HISTORY_LIMIT)
        )
        solved_history = [SolvedHistoryItem.model_validate(e).model_dump() for e in history.scalars().all()]

        return {
            "tickets": tickets,
            "solved_history": solved_history,
            "moderator_stats": await self._stats(db, principal.id),
        }

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_ticket(
        self,
        db: AsyncSession,
        principal: Principal,
        title: Optional[str],
        description: Optional[str],
    ) -> dict:
        title = (title or "").strip()
        description = (description or "").strip()
        if not title or not description:
            raise HTTPException(status_code=400, detail="Title and description are required.")

        credits = None
        if principal.role == UserRole.USER:
            credits = await self.ledger.debit_one(db, principal.id)
            if credits is None:
                raise HTTPException(
                    status_code=402,
                    detail={
                        "code": "CREDIT_EXHAUSTED",
                        "message": "No credits remaining. Please subscribe to continue creating tickets.",
                    },
                )

        try:
            ticket = Ticket(title=title, description=description, created_by=principal.id)
            db.add(ticket)
            await db.commit()
            await db.refresh(ticket)

            queued = enqueue(process_ticket_task, ticket_id=ticket.id)
            if not queued:
                await process_ticket(db, ticket.id, send_notification=True)

            ticket = await self._load(db, ticket.id)
        except Exception as e:
            if credits is not None:
                await self.ledger.refund(db, principal.id)
            logger.error(f"❌ Error creating ticket for user {principal.id}: {e}")
            raise HTTPException(status_code=500, detail="Ticket creation failed.")

        logger.info(f"🎫 Ticket {ticket.id} created by user {principal.id}")
        return {
            "message": "Ticket created successfully. AI agent is processing it."
            if queued
            else "Ticket created and processed by local AI fallback.",
            "ticket": TicketResponse.model_validate(ticket).model_dump(),
            "credits": credits,
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _check_can_modify(self, principal: Principal, ticket: Ticket, action: str) -> None:
        if not principal.is_staff:
            raise HTTPException(status_code=403, detail="Forbidden")
        if principal.is_moderator and ticket.assigned_to != principal.id:
            raise HTTPException(status_code=403, detail=f"You can only {action} your assigned tickets.")

    async def _trim_solved_history(self, db: AsyncSession, user_id: int) -> None:
        keep = (
            select(ResolvedTicketEntry.id)
            .where(ResolvedTicketEntry.user_id == user_id)
            .order_by(ResolvedTicketEntry.resolved_at.desc(), ResolvedTicketEntry.id.desc())
            .limit(SOLVED_HISTORY_LIMIT)
        )
        await db.execute(
            delete(ResolvedTicketEntry)
            .where(ResolvedTicketEntry.user_id == user_id, ResolvedTicketEntry.id.not_in(keep))
            .execution_options(synchronize_session=False)
        )

    async def _resolve(self, db: AsyncSession, ticket: Ticket, principal: Principal) -> bool:
        now = datetime.now(timezone.utc)
        points = RESOLUTION_POINTS if principal.is_moderator else 0
        result = await db.execute(
            update(Ticket)
            .where(Ticket.id == ticket.id, Ticket.status != TicketStatus.RESOLVED.value)
            .values(
                status=TicketStatus.RESOLVED.value,
                resolved_at=now,
                resolved_by=principal.id,
                points_awarded=points,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await db.rollback()
            return False

        if points:
            await db.execute(
                update(User)
                .where(User.id == principal.id)
                .values(
                    issues_resolved=User.issues_resolved + 1,
                    score=User.score + points,
                )
                .execution_options(synchronize_session=False)
            )
            await db.execute(
                delete(ResolvedTicketEntry)
                .where(
                    ResolvedTicketEntry.user_id == principal.id,
                    ResolvedTicketEntry.ticket_id == ticket.id,
                )
                .execution_options(synchronize_session=False)
            )
            db.add(ResolvedTicketEntry(user_id=principal.id, ticket_id=ticket.id, title=ticket.title, resolved_at=now))
            await db.flush()
            await self._trim_solved_history(db, principal.id)

        await db.commit()
        return True

    async def _reopen(self, db: AsyncSession, ticket: Ticket, new_status: str) -> bool:
        """Undo the resolution this ticket was loaded with, and exactly its award."""
        resolver_id = ticket.resolved_by
        points = ticket.points_awarded or 0
        same_resolution = (
            Ticket.resolved_by.is_(None) if resolver_id is None else Ticket.resolved_by == resolver_id
        )
        result = await db.execute(
            update(Ticket)
            .where(
                Ticket.id == ticket.id,
                Ticket.status == TicketStatus.RESOLVED.value,
                same_resolution,
                Ticket.points_awarded == points,
            )
            .values(status=new_status, resolved_at=None, resolved_by=None, points_awarded=0)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await db.rollback()
            return False

        if resolver_id is not None and points:
            await db.execute(
                update(User)
                .where(User.id == resolver_id)
                .values(
                    issues_resolved=User.issues_resolved - 1,
                    score=User.score - points,
                )
                .execution_options(synchronize_session=False)
            )

        await db.commit()
        return True

    async def update_status(
        self,
        db: AsyncSession,
        principal: Principal,
        ticket_id: int,
        status: Optional[str],
    ) -> dict:
        if not principal.is_staff:
            raise HTTPException(status_code=403, detail="Forbidden")

        new_status = str(status or "").strip().upper()
        if new_status not in MODERATOR_STATUSES:
            raise HTTPException(status_code=400, detail="Invalid status. Use PENDING or RESOLVED.")

        ticket = await self._load(db, ticket_id)
        if not ticket:
            raise HTTPException(status_code=404, detail="Ticket not found")
        self._check_can_modify(principal, ticket, "update")

        previous = str(ticket.status or "").upper()
        duplicate = False

        if new_status == TicketStatus.RESOLVED:
            duplicate = not await self._resolve(db, ticket, principal)
        elif previous == TicketStatus.RESOLVED:
            if not await self._reopen(db, ticket, new_status):
                # Reopened by someone else in the meantime
                duplicate = True
        else:
            await db.execute(
                update(Ticket)
                .where(Ticket.id == ticket.id)
                .values(status=new_status)
                .execution_options(synchronize_session=False)
            )
            await db.commit()

        ticket = await self._load(db, ticket_id)
        logger.info(f"Ticket {ticket_id} status {previous} -> {ticket.status} by user {principal.id}")
        response = {
            "message": "Ticket status updated successfully." if not duplicate else "Ticket already in that state.",
            "ticket": TicketResponse.model_validate(ticket).model_dump(),
            "moderator_stats": await self._stats(db, principal.id),
        }
        if duplicate:
            response["duplicate"] = True
        return response

    async def delete_ticket(self, db: AsyncSession, principal: Principal, ticket_id: int) -> dict:
        if not principal.is_staff:
            raise HTTPException(status_code=403, detail="Forbidden")

        ticket = await self._load(db, ticket_id)
        if not ticket:
            raise HTTPException(status_code=404, detail="Ticket not found")
        self._check_can_modify(principal, ticket, "delete")

        if ticket.resolved_by is not None:
            await db.execute(
                update(ResolvedTicketEntry)
                .where(
                    ResolvedTicketEntry.user_id == ticket.resolved_by,
                    ResolvedTicketEntry.ticket_id == ticket.id,
                )
                .values(deleted_at=datetime.now(timezone.utc))
                .execution_options(synchronize_session=False)
            )

        await db.delete(ticket)
        await db.commit()
        logger.info(f"🗑️ Ticket {ticket_id} deleted by user {principal.id}")

        return {
            "message": "Ticket deleted successfully.",
            "moderator_stats": await self._stats(db, principal.id) if principal.is_moderator else None,
        }
