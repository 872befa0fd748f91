# routers/tickets.py - Ticket Routes
# ============================================================================

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.schemas.ticket import TicketCreateRequest, TicketStatusRequest
from app.services.auth import Principal
from app.services.tickets import TicketService
from app.routers.deps import get_current_principal

router = APIRouter(prefix="/api/tickets", tags=["tickets"])


@router.get("")
@router.get("/")
async def list_tickets(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    return await TicketService().list_tickets(db, principal)


@router.get("/assigned")
async def list_assigned_tickets(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    """Open tickets assigned to the calling moderator, plus their solved history."""
    return await TicketService().list_assigned(db, principal)


@router.get("/{ticket_id}")
async def get_ticket(
    ticket_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    return await TicketService().get_ticket(db, principal, ticket_id)


@router.post("", status_code=201)
@router.post("/", status_code=201)
async def create_ticket(
    request: TicketCreateRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    return await TicketService().create_ticket(db, principal, request.title, request.description)


@router.patch("/{ticket_id}/status")
async def update_ticket_status(
    ticket_id: int,
    request: TicketStatusRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    return await TicketService().update_status(db, principal, ticket_id, request.status)


@router.delete("/{ticket_id}")
async def delete_ticket(
    ticket_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    return await TicketService().delete_ticket(db, principal, ticket_id)
