# schemas/ticket.py - Ticket Schemas
# ============================================================================

from pydantic import BaseModel, ConfigDict
from datetime import datetime
from typing import Optional, List


class TicketCreateRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None


class TicketStatusRequest(BaseModel):
    status: Optional[str] = None


class UserBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    issues_resolved: int
    score: int


class TicketResponse(BaseModel):
    """Staff view of a ticket."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: str
    summary: str
    status: str
    priority: Optional[str]
    helpful_notes: Optional[str]
    related_skills: List[str]
    deadline: Optional[datetime]
    created_by: Optional[int]
    assignee: Optional[UserBrief]
    resolver: Optional[UserBrief]
    resolved_at: Optional[datetime]
    created_at: datetime


class TicketPublicResponse(BaseModel):
    """What a ticket's creator gets to see."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: str
    summary: str
    status: str
    created_at: datetime
    resolved_at: Optional[datetime]


class ModeratorStats(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    email: str
    role: str
    issues_resolved: int
    score: int


class SolvedHistoryItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    ticket_id: Optional[int]
    title: str
    resolved_at: datetime
    deleted_at: Optional[datetime]
