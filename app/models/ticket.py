# ============================================================================
# models/ticket.py - Ticket Database Model
# ============================================================================

from enum import Enum

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, JSON
from sqlalchemy.orm import relationship

from app.core.database import Base
from app.models.user import utcnow


class TicketStatus(str, Enum):
    NEW = "Todo"
    TODO = "TODO"
    PENDING = "PENDING"
    RESOLVED = "RESOLVED"


class Ticket(Base):
    __tablename__ = "tickets"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    status = Column(String, nullable=False, default=TicketStatus.NEW.value)

    # AI analysis
    summary = Column(Text, nullable=False, default="")
    priority = Column(String, nullable=True)  # low, medium, high
    helpful_notes = Column(Text, nullable=True)
    related_skills = Column(JSON, nullable=False, default=list)
    deadline = Column(DateTime(timezone=True), nullable=True)

    created_by = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    assigned_to = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    resolved_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    points_awarded = Column(Integer, nullable=False, default=0)  # to resolved_by, taken back on reopen

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    # Relationships
    assignee = relationship("User", foreign_keys=[assigned_to], lazy="selectin")
    resolver = relationship("User", foreign_keys=[resolved_by], lazy="selectin")
