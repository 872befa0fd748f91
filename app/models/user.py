# ============================================================================
# models/user.py - User Database Model
# ============================================================================

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON, CheckConstraint
from sqlalchemy.orm import relationship

from app.core.config import settings
from app.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserRole(str, Enum):
    USER = "user"
    MODERATOR = "moderator"
    ADMIN = "admin"


class SubscriptionStatus(str, Enum):
    INACTIVE = "inactive"
    ACTIVE = "active"
    PAST_DUE = "past_due"


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("credits_remaining >= 0", name="ck_users_credits_remaining"),
        CheckConstraint("credits_used >= 0", name="ck_users_credits_used"),
    )

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    role = Column(String, nullable=False, default=UserRole.USER.value)
    skills = Column(JSON, nullable=False, default=list)

    # Moderator scoring
    issues_resolved = Column(Integer, nullable=False, default=0)
    score = Column(Integer, nullable=False, default=0)

    # Credit ledger
    credits_remaining = Column(Integer, nullable=False, default=lambda: settings.FREE_CREDITS)
    credits_used = Column(Integer, nullable=False, default=0)
    subscription_status = Column(String, nullable=False, default=SubscriptionStatus.INACTIVE.value)
    razorpay_payment_id = Column(String, nullable=True)
    razorpay_order_id = Column(String, nullable=True)

    # Password reset
    reset_password_token = Column(String, nullable=True, index=True)
    reset_password_expire = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=utcnow)

    # Relationships
    solved_ticket_history = relationship(
        "ResolvedTicketEntry", back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )
    payment_history = relationship(
        "PaymentHistoryEntry", back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )


class ResolvedTicketEntry(Base):
    """A moderator's record of a resolved ticket; outlives the ticket itself."""

    __tablename__ = "resolved_ticket_history"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    ticket_id = Column(Integer, nullable=True, index=True)
    title = Column(String, nullable=False)
    resolved_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    user = relationship("User", back_populates="solved_ticket_history")


class PaymentHistoryEntry(Base):
    __tablename__ = "payment_history"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    razorpay_order_id = Column(String, nullable=False, default="")
    razorpay_payment_id = Column(String, nullable=False, default="")
    amount = Column(Integer, nullable=False, default=0)
    currency = Column(String, nullable=False, default="INR")
    credits_added = Column(Integer, nullable=False, default=0)
    status = Column(String, nullable=False, default="created")
    type = Column(String, nullable=False, default="subscription_credit_topup")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    verified_at = Column(DateTime(timezone=True), nullable=True)

    user = relationship("User", back_populates="payment_history")
