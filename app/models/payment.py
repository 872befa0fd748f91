from enum import Enum

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON

from app.core.database import Base
from app.models.user import utcnow


class PaymentStatus(str, Enum):
    CREATED = "created"
    VERIFIED = "verified"
    FAILED = "failed"


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    razorpay_order_id = Column(String, unique=True, nullable=False)
    razorpay_payment_id = Column(String, unique=True, nullable=True)
    razorpay_signature = Column(String, nullable=False, default="")
    amount = Column(Integer, nullable=False)  # smallest currency unit (paise)
    currency = Column(String, nullable=False, default="INR")
    status = Column(String, nullable=False, default=PaymentStatus.CREATED.value)
    credits_added = Column(Integer, nullable=False, default=0)
    plan_id = Column(String, nullable=False, default="starter-monthly")
    verified_at = Column(DateTime(timezone=True), nullable=True)
    failure_reason = Column(String, nullable=False, default="")
    payment_metadata = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
