# schemas/payment.py - Payment & Credit Schemas
# ============================================================================

from pydantic import BaseModel, ConfigDict
from datetime import datetime
from typing import Optional


class VerifyPaymentRequest(BaseModel):
    razorpay_order_id: Optional[str] = None
    razorpay_payment_id: Optional[str] = None
    razorpay_signature: Optional[str] = None
    order_id: Optional[str] = None  # accepted in mock mode


class CreditSnapshot(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    email: str
    credits_remaining: int
    credits_used: int
    subscription_status: str


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    razorpay_order_id: str
    razorpay_payment_id: Optional[str]
    amount: int
    currency: str
    status: str
    credits_added: int
    created_at: datetime
    verified_at: Optional[datetime]
