# routers/payments.py - Payment Routes
# ============================================================================

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.schemas.payment import PaymentResponse, VerifyPaymentRequest
from app.services.auth import Principal
from app.services.payment import PaymentService
from app.routers.deps import get_current_principal

router = APIRouter(prefix="/api/payments", tags=["payments"])


@router.get("/config")
async def get_payment_config(principal: Principal = Depends(get_current_principal)):
    return PaymentService().get_config()


@router.get("/credits")
async def get_my_credits(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    return await PaymentService().get_credits(db, principal)


@router.get("/history")
async def get_my_payment_history(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    payments = await PaymentService().get_history(db, principal)
    return {"payments": [PaymentResponse.model_validate(p) for p in payments]}


@router.post("/create-order", status_code=201)
async def create_subscription_order(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    return await PaymentService().create_order(db, principal)


@router.post("/verify")
async def verify_subscription_payment(
    request: VerifyPaymentRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    return await PaymentService().verify_payment(db, principal, request)


@router.post("/webhook")
async def razorpay_webhook(request: Request, db: AsyncSession = Depends(get_db)):
    """Handle Razorpay webhooks; the signature covers the raw body."""
    payload = await request.body()
    sig_header = request.headers.get("x-razorpay-signature")
    return await PaymentService().handle_webhook(payload, sig_header, db)
