# services/payment.py - Razorpay Payment Verification Gateway
# ============================================================================

import asyncio
import json
import logging
import secrets
import time
from datetime import datetime, timezone
from typing import List, Optional

import razorpay
from fastapi import HTTPException
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.payment import Payment, PaymentStatus
from app.schemas.payment import VerifyPaymentRequest
from app.services.auth import Principal
from app.services.credits import CreditLedger

logger = logging.getLogger(__name__)

MOCK_ORDER_PREFIX = "mock_order_"
CAPTURED_EVENT = "payment.captured"
FAILED_EVENT = "payment.failed"
HISTORY_LIMIT = 20


def _millis() -> int:
    return int(time.time() * 1000)


def gateway_client() -> razorpay.Client:
    return razorpay.Client(auth=(settings.RAZORPAY_KEY_ID, settings.RAZORPAY_KEY_SECRET))


class PaymentService:
    def __init__(self, ledger: Optional[CreditLedger] = None):
        self.ledger = ledger or CreditLedger()

    @property
    def amount(self) -> int:
        return settings.RAZORPAY_SUBSCRIPTION_AMOUNT_INR * 100

    def get_config(self) -> dict:
        mock = settings.is_mock_payment_mode
        return {
            "mode": "mock" if mock else "razorpay",
            "key_id": settings.RAZORPAY_KEY_ID,
            "amount_inr": settings.RAZORPAY_SUBSCRIPTION_AMOUNT_INR,
            "credits_to_add": settings.SUBSCRIPTION_CREDITS,
            "plan_id": settings.SUBSCRIPTION_PLAN_ID,
            "configured": True if mock else settings.has_razorpay_config,
        }

    async def get_credits(self, db: AsyncSession, principal: Principal) -> dict:
        snapshot = await self.ledger.snapshot(db, principal.id)
        if not snapshot:
            raise HTTPException(status_code=404, detail="User not found")
        return {"user": snapshot}

    async def get_history(self, db: AsyncSession, principal: Principal) -> List[Payment]:
        result = await db.execute(
            select(Payment)
            .where(Payment.user_id == principal.id)
            .order_by(Payment.created_at.desc(), Payment.id.desc())
            .limit(HISTORY_LIMIT)
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    async def create_order(self, db: AsyncSession, principal: Principal) -> dict:
        snapshot = await self.ledger.snapshot(db, principal.id)
        if not snapshot:
            raise HTTPException(status_code=404, detail="User not found")

        plan = {"id": settings.SUBSCRIPTION_PLAN_ID, "credits_to_add": settings.SUBSCRIPTION_CREDITS}
        checkout_user = {"name": snapshot.email.split("@")[0], "email": snapshot.email}

        if settings.is_mock_payment_mode:
            order_id = f"{MOCK_ORDER_PREFIX}{_millis()}_{secrets.token_hex(4)}"
            db.add(
                Payment(
                    user_id=principal.id,
                    razorpay_order_id=order_id,
                    amount=self.amount,
                    currency="INR",
                    plan_id=settings.SUBSCRIPTION_PLAN_ID,
                    payment_metadata={"mode": "mock"},
                )
            )
            await db.commit()
            logger.info(f"🧪 Mock order {order_id} created for user {principal.id}")
            return {
                "mode": "mock",
                "order_id": order_id,
                "amount": self.amount,
                "currency": "INR",
                "key_id": "mock_key",
                "user": checkout_user,
                "plan": plan,
            }

        if not settings.has_razorpay_config:
            raise HTTPException(
                status_code=500,
                detail="Razorpay credentials are missing/invalid. Set valid RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET.",
            )

        receipt = f"sub-{principal.id}-{_millis()}"
        order = await self._create_gateway_order(
            {
                "amount": self.amount,
                "currency": "INR",
                "receipt": receipt,
                "notes": {
                    "userId": str(principal.id),
                    "planId": settings.SUBSCRIPTION_PLAN_ID,
                    "creditsToAdd": str(settings.SUBSCRIPTION_CREDITS),
                },
            }
        )

        db.add(
            Payment(
                user_id=principal.id,
                razorpay_order_id=order["id"],
                amount=self.amount,
                currency=order.get("currency", "INR"),
                plan_id=settings.SUBSCRIPTION_PLAN_ID,
                payment_metadata={"receipt": receipt},
            )
        )
        await db.commit()
        logger.info(f"🧾 Razorpay order {order['id']} created for user {principal.id}")

        return {
            "mode": "razorpay",
            "order_id": order["id"],
            "amount": order.get("amount", self.amount),
            "currency": order.get("currency", "INR"),
            "key_id": settings.RAZORPAY_KEY_ID,
            "user": checkout_user,
            "plan": plan,
        }

    async def _create_gateway_order(self, data: dict) -> dict:
        # Razorpay's client is blocking
        try:
            return await asyncio.to_thread(gateway_client().order.create, data=data)
        except razorpay.errors.BadRequestError as e:
            logger.error(f"❌ Razorpay rejected order: {e}")
            raise HTTPException(
                status_code=500,
                detail={
                    "message": str(e) or "Unable to initiate subscription checkout.",
                    "code": "CREATE_ORDER_FAILED",
                },
            )
        except Exception as e:
            logger.error(f"❌ Razorpay order request failed: {e}")
            raise HTTPException(
                status_code=500,
                detail={"message": "Unable to initiate subscription checkout.", "code": "CREATE_ORDER_FAILED"},
            )

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    async def _mark_verified(
        self,
        db: AsyncSession,
        payment: Payment,
        payment_id: str,
        signature: Optional[str] = None,
    ) -> bool:
        """Move a payment to verified and credit the ledger, at most once.

        Returns False when another request already verified it.
        """
        credits = settings.SUBSCRIPTION_CREDITS
        values = {
            "status": PaymentStatus.VERIFIED.value,
            "razorpay_payment_id": payment_id or None,
            "credits_added": credits,
            "verified_at": datetime.now(timezone.utc),
        }
        if signature is not None:
            values["razorpay_signature"] = signature

        result = await db.execute(
            update(Payment)
            .where(Payment.id == payment.id, Payment.status != PaymentStatus.VERIFIED.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await db.rollback()
            return False

        await self.ledger.credit_on_verified_payment(db, payment, payment_id or "", credits)
        await db.commit()
        return True

    async def _duplicate(self, db: AsyncSession, payment: Payment) -> dict:
        return {
            "message": "Payment already verified.",
            "duplicate": True,
            "user": await self.ledger.snapshot(db, payment.user_id),
        }

    async def _find_by_order(self, db: AsyncSession, order_id: str) -> Optional[Payment]:
        result = await db.execute(
            select(Payment)
            .where(Payment.razorpay_order_id == order_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def verify_payment(self, db: AsyncSession, principal: Principal, body: VerifyPaymentRequest) -> dict:
        mock = settings.is_mock_payment_mode

        if mock:
            order_id = body.razorpay_order_id or body.order_id
            if not order_id or not str(order_id).startswith(MOCK_ORDER_PREFIX):
                raise HTTPException(status_code=400, detail="Invalid mock order id.")
            payment_id = f"mock_pay_{_millis()}_{secrets.token_hex(4)}"
            signature = "mock_signature"
        else:
            order_id = body.razorpay_order_id
            payment_id = body.razorpay_payment_id
            signature = body.razorpay_signature
            if not order_id or not payment_id or not signature:
                raise HTTPException(status_code=400, detail="Missing payment verification fields.")
            if not settings.has_razorpay_config:
                raise HTTPException(status_code=500, detail="Payment gateway is not configured.")

            try:
                gateway_client().utility.verify_payment_signature(
                    {
                        "razorpay_order_id": order_id,
                        "razorpay_payment_id": payment_id,
                        "razorpay_signature": signature,
                    }
                )
            except razorpay.errors.SignatureVerificationError:
                logger.warning(f"⚠️ Payment signature mismatch for order {order_id}")
                raise HTTPException(status_code=400, detail="Invalid payment signature.")

        payment = await self._find_by_order(db, order_id)
        if not payment:
            raise HTTPException(status_code=404, detail="Payment order not found.")
        if payment.user_id != principal.id:
            raise HTTPException(status_code=403, detail="Payment does not belong to current user.")
        if payment.status == PaymentStatus.VERIFIED:
            return await self._duplicate(db, payment)

        if not await self._mark_verified(db, payment, payment_id, signature):
            logger.info(f"Order {order_id} was verified concurrently")
            return await self._duplicate(db, payment)

        logger.info(f"✅ Payment verified for order {order_id}")
        return {
            "message": "Mock subscription activated successfully." if mock else "Subscription activated successfully.",
            "user": await self.ledger.snapshot(db, payment.user_id),
            "payment": {
                "razorpay_payment_id": payment_id,
                "razorpay_order_id": order_id,
                "status": PaymentStatus.VERIFIED.value,
            },
        }

    async def handle_webhook(self, payload: bytes, sig_header: Optional[str], db: AsyncSession) -> dict:
        if not sig_header or not settings.has_webhook_secret:
            raise HTTPException(status_code=400, detail="Missing webhook signature/secret.")

        try:
            body = payload.decode("utf-8")
        except UnicodeDecodeError:
            raise HTTPException(status_code=400, detail="Invalid payload")

        try:
            gateway_client().utility.verify_webhook_signature(body, sig_header, settings.RAZORPAY_WEBHOOK_SECRET)
        except razorpay.errors.SignatureVerificationError:
            logger.warning("⚠️ Rejected webhook with invalid signature")
            raise HTTPException(status_code=400, detail="Invalid webhook signature.")

        try:
            event_body = json.loads(body)
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid payload")
        if not isinstance(event_body, dict):
            raise HTTPException(status_code=400, detail="Invalid payload")

        event = event_body.get("event")
        if event not in (CAPTURED_EVENT, FAILED_EVENT):
            return {"received": True, "ignored": True}

        entity = ((event_body.get("payload") or {}).get("payment") or {}).get("entity") or {}
        order_id = entity.get("order_id")
        payment_id = entity.get("id") or ""
        if not order_id:
            return {"received": True, "ignored": True}

        payment = await self._find_by_order(db, order_id)
        if not payment:
            logger.info(f"Webhook {event} for unknown order {order_id} ignored")
            return {"received": True, "ignored": True}

        if event == FAILED_EVENT:
            await db.execute(
                update(Payment)
                .where(Payment.id == payment.id, Payment.status != PaymentStatus.VERIFIED.value)
                .values(
                    status=PaymentStatus.FAILED.value,
                    razorpay_payment_id=payment_id or None,
                    failure_reason=entity.get("error_description") or "payment_failed",
                )
                .execution_options(synchronize_session=False)
            )
            await db.commit()
            logger.info(f"Payment for order {order_id} marked failed")
            return {"received": True}

        if payment.status == PaymentStatus.VERIFIED:
            return {"received": True, "duplicate": True}

        if not await self._mark_verified(db, payment, payment_id):
            return {"received": True, "duplicate": True}

        logger.info(f"✅ Payment captured via webhook for order {order_id}")
        return {"received": True}
