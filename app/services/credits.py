# services/credits.py - Credit Ledger
# ============================================================================
#
# Every counter change is a single conditional UPDATE; the predicate is
# re-checked by the database at write time.

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.payment import Payment, PaymentStatus
from app.models.user import User, PaymentHistoryEntry, SubscriptionStatus
from app.schemas.payment import CreditSnapshot

logger = logging.getLogger(__name__)

PAYMENT_HISTORY_LIMIT = 50


class CreditLedger:

    async def snapshot(self, db: AsyncSession, user_id: int) -> Optional[CreditSnapshot]:
        user = await db.get(User, user_id, populate_existing=True)
        if not user:
            return None
        return CreditSnapshot.model_validate(user)

    async def debit_one(self, db: AsyncSession, user_id: int) -> Optional[CreditSnapshot]:
        """Consume one credit. Returns None when the user has none left."""
        result = await db.execute(
            update(User)
            .where(User.id == user_id, User.credits_remaining > 0)
            .values(
                credits_remaining=User.credits_remaining - 1,
                credits_used=User.credits_used + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await db.rollback()
            return None

        await db.commit()
        return await self.snapshot(db, user_id)

    async def refund(self, db: AsyncSession, user_id: int) -> bool:
        """Give back a credit consumed by a request that later failed. Never raises."""
        try:
            await db.rollback()
            result = await db.execute(
                update(User)
                .where(User.id == user_id, User.credits_used > 0)
                .values(
                    credits_remaining=User.credits_remaining + 1,
                    credits_used=User.credits_used - 1,
                )
                .execution_options(synchronize_session=False)
            )
            await db.commit()
            return result.rowcount == 1
        except Exception as e:
            logger.error(f"❌ Credit refund failed for user {user_id}: {e}")
            return False

    async def credit_on_verified_payment(
        self,
        db: AsyncSession,
        payment: Payment,
        payment_id: str,
        credits: int,
    ) -> None:
        """Add purchased credits and record the payment. Does not commit."""
        now = datetime.now(timezone.utc)
        await db.execute(
            update(User)
            .where(User.id == payment.user_id)
            .values(
                credits_remaining=User.credits_remaining + credits,
                subscription_status=SubscriptionStatus.ACTIVE.value,
                razorpay_payment_id=payment_id,
                razorpay_order_id=payment.razorpay_order_id,
            )
            .execution_options(synchronize_session=False)
        )
        db.add(
            PaymentHistoryEntry(
                user_id=payment.user_id,
                razorpay_order_id=payment.razorpay_order_id,
                razorpay_payment_id=payment_id,
                amount=payment.amount,
                currency=payment.currency,
                credits_added=credits,
                status=PaymentStatus.VERIFIED.value,
                verified_at=now,
            )
        )
        await db.flush()
        await self._trim_payment_history(db, payment.user_id)
        logger.info(f"💳 Credited {credits} credits to user {payment.user_id} for order {payment.razorpay_order_id}")

    async def _trim_payment_history(self, db: AsyncSession, user_id: int) -> None:
        keep = (
            select(PaymentHistoryEntry.id)
            .where(PaymentHistoryEntry.user_id == user_id)
            .order_by(PaymentHistoryEntry.created_at.desc(), PaymentHistoryEntry.id.desc())
            .limit(PAYMENT_HISTORY_LIMIT)
        )
        await db.execute(
            delete(PaymentHistoryEntry)
            .where(PaymentHistoryEntry.user_id == user_id, PaymentHistoryEntry.id.not_in(keep))
            .execution_options(synchronize_session=False)
        )
