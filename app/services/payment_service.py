"""
Payment Service - Razorpay order lifecycle, revenue split and wallet crediting.
"""

import uuid
import logging
from datetime import datetime, timezone
from typing import Optional, List, Tuple, Union

from sqlalchemy import select, func, case
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.exceptions import (
    ValidationError,
    NotFoundError,
    SignatureError,
    InvalidStateError,
)
from app.fsm.machine import ensure_payment_transition
from app.fsm.states import (
    PaymentStatus,
    PaymentMethod,
    DiscountType,
    TransactionType,
    UserRole,
)
from app.models.payment import Payment
from app.redis import ProcessedEventStore
from app.services.notification_service import (
    NotificationService,
    NotificationEvent,
    notify_after_commit,
)
from app.services.razorpay_gateway import RazorpayGateway
from app.services.referral_service import ReferralService
from app.services.revenue_split import compute_split, to_minor_units
from app.services.wallet_service import WalletService, to_amount

logger = logging.getLogger(__name__)


class PaymentService:
    """Service for processing course payments."""

    def __init__(
        self,
        db: AsyncSession,
        gateway: Optional[RazorpayGateway] = None,
        notifier: Optional[NotificationService] = None,
    ):
        self.db = db
        self.gateway = gateway or RazorpayGateway()
        self.notifier = notifier or NotificationService()
        self.wallets = WalletService(db, notifier=self.notifier)
        self.referrals = ReferralService(db)
        self.events = ProcessedEventStore("razorpay")

    # ------------------------------------------------------------------
    # Webhook idempotency
    # ------------------------------------------------------------------

    async def is_duplicate_event(self, event_id: Optional[str]) -> bool:
        """Check if a Razorpay event has already been processed."""
        return await self.events.seen(event_id)

    async def remember_event(self, event_id: Optional[str]) -> None:
        await self.events.remember(event_id)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    async def get_payment(self, order_id: str) -> Payment:
        result = await self.db.execute(
            select(Payment).where(Payment.order_id == order_id)
        )
        payment = result.scalar_one_or_none()
        if not payment:
            raise NotFoundError(f"Payment for order {order_id} not found")
        return payment

    async def _lock_payment(self, order_id: str) -> Payment:
        result = await self.db.execute(
            select(Payment)
            .where(Payment.order_id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        payment = result.scalar_one_or_none()
        if not payment:
            raise NotFoundError(f"Payment for order {order_id} not found")
        return payment

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------

    async def create_order(
        self,
        amount,
        payer_id: Optional[uuid.UUID],
        course_id: Optional[uuid.UUID],
        teacher_id: Optional[uuid.UUID],
        currency: Optional[str] = None,
        university_id: Optional[uuid.UUID] = None,
        referral_code: Optional[str] = None,
        coupon: Optional[dict] = None,
        payment_method: Union[str, PaymentMethod] = PaymentMethod.RAZORPAY,
    ) -> Payment:
        """
        Start a checkout.

        Creates the Razorpay order and a pending payment row. A referral
        code, when given, fixes the partner's commission now.
        """
        amount = to_amount(amount)
        if not payer_id:
            raise ValidationError("Payer is required")
        if not course_id:
            raise ValidationError("Course is required")
        if not teacher_id:
            raise ValidationError("Course teacher is required")

        currency = (currency or settings.default_currency).upper()
        try:
            method = PaymentMethod(payment_method)
        except ValueError:
            raise ValidationError(f"Unknown payment method: {payment_method}")

        partner = None
        if referral_code:
            partner = await self.referrals.find_partner_by_code(referral_code)
            if not partner:
                raise ValidationError(f"Invalid referral code: {referral_code}")
            if partner.id == payer_id:
                raise ValidationError("Referral partners cannot refer themselves")

        receipt = f"rcpt_{uuid.uuid4().hex[:20]}"
        order = await self.gateway.create_order(
            to_minor_units(amount),
            currency,
            receipt,
            notes={"payer_id": str(payer_id), "course_id": str(course_id)},
        )

        payment = Payment(
            order_id=order["order_id"],
            payer_id=payer_id,
            course_id=course_id,
            teacher_id=teacher_id,
            university_id=university_id,
            amount=amount,
            currency=currency,
            status=PaymentStatus.PENDING.value,
            payment_method=method.value,
        )
        if coupon:
            self._apply_coupon(payment, coupon)
        if partner:
            self.referrals.apply_referral(payment, partner)

        self.db.add(payment)
        await self.db.flush()

        logger.info(f"Created order {payment.order_id} for course {course_id}: {amount} {currency}")
        return payment

    @staticmethod
    def _apply_coupon(payment: Payment, coupon: dict) -> None:
        code = coupon.get("code")
        if not code:
            raise ValidationError("Coupon code is required")
        try:
            discount_type = DiscountType(coupon.get("discount_type", DiscountType.PERCENTAGE.value))
        except ValueError:
            raise ValidationError(f"Unknown discount type: {coupon.get('discount_type')}")
        payment.coupon_code = code
        payment.coupon_discount = coupon.get("discount")
        payment.coupon_discount_type = discount_type.value

    async def apply_referral(self, order_id: str, referral_code: str) -> Payment:
        """Attach a referral partner to a payment that is still pending."""
        payment = await self._lock_payment(order_id)
        if payment.status != PaymentStatus.PENDING.value:
            raise InvalidStateError("Referral can only be applied to a pending payment")

        partner = await self.referrals.find_partner_by_code(referral_code)
        if not partner:
            raise ValidationError(f"Invalid referral code: {referral_code}")
        if partner.id == payment.payer_id:
            raise ValidationError("Referral partners cannot refer themselves")

        self.referrals.apply_referral(payment, partner)
        await self.db.flush()
        return payment

    # ------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------

    async def capture(self, order_id: str, payment_id: str, signature: str) -> Payment:
        """
        Confirm a checkout from the client callback.

        Raises:
            SignatureError: HMAC of "order_id|payment_id" does not match
            NotFoundError: no payment for this order
            InvalidStateError: payment cannot be captured from its status
        """
        if not self.gateway.verify_signature(order_id, payment_id, signature):
            logger.error(f"Invalid payment signature for order {order_id}, payment {payment_id}")
            raise SignatureError("Payment signature verification failed")

        return await self._capture(order_id, payment_id, signature)

    async def capture_from_webhook(self, order_id: str, payment_id: str) -> Payment:
        """Capture after the webhook body signature has been verified."""
        return await self._capture(order_id, payment_id, None)

    async def _capture(
        self,
        order_id: str,
        payment_id: str,
        signature: Optional[str],
    ) -> Payment:
        payment = await self._lock_payment(order_id)

        if payment.settlement_computed:
            if payment.payment_id == payment_id:
                logger.info(f"Order {order_id} already captured as {payment_id}, skipping")
                return payment
            raise InvalidStateError(
                f"Order {order_id} was captured with a different payment",
                {"payment_id": payment.payment_id},
            )

        payment.status = ensure_payment_transition(payment.status, PaymentStatus.CAPTURED).value
        payment.payment_id = payment_id
        if signature:
            payment.signature = signature
        payment.captured_at = datetime.now(timezone.utc)

        await self._settle(payment)
        await self.referrals.record_captured_payment(payment)
        await self.db.flush()

        logger.info(
            f"Captured order {order_id} ({payment.amount} {payment.currency}): "
            f"platform={payment.platform_amount} teacher={payment.teacher_amount} "
            f"university={payment.university_amount} referral={payment.referral_amount}"
        )

        notify_after_commit(
            self.db,
            self.notifier,
            NotificationEvent.PAYMENT_CAPTURED,
            payment.payer_id,
            {
                "order_id": payment.order_id,
                "payment_id": payment.payment_id,
                "course_id": str(payment.course_id),
                "amount": str(payment.amount),
                "currency": payment.currency,
            },
        )
        return payment

    async def _settle(self, payment: Payment) -> None:
        """
        Compute the revenue split and credit payee wallets.
        Runs once per payment; settlement_computed is the guard.
        """
        if payment.settlement_computed:
            return

        commission = payment.referral_commission if payment.has_referral else None
        split = compute_split(payment.amount, commission)

        payment.platform_amount = split.platform_amount
        payment.referral_amount = split.referral_amount
        payment.teacher_amount = split.teacher_amount
        payment.university_amount = split.university_amount

        metadata = {
            "payment_id": payment.payment_id,
            "course_id": str(payment.course_id),
        }

        if split.teacher_amount > 0:
            wallet = await self.wallets.get_or_create_wallet(
                payment.teacher_id, UserRole.TEACHER, payment.currency
            )
            await self.wallets.credit(
                wallet,
                split.teacher_amount,
                f"Course sale {payment.order_id}",
                payment.order_id,
                {**metadata, "share": "teacher"},
            )
            payment.teacher_settled = True

        if split.university_amount > 0 and payment.university_id:
            wallet = await self.wallets.get_or_create_wallet(
                payment.university_id, UserRole.UNIVERSITY_ADMIN, payment.currency
            )
            await self.wallets.credit(
                wallet,
                split.university_amount,
                f"University share {payment.order_id}",
                payment.order_id,
                {**metadata, "share": "university"},
            )
            payment.university_settled = True

        if split.referral_amount > 0 and payment.referral_partner_id:
            wallet = await self.wallets.get_or_create_wallet(
                payment.referral_partner_id, UserRole.REFERRAL_PARTNER, payment.currency
            )
            await self.wallets.credit(
                wallet,
                split.referral_amount,
                f"Referral commission {payment.order_id}",
                payment.order_id,
                {**metadata, "share": "referral"},
                transaction_type=TransactionType.COMMISSION,
            )
            payment.referral_settled = True

        payment.settlement_computed = True

    # ------------------------------------------------------------------
    # Failure, cancellation, refund
    # ------------------------------------------------------------------

    async def mark_failed(self, order_id: str) -> Payment:
        payment = await self._lock_payment(order_id)
        if payment.status == PaymentStatus.FAILED.value:
            return payment

        payment.status = ensure_payment_transition(payment.status, PaymentStatus.FAILED).value
        payment.failed_at = datetime.now(timezone.utc)
        await self.db.flush()

        logger.info(f"Order {order_id} marked as failed")
        return payment

    async def cancel(self, order_id: str) -> Payment:
        payment = await self._lock_payment(order_id)
        if payment.status == PaymentStatus.CANCELLED.value:
            return payment

        payment.status = ensure_payment_transition(payment.status, PaymentStatus.CANCELLED).value
        payment.cancelled_at = datetime.now(timezone.utc)
        await self.db.flush()

        logger.info(f"Order {order_id} cancelled")
        return payment

    async def refund(
        self,
        order_id: str,
        reason: str,
        processed_by: Optional[uuid.UUID] = None,
        amount=None,
    ) -> Payment:
        """
        Refund a captured payment through Razorpay.

        Wallet credits made at capture are left in place; reversing them is
        an admin decision outside this flow.
        """
        payment = await self._lock_payment(order_id)
        ensure_payment_transition(payment.status, PaymentStatus.REFUNDED)

        refund_amount = payment.amount if amount is None else to_amount(amount)
        if refund_amount > payment.amount:
            raise ValidationError(
                "Refund amount exceeds payment amount",
                {"amount": str(payment.amount), "refund": str(refund_amount)},
            )

        if payment.payment_method == PaymentMethod.RAZORPAY.value and payment.payment_id:
            refund = await self.gateway.refund(
                payment.payment_id,
                to_minor_units(refund_amount),
                reason or "Refund",
            )
            payment.refund_id = refund["refund_id"]

        now = datetime.now(timezone.utc)
        payment.status = PaymentStatus.REFUNDED.value
        payment.refund_amount = refund_amount
        payment.refund_reason = reason
        payment.refund_processed_at = now
        payment.refund_processed_by = processed_by
        payment.refunded_at = now
        await self.db.flush()

        logger.info(f"Refunded {refund_amount} on order {order_id}: {reason}")

        notify_after_commit(
            self.db,
            self.notifier,
            NotificationEvent.PAYMENT_REFUNDED,
            payment.payer_id,
            {
                "order_id": payment.order_id,
                "amount": str(refund_amount),
                "reason": reason,
            },
        )
        return payment

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    async def list_payments(
        self,
        status: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        payer_id: Optional[uuid.UUID] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Payment], int]:
        """Payments newest first, with total count for pagination."""
        conditions = []
        if status:
            conditions.append(Payment.status == PaymentStatus(status).value)
        if start_date:
            conditions.append(Payment.created_at >= start_date)
        if end_date:
            conditions.append(Payment.created_at <= end_date)
        if payer_id:
            conditions.append(Payment.payer_id == payer_id)

        total = await self.db.scalar(
            select(func.count(Payment.id)).where(*conditions)
        )
        result = await self.db.execute(
            select(Payment)
            .where(*conditions)
            .order_by(Payment.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total or 0

    async def get_analytics(self) -> dict:
        """Payment counts and amounts by status."""

        def count_status(status: PaymentStatus):
            return func.coalesce(
                func.sum(case((Payment.status == status.value, 1), else_=0)), 0
            )

        def sum_status(status: PaymentStatus, column):
            return func.coalesce(
                func.sum(case((Payment.status == status.value, column), else_=0)), 0
            )

        row = (
            await self.db.execute(
                select(
                    func.count(Payment.id),
                    func.coalesce(func.sum(Payment.amount), 0),
                    count_status(PaymentStatus.CAPTURED),
                    sum_status(PaymentStatus.CAPTURED, Payment.amount),
                    count_status(PaymentStatus.FAILED),
                    count_status(PaymentStatus.REFUNDED),
                    sum_status(PaymentStatus.REFUNDED, Payment.refund_amount),
                    func.coalesce(func.sum(Payment.platform_amount), 0),
                )
            )
        ).one()

        return {
            "total_payments": row[0],
            "total_amount": row[1],
            "captured_payments": row[2],
            "captured_amount": row[3],
            "failed_payments": row[4],
            "refunded_payments": row[5],
            "refunded_amount": row[6],
            "platform_revenue": row[7],
        }
