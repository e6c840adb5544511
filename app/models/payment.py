"""Payment model - one purchase attempt and its revenue split."""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    ForeignKey,
    Numeric,
    Boolean,
    Integer,
    CheckConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, validates

from app.database import Base
from app.fsm.states import PaymentStatus, PaymentMethod


class Payment(Base):
    """
    Payment record for a course purchase.

    order_id is assigned by Razorpay at checkout and never changes.
    The settlement columns are filled exactly once, at capture; the
    settlement_computed flag guards against duplicate webhook delivery.
    Rows are never deleted.
    """

    __tablename__ = "payments"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    # Razorpay order id (unique, immutable)
    order_id: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
    )

    # Razorpay payment id, set on capture
    payment_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        unique=True,
        nullable=True,
    )

    signature: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )

    # Opaque references owned by the user/course directories
    payer_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    course_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    teacher_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    university_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)

    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )

    currency: Mapped[str] = mapped_column(
        String(3),
        default="INR",
        nullable=False,
    )

    status: Mapped[str] = mapped_column(
        String(16),
        default=PaymentStatus.PENDING.value,
        nullable=False,
        index=True,
    )

    payment_method: Mapped[str] = mapped_column(
        String(16),
        default=PaymentMethod.RAZORPAY.value,
        nullable=False,
    )

    # Coupon
    coupon_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    coupon_discount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    coupon_discount_type: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)

    # Referral
    referral_partner_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    referral_commission: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    referral_commission_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2), nullable=True)

    # Settlement split
    teacher_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    university_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    platform_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    referral_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    teacher_settled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    university_settled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    referral_settled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    settlement_computed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Refund
    refund_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    refund_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    refund_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    refund_processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    refund_processed_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
    captured_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    failed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    refunded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Optimistic concurrency (capture vs refund races)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @validates("order_id")
    def _validate_order_id(self, key: str, value: str) -> str:
        if self.order_id is not None and value != self.order_id:
            raise ValueError("order_id is immutable once set")
        return value

    def __repr__(self) -> str:
        return f"<Payment {self.order_id} status={self.status}>"

    @property
    def has_referral(self) -> bool:
        return self.referral_partner_id is not None

    def settlement_breakdown(self) -> dict:
        """Read model for dashboards."""
        return {
            "teacher_amount": self.teacher_amount,
            "university_amount": self.university_amount,
            "platform_amount": self.platform_amount,
            "referral_amount": self.referral_amount,
            "teacher_settled": self.teacher_settled,
            "university_settled": self.university_settled,
            "referral_settled": self.referral_settled,
        }
