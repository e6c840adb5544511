"""User model - referral partner profile and wallet-owner role."""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, DateTime, Integer, Numeric
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.fsm.states import ReferralTier, UserRole


class User(Base):
    """
    Slice of the platform user record that this service reads and writes.

    Accounts themselves are managed by the auth service; only the
    referral partner counters are mutated here.
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    email: Mapped[Optional[str]] = mapped_column(
        String(255),
        unique=True,
        nullable=True,
    )

    name: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )

    role: Mapped[str] = mapped_column(
        String(32),
        default=UserRole.STUDENT.value,
        nullable=False,
        index=True,
    )

    # === Referral partner profile ===

    referral_code: Mapped[Optional[str]] = mapped_column(
        String(16),
        unique=True,
        nullable=True,
        index=True,
    )

    # Distinct referred users who completed a first payment
    total_referrals: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )

    total_earnings: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0"),
        nullable=False,
    )

    # tier and commission_rate are only written together, via ReferralService
    tier: Mapped[str] = mapped_column(
        String(10),
        default=ReferralTier.TIER1.value,
        nullable=False,
    )

    commission_rate: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        default=ReferralTier.TIER1.commission_rate,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<User {self.id} role={self.role}>"

    @property
    def is_referral_partner(self) -> bool:
        return self.role == UserRole.REFERRAL_PARTNER.value
