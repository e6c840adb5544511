"""
State Definitions.
Payment, settlement request and ledger enums.
"""

from decimal import Decimal
from enum import Enum
from typing import Optional


class PaymentStatus(str, Enum):
    """
    Lifecycle of a payment record.
    Transitions are one-directional, see app.fsm.machine.
    """

    PENDING = "pending"
    CAPTURED = "captured"
    FAILED = "failed"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    RAZORPAY = "razorpay"
    WALLET = "wallet"
    COUPON = "coupon"


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class SettlementStatus(str, Enum):
    """
    Withdrawal request lifecycle.
    pending -> approved | rejected, approved -> processed.
    """

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PROCESSED = "processed"


class TransactionType(str, Enum):
    CREDIT = "credit"
    DEBIT = "debit"
    SETTLEMENT = "settlement"
    REFUND = "refund"
    COMMISSION = "commission"

    @property
    def increases_balance(self) -> bool:
        return self in (TransactionType.CREDIT, TransactionType.COMMISSION, TransactionType.REFUND)


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class SettlementFrequency(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"


class UserRole(str, Enum):
    """Roles that own wallets or pay for courses."""

    STUDENT = "student"
    TEACHER = "teacher"
    UNIVERSITY_ADMIN = "university_admin"
    REFERRAL_PARTNER = "referral_partner"
    SUPER_ADMIN = "super_admin"
    SUB_ADMIN = "sub_admin"


class ReferralTier(str, Enum):
    """
    Referral partner commission brackets.
    Ordered from lowest to highest.
    """

    TIER1 = "tier1"
    TIER2 = "tier2"
    TIER3 = "tier3"
    TIER4 = "tier4"

    @property
    def min_referrals(self) -> int:
        """Lowest total_referrals count that lands in this tier."""
        thresholds = {
            ReferralTier.TIER1: 0,
            ReferralTier.TIER2: 11,
            ReferralTier.TIER3: 21,
            ReferralTier.TIER4: 41,
        }
        return thresholds[self]

    @property
    def commission_rate(self) -> Decimal:
        """Commission percent paid on each referred payment."""
        rates = {
            ReferralTier.TIER1: Decimal("1"),
            ReferralTier.TIER2: Decimal("2.5"),
            ReferralTier.TIER3: Decimal("5"),
            ReferralTier.TIER4: Decimal("10"),
        }
        return rates[self]

    @property
    def next_tier(self) -> Optional["ReferralTier"]:
        tiers = list(ReferralTier)
        index = tiers.index(self)
        return tiers[index + 1] if index + 1 < len(tiers) else None
