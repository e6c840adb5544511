"""
Referral Service - partner tiers, commission rates and referral counting.
"""

import secrets
import string
import uuid
import logging
from decimal import Decimal
from typing import Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import NotFoundError, ValidationError
from app.fsm.states import PaymentStatus, ReferralTier, UserRole
from app.models.payment import Payment
from app.models.user import User
from app.models.wallet import Wallet
from app.services.revenue_split import percent_of

logger = logging.getLogger(__name__)

REFERRAL_CODE_ALPHABET = string.ascii_uppercase + string.digits
REFERRAL_CODE_LENGTH = 8


def resolve_commission(total_referrals: int) -> Tuple[ReferralTier, Decimal]:
    """
    Tier and commission percent for a referral count.

    >=41 tier4 10%, 21-40 tier3 5%, 11-20 tier2 2.5%, 0-10 tier1 1%.
    """
    if total_referrals < 0:
        raise ValueError("total_referrals cannot be negative")

    tier = ReferralTier.TIER1
    for candidate in ReferralTier:
        if total_referrals >= candidate.min_referrals:
            tier = candidate
    return tier, tier.commission_rate


def generate_referral_code() -> str:
    return "".join(secrets.choice(REFERRAL_CODE_ALPHABET) for _ in range(REFERRAL_CODE_LENGTH))


class ReferralService:
    """Service for referral partner tiers and commissions."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_partner(self, partner_id: uuid.UUID) -> User:
        result = await self.db.execute(
            select(User).where(User.id == partner_id)
        )
        partner = result.scalar_one_or_none()
        if not partner or not partner.is_referral_partner:
            raise NotFoundError(f"Referral partner {partner_id} not found")
        return partner

    async def find_partner_by_code(self, referral_code: str) -> Optional[User]:
        """Look up an active referral partner by code (case-insensitive)."""
        code = referral_code.strip().upper()
        result = await self.db.execute(
            select(User).where(
                User.referral_code == code,
                User.role == UserRole.REFERRAL_PARTNER.value,
            )
        )
        return result.scalar_one_or_none()

    async def assign_referral_code(self, partner_id: uuid.UUID) -> str:
        """Give a partner a unique referral code, keeping an existing one."""
        partner = await self.get_partner(partner_id)
        if partner.referral_code:
            return partner.referral_code

        for _ in range(10):
            code = generate_referral_code()
            taken = await self.db.scalar(
                select(func.count(User.id)).where(User.referral_code == code)
            )
            if not taken:
                partner.referral_code = code
                await self.db.flush()
                logger.info(f"Assigned referral code {code} to partner {partner.id}")
                return code

        raise ValidationError("Could not generate a unique referral code")

    def refresh_tier(self, partner: User) -> None:
        """Recompute tier and commission rate together from total_referrals."""
        tier, rate = resolve_commission(partner.total_referrals)
        if tier.value != partner.tier:
            logger.info(
                f"Partner {partner.id} moved {partner.tier} -> {tier.value} "
                f"at {partner.total_referrals} referrals"
            )
        partner.tier = tier.value
        partner.commission_rate = rate

    def apply_referral(self, payment: Payment, partner: User) -> Payment:
        """
        Attach a partner to a pending payment and fix its commission.

        The rate is the partner's tier at this moment; later tier changes
        do not touch it.
        """
        if payment.settlement_computed:
            raise ValidationError("Referral cannot change after settlement")

        _, rate = resolve_commission(partner.total_referrals)
        payment.referral_partner_id = partner.id
        payment.referral_commission_rate = rate
        payment.referral_commission = percent_of(payment.amount, rate)

        logger.info(
            f"Referral {partner.id} applied to order {payment.order_id}: "
            f"{rate}% = {payment.referral_commission}"
        )
        return payment

    async def record_captured_payment(self, payment: Payment) -> Optional[User]:
        """
        Update partner counters for a newly captured referred payment.

        total_referrals counts distinct payers, so only the payer's first
        captured payment through this partner increments it.
        """
        if not payment.referral_partner_id:
            return None

        result = await self.db.execute(
            select(User).where(User.id == payment.referral_partner_id).with_for_update()
        )
        partner = result.scalar_one_or_none()
        if not partner:
            logger.warning(f"Referral partner {payment.referral_partner_id} missing for {payment.order_id}")
            return None

        earlier = await self.db.scalar(
            select(func.count(Payment.id)).where(
                Payment.payer_id == payment.payer_id,
                Payment.referral_partner_id == partner.id,
                Payment.id != payment.id,
                Payment.status.in_([PaymentStatus.CAPTURED.value, PaymentStatus.REFUNDED.value]),
            )
        )
        if not earlier:
            partner.total_referrals = partner.total_referrals + 1
            self.refresh_tier(partner)

        if payment.referral_amount:
            partner.total_earnings = partner.total_earnings + payment.referral_amount

        await self.db.flush()
        return partner

    async def get_stats(self, partner_id: uuid.UUID) -> dict:
        """Tier progress and earnings for the partner dashboard."""
        partner = await self.get_partner(partner_id)
        tier = ReferralTier(partner.tier)
        next_tier = tier.next_tier

        referred_payments = await self.db.scalar(
            select(func.count(Payment.id)).where(
                Payment.referral_partner_id == partner.id,
                Payment.status == PaymentStatus.CAPTURED.value,
            )
        )
        balance = await self.db.scalar(
            select(Wallet.balance).where(Wallet.user_id == partner.id)
        )

        return {
            "referral_code": partner.referral_code,
            "current_tier": tier.value,
            "commission_rate": partner.commission_rate,
            "next_tier": next_tier.value if next_tier else None,
            "referrals_to_next_tier": (
                max(next_tier.min_referrals - partner.total_referrals, 0) if next_tier else 0
            ),
            "total_referrals": partner.total_referrals,
            "referred_payments": referred_payments or 0,
            "total_earnings": partner.total_earnings,
            "wallet_balance": balance if balance is not None else Decimal("0"),
        }
