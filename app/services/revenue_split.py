"""
Revenue split for captured payments.

Amounts are whole currency units, rounded half-up. The university share
takes the rounding remainder so the four parts always add up to the
payment amount.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from app.config import settings

WHOLE_UNIT = Decimal("1")
HUNDRED = Decimal("100")


def round_amount(value: Decimal) -> Decimal:
    """Round to whole currency units, half-up."""
    return Decimal(value).quantize(WHOLE_UNIT, rounding=ROUND_HALF_UP)


def percent_of(amount: Decimal, percent: Decimal) -> Decimal:
    return round_amount(Decimal(amount) * Decimal(percent) / HUNDRED)


def to_minor_units(amount: Decimal) -> int:
    """Rupees to paise, as Razorpay expects."""
    return int((Decimal(amount) * HUNDRED).quantize(WHOLE_UNIT, rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class SettlementSplit:
    platform_amount: Decimal
    referral_amount: Decimal
    teacher_amount: Decimal
    university_amount: Decimal

    @property
    def total(self) -> Decimal:
        return (
            self.platform_amount
            + self.referral_amount
            + self.teacher_amount
            + self.university_amount
        )


def compute_split(
    amount: Decimal,
    referral_commission: Optional[Decimal] = None,
    platform_fee_percent: Optional[Decimal] = None,
    teacher_share_percent: Optional[Decimal] = None,
) -> SettlementSplit:
    """
    Split a payment amount between platform, referral partner, teacher
    and university.

    Args:
        amount: Captured payment amount
        referral_commission: Commission already fixed on the payment, if any
        platform_fee_percent: Defaults to settings.platform_fee_percent
        teacher_share_percent: Teacher's cut of what remains after the
            platform fee and referral commission

    Raises:
        ValueError: if the commission exceeds what is left after the fee
    """
    if platform_fee_percent is None:
        platform_fee_percent = settings.platform_fee_percent
    if teacher_share_percent is None:
        teacher_share_percent = settings.teacher_share_percent

    amount = Decimal(amount)
    platform_amount = percent_of(amount, platform_fee_percent)
    referral_amount = Decimal(referral_commission or 0)

    remaining = amount - platform_amount - referral_amount
    if remaining < 0:
        raise ValueError(
            f"Referral commission {referral_amount} exceeds amount after platform fee"
        )

    teacher_amount = percent_of(remaining, teacher_share_percent)
    university_amount = remaining - teacher_amount

    return SettlementSplit(
        platform_amount=platform_amount,
        referral_amount=referral_amount,
        teacher_amount=teacher_amount,
        university_amount=university_amount,
    )
