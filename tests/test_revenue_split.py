"""
Tests for the revenue split.
"""

from decimal import Decimal

import pytest

from app.services.revenue_split import (
    compute_split,
    percent_of,
    round_amount,
    to_minor_units,
)


def test_split_without_referral():
    split = compute_split(Decimal("1000"))

    assert split.platform_amount == Decimal("100")
    assert split.referral_amount == Decimal("0")
    assert split.teacher_amount == Decimal("630")
    assert split.university_amount == Decimal("270")
    assert split.total == Decimal("1000")


def test_split_with_referral_commission():
    split = compute_split(Decimal("1000"), referral_commission=Decimal("50"))

    assert split.platform_amount == Decimal("100")
    assert split.referral_amount == Decimal("50")
    assert split.teacher_amount == Decimal("595")
    assert split.university_amount == Decimal("255")
    assert split.total == Decimal("1000")


@pytest.mark.parametrize(
    "amount,commission",
    [
        ("1", None),
        ("7", None),
        ("999", "10"),
        ("1499", "37"),
        ("12345", "1235"),
        ("333", "8"),
    ],
)
def test_parts_always_sum_to_amount(amount, commission):
    split = compute_split(
        Decimal(amount),
        referral_commission=Decimal(commission) if commission else None,
    )
    assert split.total == Decimal(amount)
    assert split.university_amount >= 0


def test_university_takes_rounding_remainder():
    # platform 15 (14.5 rounds up), remaining 130, teacher 91, university 39
    split = compute_split(Decimal("145"))
    assert split.platform_amount == Decimal("15")
    assert split.teacher_amount == Decimal("91")
    assert split.university_amount == Decimal("39")


def test_commission_larger_than_remaining_is_rejected():
    with pytest.raises(ValueError):
        compute_split(Decimal("100"), referral_commission=Decimal("95"))


def test_custom_percentages():
    split = compute_split(
        Decimal("1000"),
        platform_fee_percent=Decimal("20"),
        teacher_share_percent=Decimal("50"),
    )
    assert split.platform_amount == Decimal("200")
    assert split.teacher_amount == Decimal("400")
    assert split.university_amount == Decimal("400")


def test_rounding_helpers():
    assert round_amount(Decimal("2.5")) == Decimal("3")
    assert round_amount(Decimal("2.49")) == Decimal("2")
    assert percent_of(Decimal("1999"), Decimal("2.5")) == Decimal("50")
    assert to_minor_units(Decimal("499.99")) == 49999
