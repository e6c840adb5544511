"""
Tests for ReferralService.
"""

import uuid
from decimal import Decimal

import pytest

from app.exceptions import NotFoundError
from app.fsm.states import PaymentStatus, ReferralTier, UserRole
from app.models.payment import Payment
from app.models.user import User
from app.services.referral_service import (
    REFERRAL_CODE_ALPHABET,
    REFERRAL_CODE_LENGTH,
    ReferralService,
    generate_referral_code,
    resolve_commission,
)


@pytest.mark.parametrize(
    "total,tier,rate",
    [
        (0, ReferralTier.TIER1, Decimal("1")),
        (10, ReferralTier.TIER1, Decimal("1")),
        (11, ReferralTier.TIER2, Decimal("2.5")),
        (20, ReferralTier.TIER2, Decimal("2.5")),
        (21, ReferralTier.TIER3, Decimal("5")),
        (40, ReferralTier.TIER3, Decimal("5")),
        (41, ReferralTier.TIER4, Decimal("10")),
        (500, ReferralTier.TIER4, Decimal("10")),
    ],
)
def test_resolve_commission(total, tier, rate):
    assert resolve_commission(total) == (tier, rate)


def test_resolve_commission_is_monotonic():
    rates = [resolve_commission(n)[1] for n in range(0, 60)]
    assert rates == sorted(rates)


def test_resolve_commission_rejects_negative():
    with pytest.raises(ValueError):
        resolve_commission(-1)


def test_generate_referral_code():
    code = generate_referral_code()
    assert len(code) == REFERRAL_CODE_LENGTH
    assert all(c in REFERRAL_CODE_ALPHABET for c in code)


def _payment(payer_id, amount="1000", status=PaymentStatus.PENDING) -> Payment:
    return Payment(
        order_id=f"order_{uuid.uuid4().hex[:14]}",
        payer_id=payer_id,
        course_id=uuid.uuid4(),
        teacher_id=uuid.uuid4(),
        amount=Decimal(amount),
        currency="INR",
        status=status.value,
    )


@pytest.mark.asyncio
async def test_find_partner_by_code_is_case_insensitive(db, make_partner):
    partner = await make_partner("ABCD1234")
    service = ReferralService(db)

    assert (await service.find_partner_by_code(" abcd1234 ")).id == partner.id
    assert await service.find_partner_by_code("NOPE0000") is None


@pytest.mark.asyncio
async def test_find_partner_ignores_non_partners(db):
    db.add(User(role=UserRole.TEACHER.value, referral_code="TEACH001"))
    await db.flush()

    assert await ReferralService(db).find_partner_by_code("TEACH001") is None


@pytest.mark.asyncio
async def test_apply_referral_fixes_rate_at_application(db, make_partner):
    partner = await make_partner("TIER2ABC", total_referrals=15)
    payment = _payment(uuid.uuid4(), amount="1999")

    ReferralService(db).apply_referral(payment, partner)

    assert payment.referral_partner_id == partner.id
    assert payment.referral_commission_rate == Decimal("2.5")
    assert payment.referral_commission == Decimal("50")


@pytest.mark.asyncio
async def test_first_captured_payment_counts_once_per_payer(db, make_partner):
    partner = await make_partner("COUNTME1", total_referrals=10)
    service = ReferralService(db)
    payer = uuid.uuid4()

    first = _payment(payer)
    service.apply_referral(first, partner)
    first.status = PaymentStatus.CAPTURED.value
    first.referral_amount = first.referral_commission
    db.add(first)
    await db.flush()
    await service.record_captured_payment(first)

    assert partner.total_referrals == 11
    assert partner.tier == ReferralTier.TIER2.value
    assert partner.commission_rate == Decimal("2.5")

    second = _payment(payer)
    service.apply_referral(second, partner)
    second.status = PaymentStatus.CAPTURED.value
    second.referral_amount = second.referral_commission
    db.add(second)
    await db.flush()
    await service.record_captured_payment(second)

    # Same payer again: earnings grow, referral count does not
    assert partner.total_referrals == 11
    assert partner.total_earnings == first.referral_amount + second.referral_amount


@pytest.mark.asyncio
async def test_assign_referral_code_keeps_existing(db, make_partner):
    partner = await make_partner("KEEPME01")
    service = ReferralService(db)

    assert await service.assign_referral_code(partner.id) == "KEEPME01"


@pytest.mark.asyncio
async def test_assign_referral_code_generates_new(db):
    partner = User(role=UserRole.REFERRAL_PARTNER.value)
    db.add(partner)
    await db.flush()

    code = await ReferralService(db).assign_referral_code(partner.id)

    assert len(code) == REFERRAL_CODE_LENGTH
    assert partner.referral_code == code


@pytest.mark.asyncio
async def test_get_stats(db, make_partner):
    partner = await make_partner("STATS001", total_referrals=18)

    stats = await ReferralService(db).get_stats(partner.id)

    assert stats["current_tier"] == "tier2"
    assert stats["next_tier"] == "tier3"
    assert stats["referrals_to_next_tier"] == 3
    assert stats["wallet_balance"] == Decimal("0")


@pytest.mark.asyncio
async def test_get_partner_rejects_non_partner(db):
    user = User(role=UserRole.STUDENT.value)
    db.add(user)
    await db.flush()

    with pytest.raises(NotFoundError):
        await ReferralService(db).get_partner(user.id)
