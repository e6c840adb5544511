"""
Tests for WalletService ledger and settlement workflow.
"""

import uuid
from decimal import Decimal

import pytest
from sqlalchemy import select

from app.exceptions import (
    InsufficientBalanceError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from app.fsm.states import SettlementStatus, TransactionType, UserRole
from app.models.wallet import SettlementRequest, Wallet, WalletTransaction
from app.services.wallet_service import WalletService

BANK = {
    "account_number": "001234567890",
    "ifsc_code": "HDFC0001234",
    "bank_name": "HDFC Bank",
    "account_holder_name": "Asha Rao",
}


@pytest.mark.asyncio
async def test_get_or_create_wallet_uses_role_minimum(wallet_service):
    teacher = await wallet_service.get_or_create_wallet(uuid.uuid4(), UserRole.TEACHER)
    partner = await wallet_service.get_or_create_wallet(uuid.uuid4(), UserRole.REFERRAL_PARTNER)

    assert teacher.balance == Decimal("0")
    assert teacher.min_settlement_amount == Decimal("1000")
    assert partner.min_settlement_amount == Decimal("500")


@pytest.mark.asyncio
async def test_get_or_create_wallet_is_idempotent(wallet_service):
    user_id = uuid.uuid4()
    first = await wallet_service.get_or_create_wallet(user_id)
    second = await wallet_service.get_or_create_wallet(user_id)

    assert first.id == second.id


@pytest.mark.asyncio
async def test_credit_appends_transaction(db, wallet_service):
    user_id = uuid.uuid4()
    wallet = await wallet_service.get_or_create_wallet(user_id, UserRole.TEACHER)

    txn = await wallet_service.credit(
        wallet, Decimal("630"), "Course sale", "order_1", {"payment_id": "pay_1"}
    )

    assert txn.type == TransactionType.CREDIT.value
    assert txn.status == "completed"
    assert txn.meta == {"payment_id": "pay_1"}
    assert (await wallet_service.get_wallet(user_id)).balance == Decimal("630")


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", ["0", "-5", "abc"])
async def test_credit_rejects_non_positive(wallet_service, amount):
    wallet = await wallet_service.get_or_create_wallet(uuid.uuid4())
    with pytest.raises(ValidationError):
        await wallet_service.credit(wallet, amount, "bad", "ref")


@pytest.mark.asyncio
async def test_debit_cannot_overdraw(funded_wallet, wallet_service):
    user_id, wallet = await funded_wallet(balance=Decimal("100"))

    with pytest.raises(InsufficientBalanceError):
        await wallet_service.debit(wallet, Decimal("100.01"), "too much", "ref")

    await wallet_service.debit(wallet, Decimal("40"), "fee", "ref")
    assert (await wallet_service.get_wallet(user_id)).balance == Decimal("60")


@pytest.mark.asyncio
async def test_settlement_request_holds_amount(db, funded_wallet, wallet_service):
    user_id, wallet = await funded_wallet(balance=Decimal("2000"))

    request = await wallet_service.request_settlement(user_id, Decimal("500"), bank_details=BANK)

    assert request.status == SettlementStatus.PENDING.value
    assert request.amount == Decimal("500")
    assert request.bank_details["ifsc_code"] == "HDFC0001234"
    assert (await wallet_service.get_wallet(user_id)).balance == Decimal("1500")

    pending = (
        await db.execute(select(SettlementRequest).where(SettlementRequest.wallet_id == wallet.id))
    ).scalars().all()
    assert len(pending) == 1


@pytest.mark.asyncio
async def test_settlement_over_balance_leaves_balance_unchanged(funded_wallet, wallet_service):
    user_id, _ = await funded_wallet(balance=Decimal("2000"))

    with pytest.raises(InsufficientBalanceError):
        await wallet_service.request_settlement(user_id, Decimal("2500"), upi_id="asha@upi")

    assert (await wallet_service.get_wallet(user_id)).balance == Decimal("2000")


@pytest.mark.asyncio
async def test_settlement_below_minimum(funded_wallet, wallet_service):
    user_id, _ = await funded_wallet(role=UserRole.TEACHER, balance=Decimal("2000"))

    with pytest.raises(ValidationError):
        await wallet_service.request_settlement(user_id, Decimal("999"), upi_id="asha@upi")


@pytest.mark.asyncio
async def test_settlement_requires_payout_destination(funded_wallet, wallet_service):
    user_id, _ = await funded_wallet()

    with pytest.raises(ValidationError):
        await wallet_service.request_settlement(user_id, Decimal("500"))


@pytest.mark.asyncio
async def test_settlement_without_wallet(wallet_service):
    with pytest.raises(NotFoundError):
        await wallet_service.request_settlement(uuid.uuid4(), Decimal("500"), upi_id="x@upi")


@pytest.mark.asyncio
async def test_reject_restores_balance_exactly(db, funded_wallet, wallet_service, notifier):
    user_id, wallet = await funded_wallet(balance=Decimal("1234.50"))

    request = await wallet_service.request_settlement(user_id, Decimal("734.50"), upi_id="a@upi")
    await wallet_service.process_settlement(
        wallet.id, request.id, SettlementStatus.REJECTED, notes="Bank details mismatch"
    )

    assert (await wallet_service.get_wallet(user_id)).balance == Decimal("1234.50")
    assert request.status == SettlementStatus.REJECTED.value
    assert request.notes == "Bank details mismatch"
    assert notifier.events() == []

    await db.commit()
    assert notifier.events() == ["settlement.processed"]


@pytest.mark.asyncio
async def test_approve_then_process(db, funded_wallet, wallet_service):
    user_id, wallet = await funded_wallet(balance=Decimal("2000"))
    admin_id = uuid.uuid4()

    request = await wallet_service.request_settlement(user_id, Decimal("600"), bank_details=BANK)
    await wallet_service.process_settlement(wallet.id, request.id, "approved", processed_by=admin_id)
    assert (await wallet_service.get_wallet(user_id)).balance == Decimal("1400")

    await wallet_service.process_settlement(wallet.id, request.id, "processed", processed_by=admin_id)

    assert request.status == SettlementStatus.PROCESSED.value
    assert request.processed_by == admin_id
    assert (await wallet_service.get_wallet(user_id)).balance == Decimal("1400")

    settlement_txns = (
        await db.execute(
            select(WalletTransaction).where(
                WalletTransaction.wallet_id == wallet.id,
                WalletTransaction.type == TransactionType.SETTLEMENT.value,
            )
        )
    ).scalars().all()
    assert [t.reference for t in settlement_txns] == [str(request.id)]


@pytest.mark.asyncio
async def test_cannot_process_unapproved(funded_wallet, wallet_service):
    user_id, wallet = await funded_wallet()
    request = await wallet_service.request_settlement(user_id, Decimal("500"), upi_id="a@upi")

    with pytest.raises(InvalidStateError):
        await wallet_service.process_settlement(wallet.id, request.id, "processed")


@pytest.mark.asyncio
async def test_cannot_move_back_to_pending(funded_wallet, wallet_service):
    user_id, wallet = await funded_wallet()
    request = await wallet_service.request_settlement(user_id, Decimal("500"), upi_id="a@upi")

    with pytest.raises(ValidationError):
        await wallet_service.process_settlement(wallet.id, request.id, "pending")


@pytest.mark.asyncio
async def test_process_unknown_request(funded_wallet, wallet_service):
    _, wallet = await funded_wallet()

    with pytest.raises(NotFoundError):
        await wallet_service.process_settlement(wallet.id, uuid.uuid4(), "approved")


@pytest.mark.asyncio
async def test_history_and_analytics(funded_wallet, wallet_service):
    user_id, wallet = await funded_wallet(balance=Decimal("2000"))
    await wallet_service.credit(
        wallet, Decimal("50"), "Referral", "order_9", transaction_type=TransactionType.COMMISSION
    )
    await wallet_service.debit(wallet, Decimal("30"), "Adjustment", "adj_1")
    await wallet_service.request_settlement(user_id, Decimal("500"), upi_id="a@upi")

    history = await wallet_service.get_transaction_history(user_id)
    assert len(history) == 3

    settlements, total = await wallet_service.get_settlement_history(user_id, status="pending")
    assert total == 1 and len(settlements) == 1

    analytics = await wallet_service.get_wallet_analytics(user_id)
    assert analytics["current_balance"] == Decimal("1520")
    assert analytics["total_credits"] == Decimal("2050")
    assert analytics["total_debits"] == Decimal("30")
    assert analytics["monthly_credits"] == Decimal("2050")
    assert analytics["pending_settlements"] == Decimal("500")
    assert analytics["total_transactions"] == 3

    platform = await wallet_service.get_platform_analytics()
    assert platform["total_wallets"] == 1
    assert platform["total_settlement_requests"] == 1


@pytest.mark.asyncio
async def test_rolled_back_decision_sends_no_notification(db, funded_wallet, wallet_service, notifier):
    user_id, wallet = await funded_wallet()
    request = await wallet_service.request_settlement(user_id, Decimal("500"), upi_id="a@upi")

    await wallet_service.process_settlement(wallet.id, request.id, "rejected")
    await db.rollback()

    assert notifier.events() == []


async def _seed_pending_request(session_factory, notifier, balance="2000", amount="500"):
    """Commit a funded partner wallet with one pending request."""
    async with session_factory() as session:
        service = WalletService(session, notifier=notifier)
        user_id = uuid.uuid4()
        wallet = await service.get_or_create_wallet(user_id, UserRole.REFERRAL_PARTNER)
        await service.credit(wallet, Decimal(balance), "Opening balance", "seed")
        request = await service.request_settlement(user_id, Decimal(amount), upi_id="a@upi")
        await session.commit()
        return user_id, wallet.id, request.id


@pytest.mark.asyncio
async def test_second_admin_cannot_reject_twice(session_factory, notifier):
    user_id, wallet_id, request_id = await _seed_pending_request(session_factory, notifier)

    async with session_factory() as first, session_factory() as second:
        # Both admins opened the request while it was pending
        stale = await second.get(SettlementRequest, request_id)
        assert stale.status == SettlementStatus.PENDING.value

        await WalletService(first, notifier=notifier).process_settlement(
            wallet_id, request_id, "rejected"
        )
        await first.commit()

        with pytest.raises(InvalidStateError):
            await WalletService(second, notifier=notifier).process_settlement(
                wallet_id, request_id, "rejected"
            )
        await second.rollback()

    async with session_factory() as session:
        wallet = await WalletService(session).get_wallet(user_id)
        assert wallet.balance == Decimal("2000")

    assert notifier.events() == ["settlement.processed"]


@pytest.mark.asyncio
async def test_payout_is_recorded_once_across_sessions(session_factory, notifier):
    user_id, wallet_id, request_id = await _seed_pending_request(session_factory, notifier)

    async with session_factory() as session:
        await WalletService(session, notifier=notifier).process_settlement(
            wallet_id, request_id, "approved"
        )
        await session.commit()

    async with session_factory() as first, session_factory() as second:
        stale = await second.get(SettlementRequest, request_id)
        assert stale.status == SettlementStatus.APPROVED.value

        await WalletService(first, notifier=notifier).process_settlement(
            wallet_id, request_id, "processed"
        )
        await first.commit()

        with pytest.raises(InvalidStateError):
            await WalletService(second, notifier=notifier).process_settlement(
                wallet_id, request_id, "processed"
            )
        await second.rollback()

    async with session_factory() as session:
        payouts = (
            await session.execute(
                select(WalletTransaction).where(
                    WalletTransaction.wallet_id == wallet_id,
                    WalletTransaction.type == TransactionType.SETTLEMENT.value,
                )
            )
        ).scalars().all()
        assert [t.reference for t in payouts] == [str(request_id)]
        assert (await WalletService(session).get_wallet(user_id)).balance == Decimal("1500")


@pytest.mark.asyncio
async def test_wallet_created_by_concurrent_capture_is_reused(session_factory):
    user_id = uuid.uuid4()

    async with session_factory() as first, session_factory() as second:
        racing = WalletService(second)
        lookup = racing.get_wallet
        lookups = []

        async def lookup_before_other_commit(uid):
            # First lookup ran before the other transaction committed its wallet
            lookups.append(uid)
            if len(lookups) == 1:
                return None
            return await lookup(uid)

        racing.get_wallet = lookup_before_other_commit

        created = await WalletService(first).get_or_create_wallet(user_id, UserRole.TEACHER)
        await first.commit()

        reused = await racing.get_or_create_wallet(user_id, UserRole.TEACHER)
        assert reused.id == created.id
        assert len(lookups) == 2

        # The session is still usable for the rest of the capture
        await racing.credit(reused, Decimal("630"), "Course sale", "order_race")
        await second.commit()

    async with session_factory() as session:
        wallets = (
            await session.execute(select(Wallet).where(Wallet.user_id == user_id))
        ).scalars().all()
        assert len(wallets) == 1
        assert wallets[0].balance == Decimal("630")
