"""
Wallet Service - balances, ledger entries and settlement (withdrawal) requests.
"""

import uuid
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional, List, Tuple, Union

from sqlalchemy import select, func, case
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.exceptions import (
    ValidationError,
    NotFoundError,
    InsufficientBalanceError,
)
from app.fsm.machine import ensure_settlement_transition
from app.fsm.states import (
    SettlementStatus,
    TransactionStatus,
    TransactionType,
    UserRole,
)
from app.models.wallet import Wallet, WalletTransaction, SettlementRequest
from app.services.notification_service import (
    NotificationService,
    NotificationEvent,
    notify_after_commit,
)

logger = logging.getLogger(__name__)


def min_settlement_for_role(role: Union[str, UserRole]) -> Decimal:
    """Minimum withdrawal amount for a wallet owner's role."""
    role = UserRole(role)
    if role == UserRole.REFERRAL_PARTNER:
        return settings.referral_partner_min_settlement
    if role == UserRole.TEACHER:
        return settings.teacher_min_settlement
    return settings.default_min_settlement


def to_amount(value) -> Decimal:
    """Parse a positive money amount."""
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"Invalid amount: {value!r}")
    if not amount.is_finite() or amount <= 0:
        raise ValidationError("Amount must be greater than zero", {"amount": str(value)})
    return amount


def _insert_for(db: AsyncSession):
    """Dialect insert construct, for ON CONFLICT support."""
    if db.get_bind().dialect.name == "sqlite":
        return sqlite_insert
    return pg_insert


class WalletService:
    """Service for wallet ledger operations and the settlement workflow."""

    def __init__(
        self,
        db: AsyncSession,
        notifier: Optional[NotificationService] = None,
    ):
        self.db = db
        self.notifier = notifier or NotificationService()

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    async def get_wallet(self, user_id: uuid.UUID) -> Optional[Wallet]:
        result = await self.db.execute(
            select(Wallet).where(Wallet.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def get_wallet_by_id(self, wallet_id: uuid.UUID) -> Optional[Wallet]:
        result = await self.db.execute(
            select(Wallet).where(Wallet.id == wallet_id)
        )
        return result.scalar_one_or_none()

    async def get_or_create_wallet(
        self,
        user_id: uuid.UUID,
        role: Union[str, UserRole] = UserRole.TEACHER,
        currency: Optional[str] = None,
    ) -> Wallet:
        """Get the user's wallet, creating it on first access."""
        wallet = await self.get_wallet(user_id)
        if wallet:
            return wallet

        # Another capture may be creating the same wallet. The unique user_id
        # turns the second insert into a no-op and both read the one row.
        role = UserRole(role)
        insert = _insert_for(self.db)
        result = await self.db.execute(
            insert(Wallet)
            .values(
                id=uuid.uuid4(),
                user_id=user_id,
                owner_role=role.value,
                balance=Decimal("0"),
                currency=currency or settings.default_currency,
                min_settlement_amount=min_settlement_for_role(role),
                version=1,
            )
            .on_conflict_do_nothing(index_elements=["user_id"])
            .returning(Wallet.id)
        )
        created_id = result.scalar_one_or_none()

        wallet = await self.get_wallet(user_id)
        if created_id:
            logger.info(f"Created {role.value} wallet for user {user_id}")
        else:
            logger.info(f"Wallet for user {user_id} already created, reusing it")
        return wallet

    async def _lock(self, wallet_id: uuid.UUID) -> Wallet:
        """
        Re-read a wallet under a row lock.
        Pairs with the version column so concurrent writers cannot lose updates.
        """
        result = await self.db.execute(
            select(Wallet)
            .where(Wallet.id == wallet_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        wallet = result.scalar_one_or_none()
        if not wallet:
            raise NotFoundError(f"Wallet {wallet_id} not found")
        return wallet

    # ------------------------------------------------------------------
    # Ledger
    # ------------------------------------------------------------------

    async def _add_transaction(
        self,
        wallet: Wallet,
        transaction_type: TransactionType,
        amount: Decimal,
        description: str,
        reference: str,
        metadata: Optional[dict] = None,
    ) -> WalletTransaction:
        transaction = WalletTransaction(
            wallet_id=wallet.id,
            type=transaction_type.value,
            amount=amount,
            description=description,
            reference=reference,
            status=TransactionStatus.COMPLETED.value,
            meta=metadata or {},
            processed_at=datetime.now(timezone.utc),
        )
        self.db.add(transaction)
        return transaction

    async def credit(
        self,
        wallet: Wallet,
        amount,
        description: str,
        reference: str,
        metadata: Optional[dict] = None,
        transaction_type: TransactionType = TransactionType.CREDIT,
    ) -> WalletTransaction:
        """Append a completed credit and increase the balance."""
        amount = to_amount(amount)
        if not transaction_type.increases_balance:
            raise ValidationError(f"{transaction_type.value} is not a credit transaction type")

        wallet = await self._lock(wallet.id)
        wallet.balance = wallet.balance + amount
        transaction = await self._add_transaction(
            wallet, transaction_type, amount, description, reference, metadata
        )
        await self.db.flush()

        logger.info(
            f"Credited {amount} to wallet {wallet.id} ({transaction_type.value}, ref {reference}), "
            f"balance {wallet.balance}"
        )
        return transaction

    async def debit(
        self,
        wallet: Wallet,
        amount,
        description: str,
        reference: str,
        metadata: Optional[dict] = None,
    ) -> WalletTransaction:
        """Append a completed debit. Fails if it would overdraw the wallet."""
        amount = to_amount(amount)

        wallet = await self._lock(wallet.id)
        if amount > wallet.balance:
            raise InsufficientBalanceError(
                "Insufficient balance",
                {"balance": str(wallet.balance), "amount": str(amount)},
            )
        wallet.balance = wallet.balance - amount
        transaction = await self._add_transaction(
            wallet, TransactionType.DEBIT, amount, description, reference, metadata
        )
        await self.db.flush()

        logger.info(f"Debited {amount} from wallet {wallet.id} (ref {reference}), balance {wallet.balance}")
        return transaction

    # ------------------------------------------------------------------
    # Settlement workflow
    # ------------------------------------------------------------------

    async def request_settlement(
        self,
        user_id: uuid.UUID,
        amount,
        bank_details: Optional[dict] = None,
        upi_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> SettlementRequest:
        """
        Request a withdrawal.

        The amount leaves the spendable balance immediately and is held
        until an admin rejects (returned) or approves (paid out) it.
        """
        amount = to_amount(amount)
        if not bank_details and not upi_id:
            raise ValidationError("Bank details or UPI id is required for settlement")

        wallet = await self.get_wallet(user_id)
        if not wallet:
            raise NotFoundError("Wallet not found")

        wallet = await self._lock(wallet.id)

        if amount > wallet.balance:
            raise InsufficientBalanceError(
                "Insufficient balance for settlement",
                {"balance": str(wallet.balance), "amount": str(amount)},
            )

        if amount < wallet.min_settlement_amount:
            raise ValidationError(
                f"Minimum settlement amount is ₹{wallet.min_settlement_amount}",
                {"minimum": str(wallet.min_settlement_amount)},
            )

        bank_details = bank_details or {}
        request = SettlementRequest(
            wallet_id=wallet.id,
            amount=amount,
            status=SettlementStatus.PENDING.value,
            account_number=bank_details.get("account_number"),
            ifsc_code=bank_details.get("ifsc_code"),
            bank_name=bank_details.get("bank_name"),
            account_holder_name=bank_details.get("account_holder_name"),
            upi_id=upi_id,
            notes=notes,
            requested_at=datetime.now(timezone.utc),
        )
        self.db.add(request)
        wallet.balance = wallet.balance - amount
        await self.db.flush()

        logger.info(
            f"Settlement request {request.id} for {amount} on wallet {wallet.id}, "
            f"balance now {wallet.balance}"
        )
        return request

    async def process_settlement(
        self,
        wallet_id: uuid.UUID,
        request_id: uuid.UUID,
        status: Union[str, SettlementStatus],
        processed_by: Optional[uuid.UUID] = None,
        notes: Optional[str] = None,
    ) -> SettlementRequest:
        """
        Apply an admin decision to a settlement request.

        rejected returns the held amount to the balance; approved keeps it
        deducted; processed (only after approved) records the payout in
        the ledger.
        """
        try:
            target = SettlementStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown settlement status: {status}")
        if target == SettlementStatus.PENDING:
            raise ValidationError("Settlement requests cannot be moved back to pending")

        # Wallet first, then the request: same lock order as request_settlement
        wallet = await self._lock(wallet_id)
        result = await self.db.execute(
            select(SettlementRequest)
            .where(
                SettlementRequest.id == request_id,
                SettlementRequest.wallet_id == wallet_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        request = result.scalar_one_or_none()
        if not request:
            raise NotFoundError("Settlement request not found")

        ensure_settlement_transition(request.status, target)

        if target == SettlementStatus.REJECTED:
            wallet.balance = wallet.balance + request.amount
        elif target == SettlementStatus.PROCESSED:
            await self._add_transaction(
                wallet,
                TransactionType.SETTLEMENT,
                request.amount,
                "Settlement paid out",
                str(request.id),
                {"settlement_request_id": str(request.id)},
            )

        request.status = target.value
        request.processed_at = datetime.now(timezone.utc)
        request.processed_by = processed_by
        if notes is not None:
            request.notes = notes
        await self.db.flush()

        logger.info(
            f"Settlement request {request.id} -> {target.value} by {processed_by}, "
            f"wallet {wallet.id} balance {wallet.balance}"
        )

        notify_after_commit(
            self.db,
            self.notifier,
            NotificationEvent.SETTLEMENT_PROCESSED,
            wallet.user_id,
            {
                "settlement_request_id": str(request.id),
                "status": target.value,
                "amount": str(request.amount),
            },
        )
        return request

    # ------------------------------------------------------------------
    # Read models
    # ------------------------------------------------------------------

    async def get_transaction_history(
        self,
        user_id: uuid.UUID,
        limit: int = 50,
        offset: int = 0,
    ) -> List[WalletTransaction]:
        """Newest transactions first."""
        wallet = await self.get_wallet(user_id)
        if not wallet:
            return []

        result = await self.db.execute(
            select(WalletTransaction)
            .where(WalletTransaction.wallet_id == wallet.id)
            .order_by(WalletTransaction.processed_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_settlement_history(
        self,
        user_id: uuid.UUID,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[List[SettlementRequest], int]:
        """Settlement requests for a wallet, newest first, with total count."""
        wallet = await self.get_wallet(user_id)
        if not wallet:
            raise NotFoundError("Wallet not found")

        conditions = [SettlementRequest.wallet_id == wallet.id]
        if status:
            conditions.append(SettlementRequest.status == SettlementStatus(status).value)

        total = await self.db.scalar(
            select(func.count(SettlementRequest.id)).where(*conditions)
        )
        result = await self.db.execute(
            select(SettlementRequest)
            .where(*conditions)
            .order_by(SettlementRequest.requested_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total or 0

    async def list_settlement_requests(
        self,
        status: Optional[str] = SettlementStatus.PENDING.value,
        limit: int = 100,
    ) -> List[SettlementRequest]:
        """Admin queue, oldest first."""
        query = select(SettlementRequest).order_by(SettlementRequest.requested_at)
        if status:
            query = query.where(SettlementRequest.status == SettlementStatus(status).value)
        result = await self.db.execute(query.limit(limit))
        return list(result.scalars().all())

    async def get_wallet_analytics(self, user_id: uuid.UUID) -> dict:
        """Balance and ledger totals for one wallet."""
        wallet = await self.get_wallet(user_id)
        if not wallet:
            raise NotFoundError("Wallet not found")

        credit_types = [TransactionType.CREDIT.value, TransactionType.COMMISSION.value]
        is_credit = WalletTransaction.type.in_(credit_types)
        is_debit = WalletTransaction.type == TransactionType.DEBIT.value
        recent = WalletTransaction.processed_at >= datetime.now(timezone.utc) - timedelta(days=30)

        def total(condition):
            return func.coalesce(
                func.sum(case((condition, WalletTransaction.amount), else_=0)), 0
            )

        row = (
            await self.db.execute(
                select(
                    total(is_credit),
                    total(is_debit),
                    total(is_credit & recent),
                    total(is_debit & recent),
                    func.count(WalletTransaction.id),
                ).where(
                    WalletTransaction.wallet_id == wallet.id,
                    WalletTransaction.status == TransactionStatus.COMPLETED.value,
                )
            )
        ).one()

        pending = await self.db.scalar(
            select(func.coalesce(func.sum(SettlementRequest.amount), 0)).where(
                SettlementRequest.wallet_id == wallet.id,
                SettlementRequest.status == SettlementStatus.PENDING.value,
            )
        )

        return {
            "current_balance": wallet.balance,
            "total_credits": Decimal(str(row[0])),
            "total_debits": Decimal(str(row[1])),
            "monthly_credits": Decimal(str(row[2])),
            "monthly_debits": Decimal(str(row[3])),
            "pending_settlements": Decimal(str(pending or 0)),
            "total_transactions": row[4],
        }

    async def get_platform_analytics(self) -> dict:
        """Totals across all wallets."""
        row = (
            await self.db.execute(
                select(
                    func.count(Wallet.id),
                    func.coalesce(func.sum(Wallet.balance), 0),
                    func.avg(Wallet.balance),
                )
            )
        ).one()

        pending_requests = await self.db.scalar(
            select(func.count(SettlementRequest.id)).where(
                SettlementRequest.status == SettlementStatus.PENDING.value
            )
        )

        return {
            "total_wallets": row[0],
            "total_balance": Decimal(str(row[1])),
            "average_balance": Decimal(str(row[2])) if row[2] is not None else Decimal("0"),
            "total_settlement_requests": pending_requests or 0,
        }
