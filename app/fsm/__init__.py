"""FSM package for payment and settlement state management."""

from app.fsm.states import (
    PaymentStatus,
    SettlementStatus,
    TransactionType,
    TransactionStatus,
    ReferralTier,
    UserRole,
)

__all__ = [
    "PaymentStatus",
    "SettlementStatus",
    "TransactionType",
    "TransactionStatus",
    "ReferralTier",
    "UserRole",
]
