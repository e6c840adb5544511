"""Models package for database models."""

from app.models.user import User
from app.models.payment import Payment
from app.models.wallet import Wallet, WalletTransaction, SettlementRequest

__all__ = [
    "User",
    "Payment",
    "Wallet",
    "WalletTransaction",
    "SettlementRequest",
]
