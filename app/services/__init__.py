"""Services package."""

from app.services.payment_service import PaymentService
from app.services.wallet_service import WalletService
from app.services.referral_service import ReferralService, resolve_commission
from app.services.razorpay_gateway import RazorpayGateway, get_gateway
from app.services.notification_service import NotificationService
from app.services.revenue_split import compute_split, SettlementSplit

__all__ = [
    "PaymentService",
    "WalletService",
    "ReferralService",
    "resolve_commission",
    "RazorpayGateway",
    "get_gateway",
    "NotificationService",
    "compute_split",
    "SettlementSplit",
]
