"""
Response shapes for payment and wallet read models.
"""

from decimal import Decimal
from typing import Any, Optional

from app.models.payment import Payment
from app.models.wallet import Wallet, WalletTransaction, SettlementRequest


def money(value: Any) -> Optional[float]:
    if value is None:
        return None
    return float(Decimal(str(value)))


def iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def payment_to_dict(payment: Payment) -> dict:
    return {
        "id": str(payment.id),
        "order_id": payment.order_id,
        "payment_id": payment.payment_id,
        "payer_id": str(payment.payer_id),
        "course_id": str(payment.course_id),
        "amount": money(payment.amount),
        "currency": payment.currency,
        "status": payment.status,
        "payment_method": payment.payment_method,
        "coupon": {
            "code": payment.coupon_code,
            "discount": money(payment.coupon_discount),
            "discount_type": payment.coupon_discount_type,
        } if payment.coupon_code else None,
        "referral": {
            "partner_id": str(payment.referral_partner_id),
            "commission": money(payment.referral_commission),
            "commission_rate": money(payment.referral_commission_rate),
        } if payment.referral_partner_id else None,
        "settlement": {
            key: money(value) if isinstance(value, Decimal) else value
            for key, value in payment.settlement_breakdown().items()
        } if payment.settlement_computed else None,
        "refund": {
            "amount": money(payment.refund_amount),
            "reason": payment.refund_reason,
            "refund_id": payment.refund_id,
            "processed_at": iso(payment.refund_processed_at),
        } if payment.refund_amount is not None else None,
        "created_at": iso(payment.created_at),
        "captured_at": iso(payment.captured_at),
        "failed_at": iso(payment.failed_at),
        "refunded_at": iso(payment.refunded_at),
    }


def wallet_to_dict(wallet: Wallet) -> dict:
    return {
        "id": str(wallet.id),
        "user_id": str(wallet.user_id),
        "balance": money(wallet.balance),
        "currency": wallet.currency,
        "settings": {
            "min_settlement_amount": money(wallet.min_settlement_amount),
            "auto_settlement": wallet.auto_settlement,
            "settlement_frequency": wallet.settlement_frequency,
        },
    }


def transaction_to_dict(transaction: WalletTransaction) -> dict:
    return {
        "id": str(transaction.id),
        "type": transaction.type,
        "amount": money(transaction.amount),
        "description": transaction.description,
        "reference": transaction.reference,
        "status": transaction.status,
        "metadata": transaction.meta,
        "processed_at": iso(transaction.processed_at),
    }


def settlement_to_dict(request: SettlementRequest) -> dict:
    return {
        "id": str(request.id),
        "wallet_id": str(request.wallet_id),
        "amount": money(request.amount),
        "status": request.status,
        "bank_details": request.bank_details,
        "upi_id": request.upi_id,
        "notes": request.notes,
        "requested_at": iso(request.requested_at),
        "processed_at": iso(request.processed_at),
        "processed_by": str(request.processed_by) if request.processed_by else None,
    }
