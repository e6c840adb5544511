"""
Razorpay Gateway - order creation, signature checks and refunds.

All amounts passed in are minor units (paise).
"""

import asyncio
import hashlib
import hmac
import logging
from typing import Optional, Dict, Any

import razorpay
from razorpay.errors import BadRequestError, GatewayError, ServerError

from app.config import settings
from app.exceptions import PaymentGatewayError

logger = logging.getLogger(__name__)


def _hmac_sha256(secret: str, message: str) -> str:
    return hmac.new(
        secret.encode(),
        message.encode(),
        hashlib.sha256,
    ).hexdigest()


class RazorpayGateway:
    """Thin async wrapper around the Razorpay SDK client."""

    def __init__(
        self,
        key_id: Optional[str] = None,
        key_secret: Optional[str] = None,
        webhook_secret: Optional[str] = None,
    ):
        self.key_id = key_id if key_id is not None else settings.razorpay_key_id
        self.key_secret = key_secret if key_secret is not None else settings.razorpay_key_secret
        self.webhook_secret = (
            webhook_secret if webhook_secret is not None else settings.razorpay_webhook_secret
        )
        self.client = razorpay.Client(auth=(self.key_id, self.key_secret))

    async def create_order(
        self,
        amount_minor: int,
        currency: str,
        receipt: str,
        notes: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """Create a Razorpay order and return its id."""
        data = {
            "amount": amount_minor,
            "currency": currency,
            "receipt": receipt,
            "notes": notes or {},
        }
        try:
            order = await asyncio.to_thread(self.client.order.create, data)
        except (BadRequestError, GatewayError, ServerError) as e:
            logger.error(f"Razorpay order creation failed for {receipt}: {e}")
            raise PaymentGatewayError(f"Failed to create payment order: {e}") from e

        logger.info(f"Created Razorpay order {order['id']} for receipt {receipt}")
        return {
            "order_id": order["id"],
            "amount": order.get("amount", amount_minor),
            "currency": order.get("currency", currency),
            "receipt": order.get("receipt", receipt),
        }

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        """
        Verify a checkout signature.
        HMAC-SHA256 over "order_id|payment_id" with the key secret.
        """
        if not signature or not self.key_secret:
            return False
        expected = _hmac_sha256(self.key_secret, f"{order_id}|{payment_id}")
        return hmac.compare_digest(expected, signature)

    def verify_webhook_signature(self, body: str, signature: str) -> bool:
        """Verify the X-Razorpay-Signature header over the raw body."""
        if not self.webhook_secret:
            logger.warning("Razorpay webhook secret not configured")
            return False
        if not signature:
            return False
        expected = _hmac_sha256(self.webhook_secret, body)
        return hmac.compare_digest(expected, signature)

    async def refund(
        self,
        payment_id: str,
        amount_minor: int,
        reason: str = "Refund",
    ) -> Dict[str, Any]:
        """Issue a (possibly partial) refund for a captured payment."""
        data = {
            "amount": amount_minor,
            "speed": "normal",
            "notes": {"reason": reason},
        }
        try:
            refund = await asyncio.to_thread(self.client.payment.refund, payment_id, data)
        except (BadRequestError, GatewayError, ServerError) as e:
            logger.error(f"Razorpay refund failed for {payment_id}: {e}")
            raise PaymentGatewayError(f"Failed to process refund: {e}") from e

        logger.info(f"Razorpay refund {refund['id']} issued for {payment_id}")
        return {
            "refund_id": refund["id"],
            "amount": refund.get("amount", amount_minor),
            "status": refund.get("status"),
        }


def get_gateway() -> RazorpayGateway:
    """Dependency for the payment gateway."""
    return RazorpayGateway()
