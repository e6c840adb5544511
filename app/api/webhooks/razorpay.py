"""
Razorpay Webhook Handler.
Verifies signatures and processes payment events.
"""

import logging
from typing import Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException, Request

from app.api.deps import get_payment_service
from app.exceptions import InvalidStateError, NotFoundError
from app.services.payment_service import PaymentService

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/razorpay")
async def razorpay_webhook(
    request: Request,
    payment_service: PaymentService = Depends(get_payment_service),
):
    """
    Handle Razorpay webhook events.

    Key events:
    - payment.captured / order.paid: capture and settle the order
    - payment.failed: mark the order failed
    """
    body = await request.body()
    signature = request.headers.get("X-Razorpay-Signature", "")

    if not payment_service.gateway.verify_webhook_signature(body.decode("utf-8"), signature):
        logger.error("Invalid Razorpay webhook signature")
        raise HTTPException(status_code=401, detail="Invalid signature")

    payload = await request.json()
    event_type = payload.get("event")
    event_id = payload.get("event_id") or request.headers.get("X-Razorpay-Event-Id")

    logger.info(f"Razorpay webhook received: {event_type} ({event_id})")

    if await payment_service.is_duplicate_event(event_id):
        logger.info(f"Duplicate event {event_id} ignored")
        return {"status": "duplicate"}

    try:
        if event_type in ("payment.captured", "order.paid"):
            await handle_payment_captured(payload, payment_service)
        elif event_type == "payment.failed":
            await handle_payment_failed(payload, payment_service)
        else:
            logger.info(f"Unhandled Razorpay event: {event_type}")
    except (NotFoundError, InvalidStateError) as e:
        # Acknowledge so Razorpay stops retrying an event we cannot apply
        logger.warning(f"Razorpay event {event_type} ({event_id}) not applied: {e.message}")
        await payment_service.db.rollback()
        return {"status": "ignored", "message": e.message}

    await payment_service.remember_event(event_id)
    return {"status": "ok"}


def extract_payment_ids(payload: dict) -> Tuple[Optional[str], Optional[str]]:
    """Pull (order_id, payment_id) out of a payment or order event."""
    event_data = payload.get("payload", {})
    payment = event_data.get("payment", {}).get("entity", {})
    order = event_data.get("order", {}).get("entity", {})

    order_id = payment.get("order_id") or order.get("id")
    return order_id, payment.get("id")


async def handle_payment_captured(payload: dict, payment_service: PaymentService) -> None:
    order_id, payment_id = extract_payment_ids(payload)
    if not order_id or not payment_id:
        logger.error(f"Captured event without order/payment id: {payload.get('event_id')}")
        return

    payment = await payment_service.capture_from_webhook(order_id, payment_id)
    logger.info(f"Order {order_id} captured via webhook ({payment.status})")


async def handle_payment_failed(payload: dict, payment_service: PaymentService) -> None:
    order_id, _ = extract_payment_ids(payload)
    if not order_id:
        logger.error(f"Failed event without order id: {payload.get('event_id')}")
        return

    await payment_service.mark_failed(order_id)
    logger.info(f"Order {order_id} marked failed via webhook")
