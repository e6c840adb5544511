"""
Payment Endpoints.
Checkout order creation, capture callback, failure and refunds.
"""

import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from app.api.deps import (
    CurrentUser,
    get_admin_user,
    get_current_user,
    get_payment_service,
)
from app.api.serializers import payment_to_dict
from app.fsm.states import DiscountType, PaymentMethod, PaymentStatus
from app.services.payment_service import PaymentService

router = APIRouter()
logger = logging.getLogger(__name__)


class CouponIn(BaseModel):
    code: str
    discount: Optional[Decimal] = None
    discount_type: DiscountType = DiscountType.PERCENTAGE


class CreateOrderRequest(BaseModel):
    """Request body for starting a checkout."""
    course_id: uuid.UUID
    teacher_id: uuid.UUID
    university_id: Optional[uuid.UUID] = None
    amount: Decimal
    currency: Optional[str] = None
    referral_code: Optional[str] = None
    coupon: Optional[CouponIn] = None
    payment_method: PaymentMethod = PaymentMethod.RAZORPAY


class CaptureRequest(BaseModel):
    """Razorpay checkout callback fields."""
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str


class RefundRequest(BaseModel):
    amount: Optional[Decimal] = None
    reason: str = Field(..., min_length=1, max_length=500)
    processed_by: Optional[uuid.UUID] = None


class ApplyReferralRequest(BaseModel):
    referral_code: str


@router.post("/orders")
async def create_order(
    request: CreateOrderRequest,
    user: CurrentUser = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    """Create a Razorpay order and a pending payment for the caller."""
    payment = await service.create_order(
        amount=request.amount,
        payer_id=user.id,
        course_id=request.course_id,
        teacher_id=request.teacher_id,
        currency=request.currency,
        university_id=request.university_id,
        referral_code=request.referral_code,
        coupon=request.coupon.model_dump(mode="json") if request.coupon else None,
        payment_method=request.payment_method,
    )
    return {
        "status": "success",
        "order_id": payment.order_id,
        "amount": float(payment.amount),
        "currency": payment.currency,
        "key_id": service.gateway.key_id,
    }


@router.post("/capture")
async def capture_payment(
    request: CaptureRequest,
    service: PaymentService = Depends(get_payment_service),
):
    """
    Confirm a payment after Razorpay checkout.

    Idempotent: repeating the same callback returns the captured payment
    without crediting wallets again.
    """
    payment = await service.capture(
        order_id=request.razorpay_order_id,
        payment_id=request.razorpay_payment_id,
        signature=request.razorpay_signature,
    )
    return {"status": "success", "payment": payment_to_dict(payment)}


@router.post("/{order_id}/referral")
async def apply_referral(
    order_id: str,
    request: ApplyReferralRequest,
    service: PaymentService = Depends(get_payment_service),
):
    payment = await service.apply_referral(order_id, request.referral_code)
    return {"status": "success", "payment": payment_to_dict(payment)}


@router.post("/{order_id}/fail")
async def fail_payment(
    order_id: str,
    service: PaymentService = Depends(get_payment_service),
):
    payment = await service.mark_failed(order_id)
    return {"status": "success", "payment": payment_to_dict(payment)}


@router.post("/{order_id}/cancel")
async def cancel_payment(
    order_id: str,
    service: PaymentService = Depends(get_payment_service),
):
    payment = await service.cancel(order_id)
    return {"status": "success", "payment": payment_to_dict(payment)}


@router.post("/{order_id}/refund")
async def refund_payment(
    order_id: str,
    request: RefundRequest,
    service: PaymentService = Depends(get_payment_service),
    _: str = Depends(get_admin_user),
):
    """Refund a captured payment (admin only)."""
    payment = await service.refund(
        order_id,
        reason=request.reason,
        processed_by=request.processed_by,
        amount=request.amount,
    )
    return {"status": "success", "payment": payment_to_dict(payment)}


@router.get("/{order_id}")
async def get_payment(
    order_id: str,
    service: PaymentService = Depends(get_payment_service),
):
    payment = await service.get_payment(order_id)
    return {"status": "success", "payment": payment_to_dict(payment)}


@router.get("")
async def list_payments(
    status: Optional[PaymentStatus] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    payer_id: Optional[uuid.UUID] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    service: PaymentService = Depends(get_payment_service),
    _: str = Depends(get_admin_user),
):
    """List payments with filters (admin only)."""
    payments, total = await service.list_payments(
        status=status.value if status else None,
        start_date=start_date,
        end_date=end_date,
        payer_id=payer_id,
        page=page,
        limit=limit,
    )
    return {
        "status": "success",
        "payments": [payment_to_dict(p) for p in payments],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit,
        },
    }
