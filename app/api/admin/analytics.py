"""
Admin analytics endpoints for payments and wallets.
"""

import logging
from decimal import Decimal

from fastapi import APIRouter, Depends

from app.api.deps import get_admin_user, get_payment_service, get_wallet_service
from app.api.serializers import money
from app.services.payment_service import PaymentService
from app.services.wallet_service import WalletService

logger = logging.getLogger(__name__)
router = APIRouter()


def _jsonable(stats: dict) -> dict:
    return {
        key: money(value) if isinstance(value, Decimal) else value
        for key, value in stats.items()
    }


@router.get("/analytics/payments")
async def payment_analytics(
    service: PaymentService = Depends(get_payment_service),
    _: str = Depends(get_admin_user),
):
    """Payment totals by status and platform revenue."""
    stats = await service.get_analytics()
    return {"status": "success", "analytics": _jsonable(stats)}


@router.get("/analytics/wallets")
async def wallet_analytics(
    service: WalletService = Depends(get_wallet_service),
    _: str = Depends(get_admin_user),
):
    """Wallet count, balances and pending settlement requests."""
    stats = await service.get_platform_analytics()
    return {"status": "success", "analytics": _jsonable(stats)}
