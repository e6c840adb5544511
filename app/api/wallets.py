"""
Wallet Endpoints.
Balance, ledger history and settlement requests for the calling user.
"""

import logging
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from app.api.deps import CurrentUser, get_current_user, get_wallet_service
from app.api.serializers import (
    money,
    settlement_to_dict,
    transaction_to_dict,
    wallet_to_dict,
)
from app.fsm.states import SettlementStatus
from app.services.wallet_service import WalletService

router = APIRouter()
logger = logging.getLogger(__name__)


class BankDetails(BaseModel):
    account_number: str = Field(..., min_length=6, max_length=34)
    ifsc_code: str = Field(..., min_length=11, max_length=11)
    bank_name: Optional[str] = None
    account_holder_name: str


class SettlementRequestIn(BaseModel):
    """Request body for a withdrawal."""
    amount: Decimal
    bank_details: Optional[BankDetails] = None
    upi_id: Optional[str] = None
    notes: Optional[str] = None


@router.get("/me")
async def get_my_wallet(
    user: CurrentUser = Depends(get_current_user),
    service: WalletService = Depends(get_wallet_service),
):
    """Wallet with its ten most recent transactions. Created on first access."""
    wallet = await service.get_or_create_wallet(user.id, user.role)
    transactions = await service.get_transaction_history(user.id, limit=10)
    pending, _ = await service.get_settlement_history(
        user.id, status=SettlementStatus.PENDING.value, limit=50
    )
    return {
        "status": "success",
        "wallet": wallet_to_dict(wallet),
        "recent_transactions": [transaction_to_dict(t) for t in transactions],
        "pending_settlements": [settlement_to_dict(r) for r in pending],
    }


@router.get("/me/transactions")
async def get_my_transactions(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: CurrentUser = Depends(get_current_user),
    service: WalletService = Depends(get_wallet_service),
):
    transactions = await service.get_transaction_history(user.id, limit=limit, offset=offset)
    return {
        "status": "success",
        "transactions": [transaction_to_dict(t) for t in transactions],
    }


@router.get("/me/analytics")
async def get_my_wallet_analytics(
    user: CurrentUser = Depends(get_current_user),
    service: WalletService = Depends(get_wallet_service),
):
    analytics = await service.get_wallet_analytics(user.id)
    return {
        "status": "success",
        "analytics": {
            key: money(value) if isinstance(value, Decimal) else value
            for key, value in analytics.items()
        },
    }


@router.post("/me/settlements")
async def request_settlement(
    request: SettlementRequestIn,
    user: CurrentUser = Depends(get_current_user),
    service: WalletService = Depends(get_wallet_service),
):
    """Request a payout; the amount is held out of the balance immediately."""
    settlement = await service.request_settlement(
        user.id,
        request.amount,
        bank_details=request.bank_details.model_dump() if request.bank_details else None,
        upi_id=request.upi_id,
        notes=request.notes,
    )
    return {"status": "success", "settlement": settlement_to_dict(settlement)}


@router.get("/me/settlements")
async def get_my_settlements(
    status: Optional[SettlementStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: CurrentUser = Depends(get_current_user),
    service: WalletService = Depends(get_wallet_service),
):
    settlements, total = await service.get_settlement_history(
        user.id,
        status=status.value if status else None,
        page=page,
        limit=limit,
    )
    return {
        "status": "success",
        "settlements": [settlement_to_dict(s) for s in settlements],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit,
        },
    }
