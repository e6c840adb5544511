"""
Admin Settlement Endpoints.
Approve, reject and mark payouts for wallet settlement requests.
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from app.api.deps import get_admin_user, get_wallet_service
from app.api.serializers import settlement_to_dict
from app.fsm.states import SettlementStatus
from app.services.wallet_service import WalletService

router = APIRouter()
logger = logging.getLogger(__name__)


class ProcessSettlementRequest(BaseModel):
    """Request body for an admin decision on a settlement request."""
    status: SettlementStatus
    processed_by: Optional[uuid.UUID] = None
    notes: Optional[str] = None


@router.get("/settlements")
async def list_settlement_requests(
    status: Optional[SettlementStatus] = SettlementStatus.PENDING,
    limit: int = Query(100, ge=1, le=500),
    service: WalletService = Depends(get_wallet_service),
    _: str = Depends(get_admin_user),
):
    """Settlement queue, oldest first."""
    requests = await service.list_settlement_requests(
        status=status.value if status else None,
        limit=limit,
    )
    return {
        "status": "success",
        "settlements": [settlement_to_dict(r) for r in requests],
    }


@router.post("/wallets/{wallet_id}/settlements/{request_id}")
async def process_settlement(
    wallet_id: uuid.UUID,
    request_id: uuid.UUID,
    request: ProcessSettlementRequest,
    service: WalletService = Depends(get_wallet_service),
    _: str = Depends(get_admin_user),
):
    """
    Apply an admin decision.

    rejected returns the held amount to the wallet; approved keeps it
    deducted; processed records that the payout was sent.
    """
    settlement = await service.process_settlement(
        wallet_id,
        request_id,
        request.status,
        processed_by=request.processed_by,
        notes=request.notes,
    )
    logger.info(f"Settlement {request_id} set to {settlement.status} by admin")
    return {"status": "success", "settlement": settlement_to_dict(settlement)}
