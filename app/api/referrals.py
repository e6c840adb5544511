"""
Referral Partner Endpoints.
"""

import logging
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import CurrentUser, get_current_user
from app.api.serializers import money
from app.database import get_db
from app.fsm.states import UserRole
from app.services.referral_service import ReferralService

router = APIRouter()
logger = logging.getLogger(__name__)


def _require_partner(user: CurrentUser) -> None:
    if user.role != UserRole.REFERRAL_PARTNER:
        raise HTTPException(status_code=403, detail="Referral partners only")


@router.get("/me/stats")
async def get_referral_stats(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Tier progress, commission rate and earnings."""
    _require_partner(user)
    stats = await ReferralService(db).get_stats(user.id)
    return {
        "status": "success",
        "stats": {
            key: money(value) if isinstance(value, Decimal) else value
            for key, value in stats.items()
        },
    }


@router.post("/me/code")
async def get_or_assign_referral_code(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    _require_partner(user)
    code = await ReferralService(db).assign_referral_code(user.id)
    return {"status": "success", "referral_code": code}
