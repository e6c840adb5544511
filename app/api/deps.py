import uuid
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.fsm.states import UserRole
from app.services.payment_service import PaymentService
from app.services.razorpay_gateway import RazorpayGateway, get_gateway
from app.services.wallet_service import WalletService


async def get_admin_user(
    x_admin_key: Optional[str] = Header(None, alias="X-Admin-Key"),
) -> str:
    """
    Validate the Admin Key header.
    Returns the key if valid, raises 401 otherwise.
    """
    if not x_admin_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing admin key",
        )

    valid_key = settings.admin_api_key
    if not valid_key or x_admin_key != valid_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin key",
        )

    return x_admin_key


class CurrentUser:
    """Caller identity forwarded by the auth gateway."""

    def __init__(self, user_id: uuid.UUID, role: UserRole):
        self.id = user_id
        self.role = role


async def get_current_user(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_user_role: Optional[str] = Header(None, alias="X-User-Role"),
) -> CurrentUser:
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing user identity",
        )
    try:
        user_id = uuid.UUID(x_user_id)
        role = UserRole(x_user_role or UserRole.STUDENT.value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user identity",
        )
    return CurrentUser(user_id, role)


async def get_payment_service(
    db: AsyncSession = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_gateway),
) -> PaymentService:
    return PaymentService(db, gateway=gateway)


async def get_wallet_service(
    db: AsyncSession = Depends(get_db),
) -> WalletService:
    return WalletService(db)
