"""
Pytest configuration and fixtures.
"""

import os
import sys
import uuid
from decimal import Decimal
from typing import AsyncGenerator, List, Tuple

# Settings are read at import time
os.environ.setdefault("APP_ENV", "development")
os.environ.setdefault("DATABASE_URL", "")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")
os.environ.setdefault("RAZORPAY_KEY_ID", "rzp_test_key")
os.environ.setdefault("RAZORPAY_KEY_SECRET", "rzp_test_secret")
os.environ.setdefault("RAZORPAY_WEBHOOK_SECRET", "rzp_webhook_secret")

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Add app to path
sys.path.append(os.getcwd())

from app.database import Base
from app.fsm.states import UserRole
from app.models.user import User
from app.services.razorpay_gateway import RazorpayGateway
from app.services.wallet_service import WalletService

# Use in-memory SQLite for tests
TEST_DB_URL = "sqlite+aiosqlite:///:memory:"

KEY_SECRET = "rzp_test_secret"
WEBHOOK_SECRET = "rzp_webhook_secret"


class FakeGateway(RazorpayGateway):
    """Razorpay gateway with real signature checks and canned API calls."""

    def __init__(self):
        super().__init__(
            key_id="rzp_test_key",
            key_secret=KEY_SECRET,
            webhook_secret=WEBHOOK_SECRET,
        )
        self.orders: List[dict] = []
        self.refunds: List[dict] = []

    async def create_order(self, amount_minor, currency, receipt, notes=None):
        order_id = f"order_{uuid.uuid4().hex[:14]}"
        self.orders.append(
            {"order_id": order_id, "amount": amount_minor, "currency": currency, "receipt": receipt}
        )
        return {"order_id": order_id, "amount": amount_minor, "currency": currency, "receipt": receipt}

    async def refund(self, payment_id, amount_minor, reason="Refund"):
        refund_id = f"rfnd_{uuid.uuid4().hex[:14]}"
        self.refunds.append({"payment_id": payment_id, "amount": amount_minor, "reason": reason})
        return {"refund_id": refund_id, "amount": amount_minor, "status": "processed"}


class FakeNotifier:
    """Records notifications instead of queueing Celery tasks."""

    def __init__(self):
        self.sent: List[Tuple[str, str, dict]] = []

    def notify(self, event, user_id, payload):
        self.sent.append((event, str(user_id), payload))
        return True

    def events(self) -> List[str]:
        return [event for event, _, _ in self.sent]


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        TEST_DB_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for a test."""
    async_session = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def session_factory(tmp_path):
    """
    Sessions on a file database, each with its own connection.
    For tests that interleave two transactions.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'settlements.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def wallet_service(db, notifier) -> WalletService:
    return WalletService(db, notifier=notifier)


@pytest_asyncio.fixture
async def make_partner(db):
    """Factory for referral partners with a code and referral count."""

    async def _make(code: str = "PARTNER1", total_referrals: int = 0) -> User:
        from app.services.referral_service import resolve_commission

        tier, rate = resolve_commission(total_referrals)
        partner = User(
            email=f"{code.lower()}@partners.test",
            name=f"Partner {code}",
            role=UserRole.REFERRAL_PARTNER.value,
            referral_code=code,
            total_referrals=total_referrals,
            total_earnings=Decimal("0"),
            tier=tier.value,
            commission_rate=rate,
        )
        db.add(partner)
        await db.flush()
        return partner

    return _make


@pytest_asyncio.fixture
async def funded_wallet(wallet_service):
    """Factory for a wallet holding a starting balance."""

    async def _fund(role: UserRole = UserRole.REFERRAL_PARTNER, balance: Decimal = Decimal("2000")):
        user_id = uuid.uuid4()
        wallet = await wallet_service.get_or_create_wallet(user_id, role)
        await wallet_service.credit(wallet, balance, "Opening balance", "seed")
        return user_id, await wallet_service.get_wallet(user_id)

    return _fund


class FakeRedis:
    """In-memory stand-in for the webhook dedupe keys."""

    def __init__(self):
        self.store = {}

    async def exists(self, key):
        return 1 if key in self.store else 0

    async def setex(self, key, ttl, value):
        self.store[key] = value
        return True


@pytest.fixture
def fake_redis(monkeypatch) -> FakeRedis:
    redis = FakeRedis()

    async def _get_redis():
        return redis

    monkeypatch.setattr("app.redis.get_redis", _get_redis)
    return redis


@pytest_asyncio.fixture
async def client(db, gateway, notifier, fake_redis):
    """ASGI client bound to the test session and fake integrations."""
    from fastapi import Depends
    from httpx import ASGITransport, AsyncClient

    from app.api.deps import get_payment_service, get_wallet_service
    from app.database import get_db
    from app.main import app
    from app.services.payment_service import PaymentService

    async def _get_db():
        try:
            yield db
            await db.commit()
        except Exception:
            await db.rollback()
            raise

    def _payment_service(session=Depends(get_db)):
        return PaymentService(session, gateway=gateway, notifier=notifier)

    def _wallet_service(session=Depends(get_db)):
        return WalletService(session, notifier=notifier)

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_payment_service] = _payment_service
    app.dependency_overrides[get_wallet_service] = _wallet_service

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
