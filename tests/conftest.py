import os

os.environ.setdefault("POSTGRES_HOST", "localhost")
os.environ.setdefault("POSTGRES_NAME", "reviewflow_test")
os.environ.setdefault("POSTGRES_USER", "reviewflow")
os.environ.setdefault("POSTGRES_PASS", "reviewflow")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("PLATFORM_STATE_CODE", "27")
os.environ.setdefault("PAYMENT_DEMO_MODE", "false")
os.environ.setdefault("RAZORPAY_KEY_ID", "rzp_test_key")
os.environ.setdefault("RAZORPAY_KEY_SECRET", "rzp_test_secret")
os.environ.setdefault("PAYU_MERCHANT_KEY", "payu_key")
os.environ.setdefault("PAYU_MERCHANT_SALT", "payu_salt")

import uuid

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from api.models import (
    AdminStatus,
    Base,
    OwnerType,
    PaymentStatus,
    ReviewRequest,
    Seller,
    User,
    UserRole,
    Wallet,
)
from api.security import ActorRole, AuthContext
from config import get_env
from services.pricing import quote


def sqlite_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'reviewflow.db'}"


async def create_schema(engine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@pytest.fixture
def env(monkeypatch):
    env = get_env()
    monkeypatch.setattr(env, "AUTO_APPROVE_PROOFS", True)
    monkeypatch.setattr(env, "LEGACY_LINK_MATCHING", True)
    monkeypatch.setattr(env, "QUEUE_STOP_ON_ERROR", False)
    monkeypatch.setattr(env, "QUEUE_MAX_JOBS", 10)
    monkeypatch.setattr(env, "PAYMENT_DEMO_MODE", False)
    return env


@pytest_asyncio.fixture
async def session_maker(tmp_path, env):
    engine = create_async_engine(sqlite_url(tmp_path), poolclass=NullPool)
    await create_schema(engine)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def seller(session) -> Seller:
    seller = Seller(
        name="Asha Traders",
        email=f"seller-{uuid.uuid4().hex[:6]}@example.com",
        company_name="Asha Traders Pvt Ltd",
        gst_number="27ABCDE1234F1Z5",
        billing_address="Pune, Maharashtra",
        state_code="27",
    )
    session.add(seller)
    await session.commit()
    return seller


@pytest_asyncio.fixture
async def reviewer(session) -> User:
    user = User(name="Ravi", email=f"ravi-{uuid.uuid4().hex[:6]}@example.com", role=UserRole.USER)
    session.add(user)
    await session.commit()
    return user


@pytest.fixture
def seller_ctx(seller) -> AuthContext:
    return AuthContext(actor_id=seller.id, role=ActorRole.SELLER)


@pytest.fixture
def user_ctx(reviewer) -> AuthContext:
    return AuthContext(actor_id=reviewer.id, role=ActorRole.USER)


@pytest.fixture
def admin_ctx() -> AuthContext:
    return AuthContext(actor_id=uuid.uuid4(), role=ActorRole.ADMIN)


async def fund_wallet(session, owner_type: OwnerType, owner_id, amount_minor: int) -> Wallet:
    wallet = Wallet(
        owner_type=owner_type,
        owner_id=owner_id,
        balance_minor=amount_minor,
        total_spent_minor=0,
        total_earned_minor=0,
        total_withdrawn_minor=0,
    )
    session.add(wallet)
    await session.commit()
    return wallet


async def make_request(
    session,
    seller: Seller,
    price_minor: int = 10000,
    reviews_needed: int = 2,
    payment_status: PaymentStatus = PaymentStatus.PENDING,
    admin_status: AdminStatus = AdminStatus.PENDING,
    product_link: str = "https://www.amazon.in/dp/B0TEST1234",
) -> ReviewRequest:
    totals = quote(price_minor, 5000, reviews_needed, get_env().GST_RATE)
    request = ReviewRequest(
        seller_id=seller.id,
        product_link=product_link,
        product_name="Steel Bottle",
        brand_name="Hydra",
        platform="amazon",
        product_price_minor=price_minor,
        admin_commission_minor=5000,
        reviews_needed=reviews_needed,
        reviews_completed=0,
        gst_rate=get_env().GST_RATE,
        total_amount_minor=totals.subtotal_minor,
        gst_amount_minor=totals.gst_minor,
        grand_total_minor=totals.grand_total_minor,
        payment_status=payment_status,
        admin_status=admin_status,
    )
    session.add(request)
    await session.commit()
    return request
