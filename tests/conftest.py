import hashlib
import hmac
import itertools
import os
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Dict
from uuid import uuid4

os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ.setdefault("RAZORPAY_KEY_ID", "rzp_test_key")
os.environ.setdefault("RAZORPAY_KEY_SECRET", "rzp_test_secret")

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.api.v1.payments.gateway import RazorpayGateway, get_gateway
from app.core.config import settings
from app.core.models import Student
from app.db.session import Base, get_db
from app.main import app

GATEWAY_KEY_ID = "rzp_test_key"
GATEWAY_SECRET = "rzp_test_secret"


def create_access_token(*, subject: Dict, expires_minutes: int = 15) -> str:
    """Bearer token in the format the institution's login service issues."""
    to_encode = subject.copy()
    to_encode.update({"exp": datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def sign(order_id: str, payment_id: str, secret: str = GATEWAY_SECRET) -> str:
    """Signature the gateway checkout hands back to the browser."""
    return hmac.new(secret.encode(), f"{order_id}|{payment_id}".encode(), hashlib.sha256).hexdigest()


@pytest.fixture()
async def engine(tmp_path):
    """File-backed SQLite so separate sessions see each other's commits."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}", echo=False, future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture()
def gateway(monkeypatch) -> RazorpayGateway:
    """Real Razorpay adapter with order creation stubbed out (no network)."""
    gw = RazorpayGateway(GATEWAY_KEY_ID, GATEWAY_SECRET, timeout_seconds=2.0)
    counter = itertools.count(1)

    def fake_create(data=None, **kwargs):
        return {"id": f"order_test{next(counter)}", "amount": data["amount"], "currency": data["currency"]}

    monkeypatch.setattr(gw.client.order, "create", fake_create)
    return gw


@pytest.fixture()
async def client(session_factory, gateway) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app, one DB session per request."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway] = lambda: gateway
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def make_student(usn: str, *, year: int = 2, quota: str = "government", user_id=None) -> Student:
    return Student(
        usn=usn,
        user_id=user_id,
        name=f"Student {usn}",
        department="CSE",
        current_year=year,
        quota=quota,
        entry_type="regular",
    )


def auth_headers(role: str, user_id=None, permissions=None) -> dict:
    subject = {"sub": str(user_id or uuid4()), "role": role}
    if permissions is not None:
        subject["permissions"] = permissions
    return {"Authorization": f"Bearer {create_access_token(subject=subject)}"}
