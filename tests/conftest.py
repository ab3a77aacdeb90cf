"""
Pytest fixtures: a fresh SQLite database per test, a seeded seat catalog,
an HTTP client bound to the app and helpers for signed gateway payloads.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./procession_booking_test.db")
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["PAYHERE_MERCHANT_ID"] = "1230935"
os.environ["PAYHERE_MERCHANT_SECRET"] = "test-merchant-secret"
os.environ["PAYHERE_CURRENCY"] = "LKR"
os.environ["ENVIRONMENT"] = "test"

import datetime
from dataclasses import dataclass
from decimal import Decimal
from typing import AsyncGenerator, Optional
from uuid import UUID

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from procession_booking.database import get_db
from procession_booking.gateway.payhere import PayHereNotification, compute_notification_signature
from procession_booking.main import app
from procession_booking.models import (
    Base,
    CartItem,
    ProcessionDay,
    SeatType,
    SeatTypeAvailability,
    Shop,
)
from procession_booking.services.cart_service import CartService
from procession_booking.utils.auth import create_access_token

MERCHANT_ID = "1230935"
MERCHANT_SECRET = "test-merchant-secret"


@dataclass
class Catalog:
    shop_id: UUID
    seat_type_id: UUID
    day_id: UUID
    availability_id: UUID
    price: Decimal


@pytest_asyncio.fixture
async def engine(tmp_path):
    # Concurrent writers wait on the file lock instead of failing
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'booking.db'}", connect_args={"timeout": 30}
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with each request getting its own session on the test database."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def catalog(db_session: AsyncSession) -> Catalog:
    """One shop with one seat type on sale for one day: 5 seats at 2500.00."""
    shop = Shop(name="Dalada Veediya Stand", street="Dalada Veediya", seller_id="seller-1")
    seat_type = SeatType(shop=shop, name="Front Row")
    day = ProcessionDay(date=datetime.date(2025, 8, 4), event_name="1st Randoli Perahera")
    availability = SeatTypeAvailability(
        seat_type=seat_type,
        day=day,
        price=Decimal("2500.00"),
        total_quantity=5,
        remaining_quantity=5,
        is_enabled=True,
    )
    db_session.add_all([shop, seat_type, day, availability])
    await db_session.commit()

    return Catalog(
        shop_id=shop.id,
        seat_type_id=seat_type.id,
        day_id=day.id,
        availability_id=availability.id,
        price=availability.price,
    )


async def stage(session: AsyncSession, customer_id: str, catalog: Catalog, quantity: int) -> CartItem:
    """Put seats from the catalog into a customer's cart."""
    return await CartService(session).add_to_cart(customer_id, catalog.seat_type_id, catalog.day_id, quantity)


def auth_headers(subject: str, role: str = "customer") -> dict:
    token = create_access_token({"sub": subject, "role": role})
    return {"Authorization": f"Bearer {token}"}


def signed_notification(
    order_id: str,
    amount: str,
    status_code: int = 2,
    payment_id: str = "320025071234",
    secret: Optional[str] = MERCHANT_SECRET,
    **overrides
) -> dict:
    """A PayHere notification payload, signed with ``secret``."""
    payload = {
        "merchant_id": MERCHANT_ID,
        "order_id": order_id,
        "payment_id": payment_id,
        "payhere_amount": amount,
        "payhere_currency": "LKR",
        "status_code": str(status_code),
        "status_message": "Successfully completed the payment." if status_code == 2 else "Payment failed",
        "method": "VISA",
    }
    payload.update(overrides)
    payload["md5sig"] = compute_notification_signature(PayHereNotification.from_payload(payload), secret)
    return payload


@pytest.fixture
def customer_id() -> str:
    return "firebase-uid-customer-1"
