import json
import os

os.environ["TESTING"] = "1"
os.environ.setdefault("DB_USER", "test")
os.environ.setdefault("DB_PASSWORD", "test")
os.environ.setdefault("DB_NAME", "test")
os.environ.setdefault("DB_HOST", "localhost")
os.environ.setdefault("DB_PORT", "5432")
os.environ.setdefault("RAZORPAY_KEY_ID", "rzp_test_key")
os.environ.setdefault("RAZORPAY_KEY_SECRET", "test_secret")

from decimal import Decimal
from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio
from faker import Faker
from fastapi import Request
from httpx import ASGITransport, AsyncClient
from sqlalchemy import StaticPool
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from app.api import realtime
from app.api.dependencies import get_async_session, get_user
from app.api.main import app
from app.models.enums.item_condition import ItemCondition
from app.models.enums.listing_category import ListingCategory
from app.models.enums.listing_status import ListingStatus
from app.models.listing_image import ListingImage
from app.models.listing_model import Listing
from app.models.user_model import User
from app.services.payment.razorpay_client import RazorpayClient, get_payment_gateway

DATABASE_URL = "sqlite+aiosqlite:///:memory:"
engine = create_async_engine(
    DATABASE_URL,
    # echo=False,
    connect_args={"check_same_thread": False},
    # ensure that we are connecting to the same
    # in memory database
    poolclass=StaticPool,
)
TestSessionLocal = async_sessionmaker(engine, expire_on_commit=False)

TEST_KEY_ID = "rzp_test_key"
TEST_KEY_SECRET = "test_secret"
DEFAULT_EMAIL = "seller@kiit.ac.in"

fake = Faker()


async def override_get_async_session() -> AsyncSession:
    async with TestSessionLocal() as session:
        yield session


# the acting user is picked by the X-Test-User header
async def override_get_user(request: Request):
    return {"email": request.headers.get("X-Test-User", DEFAULT_EMAIL)}


app.dependency_overrides[get_async_session] = override_get_async_session
app.dependency_overrides[get_user] = override_get_user


class FakeRazorpay:
    """Records the order requests and answers like the orders API."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.fail = False
        self.malformed = False

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail:
            return httpx.Response(500, json={"error": {"description": "down"}})
        if self.malformed:
            return httpx.Response(200, text="upstream timeout")
        payload = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "id": f"order_{len(self.requests)}",
                "amount": payload["amount"],
                "currency": payload["currency"],
                "receipt": payload["receipt"],
                "status": "created",
            },
        )


@pytest_asyncio.fixture(autouse=True)
async def prepare_database():
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)


@pytest.fixture(autouse=True)
def signed_urls(monkeypatch):
    monkeypatch.setattr(
        "app.services.listing.listing_service.generate_signed_url",
        lambda path: f"https://storage.test/{path}",
    )


@pytest.fixture(autouse=True)
def emitted(monkeypatch) -> AsyncMock:
    emit = AsyncMock()
    monkeypatch.setattr(realtime.sio, "emit", emit)
    return emit


@pytest_asyncio.fixture()
async def razorpay():
    fake_api = FakeRazorpay()
    client = RazorpayClient(
        TEST_KEY_ID, TEST_KEY_SECRET, transport=httpx.MockTransport(fake_api.handler)
    )
    app.dependency_overrides[get_payment_gateway] = lambda: client
    yield fake_api
    app.dependency_overrides.pop(get_payment_gateway, None)
    await client.aclose()


async def create_user(
    email: str | None = None, is_admin: bool = False, **fields
) -> User:
    async with TestSessionLocal() as session:
        user = User(
            firstname=fields.pop("firstname", fake.first_name()),
            lastname=fields.pop("lastname", fake.last_name()),
            email=email or f"{fake.user_name()}@kiit.ac.in",
            is_admin=is_admin,
            **fields,
        )
        session.add(user)
        await session.commit()
        return user


async def create_listing(
    seller: User,
    status: ListingStatus = ListingStatus.ACTIVE,
    price: Decimal = Decimal("500.00"),
    **fields,
) -> Listing:
    async with TestSessionLocal() as session:
        listing = Listing(
            title=fields.pop("title", "Engineering Mathematics textbook"),
            description=fields.pop("description", "Second edition, few notes inside"),
            price=price,
            category=fields.pop("category", ListingCategory.BOOKS),
            condition=fields.pop("condition", ItemCondition.GOOD),
            campus=fields.pop("campus", 15),
            seller_id=seller.id,
            status=status,
            **fields,
        )
        listing.images = [ListingImage(storage_path=f"listings/{fake.uuid4()}.jpg")]
        session.add(listing)
        await session.commit()
        return listing


@pytest_asyncio.fixture()
async def seller() -> User:
    return await create_user(DEFAULT_EMAIL, firstname="Sam", lastname="Seller")


@pytest_asyncio.fixture()
async def buyer() -> User:
    return await create_user("buyer@kiit.ac.in", firstname="Bea", lastname="Buyer")


@pytest_asyncio.fixture()
async def admin() -> User:
    return await create_user("admin@kiit.ac.in", is_admin=True)


@pytest_asyncio.fixture()
async def async_client() -> AsyncClient:
    headers = {"Authorization": "Bearer fake"}

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test", headers=headers
    ) as client:
        yield client


def as_user(user: User) -> dict:
    return {"X-Test-User": user.email}
