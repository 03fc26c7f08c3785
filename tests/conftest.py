"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings.
"""
import os

# Mandatory secret key for settings validation
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import pytest
import pytest_asyncio
from sqlalchemy.pool import StaticPool

from application.dtos.checkout import CheckoutInitiateRequest
from application.dtos.pricing import CouponCreate, ShippingRateCreate, TaxRuleCreate
from application.services.pricing_service import CouponService, ShippingRateService, TaxRuleService
from domain.common.principal import Principal
from fakes import FakeGateway, RecordingPublisher, make_token
from infrastructure.database import Database
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


@pytest_asyncio.fixture
async def database():
    db = Database(
        "sqlite+aiosqlite://",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    ).connect()
    await db.create_tables()
    try:
        yield db
    finally:
        await db.dispose()


@pytest.fixture
def uow_factory(database):
    def factory(**kwargs) -> SQLAlchemyUnitOfWork:
        return SQLAlchemyUnitOfWork(database.session_factory, **kwargs)

    return factory


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def admin() -> Principal:
    return Principal(user_id="admin-1", role="ADMIN")


@pytest.fixture
def customer() -> Principal:
    return Principal(user_id="user-1")


@pytest.fixture
def other_customer() -> Principal:
    return Principal(user_id="user-2")


@pytest_asyncio.fixture
async def reference_data(uow_factory, admin):
    """GB: 20% VAT default, 5.00 standard shipping (free from 100.00), SAVE10 = 10% off."""
    tax = await TaxRuleService(uow_factory).create(
        admin,
        TaxRuleCreate(name="UK VAT", rate=20, country="GB", is_default=True),
    )
    rate = await ShippingRateService(uow_factory).create(
        admin,
        ShippingRateCreate(
            name="Standard",
            method="standard",
            price=500,
            free_threshold=10_000,
            countries=["GB", "IE"],
            estimated_days=3,
        ),
    )
    coupon = await CouponService(uow_factory).create(
        admin,
        CouponCreate(code="save10", type="PERCENTAGE", value=10),
    )
    return {"tax_rule_id": tax.id, "shipping_rate_id": rate.id, "coupon_id": coupon.id}


@pytest.fixture
def address() -> dict:
    return {"line1": "1 High Street", "city": "London", "postcode": "SW1A 1AA", "country": "GB"}


@pytest.fixture
def checkout_request(reference_data, address):
    """Two widgets at 25.00: subtotal 5000, VAT 1000, shipping 500, total 6500."""

    def build(**overrides) -> CheckoutInitiateRequest:
        data = {
            "items": [{"product_id": "widget", "quantity": 2, "unit_price": 2500}],
            "shipping_address": address,
            "shipping_rate_id": reference_data["shipping_rate_id"],
        }
        data.update(overrides)
        return CheckoutInitiateRequest(**data)

    return build


@pytest_asyncio.fixture
async def client(database, gateway, publisher):
    import httpx
    from main import app

    app.state.database = database
    app.state.event_publisher = publisher
    app.state.payment_gateway = gateway
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http


@pytest.fixture
def auth_headers():
    def build(user_id: str = "user-1", role: str = "CUSTOMER") -> dict:
        return {"Authorization": f"Bearer {make_token(user_id, role)}"}

    return build
