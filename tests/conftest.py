# tests/conftest.py
import os

# Settings are read at import time, so the environment has to be in place first
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("ENCRYPTION_KEY", "test-encryption-key")
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["WEBHOOK_SECRET"] = "global-webhook-secret"
os.environ["BASIC_AUTH_USERNAME"] = "admin"
os.environ["BASIC_AUTH_PASSWORD"] = "test-password"
os.environ["SYNC_COOLDOWN_SECONDS"] = "300"
os.environ["WEBHOOK_TOLERANCE_SECONDS"] = "300"

from datetime import datetime, timedelta, timezone
from typing import List, Optional

import httpx
import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from stocksync.core.config import clear_settings_cache
from stocksync.core.crypto import encrypt
from stocksync.core.enums import ProductType, StockStatus
from stocksync.database import Base
from stocksync.dependencies import get_commerce_client_factory, get_cooldown_cache, get_db, get_gateway_factory
from stocksync.main import app
from stocksync.models import Product, ProductVariation, Store
from stocksync.services.cooldown import InMemoryCooldownCache
from tests.mocks.mock_gateway import MockGatewayRegistry

clear_settings_cache()

AUTH = ("admin", "test-password")
STORE_WEBHOOK_SECRET = "store-webhook-secret"


class FakeClock:
    """Callable clock that only moves when told to"""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 10, 18, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture(scope="function")
async def test_engine():
    """In-memory SQLite shared by every session of one test, foreign keys on"""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    """Provide a database session for tests"""
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cooldown_cache():
    return InMemoryCooldownCache()


@pytest.fixture
def gateways():
    """Records every push; individual stores can be switched to failing"""
    return MockGatewayRegistry()


@pytest.fixture
def make_store(db_session):
    async def _make_store(
        name: str = "Store",
        url: str = "https://store.example.com",
        company_id: int = 1,
        connector: bool = True,
        webhook_secret: Optional[str] = STORE_WEBHOOK_SECRET,
    ) -> Store:
        store = Store(
            company_id=company_id,
            name=name,
            url=url,
            consumer_key=encrypt("ck_test"),
            consumer_secret=encrypt("cs_test"),
            has_stock_connector=connector,
            connector_api_key=encrypt("api-key") if connector else None,
            connector_api_secret=encrypt("api-secret") if connector else None,
            webhook_secret=encrypt(webhook_secret) if webhook_secret else None,
        )
        db_session.add(store)
        await db_session.commit()
        return store

    return _make_store


@pytest.fixture
def make_product(db_session):
    async def _make_product(
        store: Store,
        remote_id: int,
        name: str = "Product",
        sku: Optional[str] = None,
        stock: int = 0,
        price: float = 10.0,
        variations: Optional[List[dict]] = None,
    ) -> Product:
        product = Product(
            store_id=store.id,
            remote_id=remote_id,
            name=name,
            sku=sku,
            price=price,
            product_type=ProductType.VARIABLE.value if variations else ProductType.SIMPLE.value,
            stock_quantity=stock,
            stock_status=StockStatus.for_quantity(stock).value,
            manage_stock=True,
        )
        for v in variations or []:
            product.variations.append(ProductVariation(
                remote_id=v["remote_id"],
                sku=v.get("sku"),
                attributes=v.get("attributes", {}),
                stock_quantity=v.get("stock", 0),
                stock_status=StockStatus.for_quantity(v.get("stock", 0)).value,
                is_active=v.get("is_active", True),
            ))
        db_session.add(product)
        await db_session.commit()
        return product

    return _make_product


@pytest.fixture
async def async_client(session_factory, gateways, cooldown_cache):
    """HTTP client against the app with the test database and mock gateways"""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway_factory] = lambda: gateways.factory
    app.dependency_overrides[get_cooldown_cache] = lambda: cooldown_cache
    app.dependency_overrides[get_commerce_client_factory] = lambda: gateways.commerce_factory

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client

    app.dependency_overrides.clear()
