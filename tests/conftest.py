"""
conftest.py — Shared test fixtures for ShopSync

Provides an in-memory SQLite database, a memory-backed local state store,
a fake Keystone client, a fully wired ServiceContainer and a FastAPI
TestClient with the container and DB overridden.

Business Rules:
- All tests run against an isolated in-memory DB (tables rebuilt per test)
- No test reaches the network: Keystone credentials are blanked and the
  fake client stands in for the proxy
- Delays (inter-batch, inter-chunk, retry backoff) are zero in tests

Called by: all test files via pytest autodiscovery
Depends on: shopsync.models (Base), shopsync.database (get_db),
            shopsync.dependencies (build_services, get_services)
"""

import os

os.environ["TESTING"] = "1"  # Must be set before importing shopsync modules
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["KEYSTONE_PROXY_URL"] = ""
os.environ["KEYSTONE_SECURITY_TOKEN_DEV"] = ""
os.environ["KEYSTONE_SECURITY_TOKEN_PROD"] = ""
os.environ["KEYSTONE_ENVIRONMENT"] = "development"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from shopsync.config import Settings
from shopsync.connectors.keystone import validate_vcpns
from shopsync.exceptions import KeystoneAPIError
from shopsync.models import Base
from shopsync.schemas.pricing import PriceResult
from shopsync.state_store import MemoryStateStore

# ── In-memory SQLite engine ──────────────────────────────────────────

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture(autouse=True)
def db_session():
    """Create all tables, yield a session, then tear down."""
    Base.metadata.create_all(bind=engine)
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def session_factory():
    return TestSessionLocal


@pytest.fixture()
def state_store() -> MemoryStateStore:
    return MemoryStateStore()


@pytest.fixture()
def test_settings() -> Settings:
    return Settings(
        keystone_environment="development",
        keystone_proxy_url="",
        keystone_security_token_dev="",
        keystone_security_token_prod="",
        sync_batch_size=100,
        sync_batch_delay_seconds=0,
        pending_retry_delay_seconds=0,
        csv_chunk_size=1000,
        csv_chunk_delay_seconds=0,
    )


# ── Fake Keystone client ─────────────────────────────────────────────


def make_items(count: int, start: int = 1) -> list[dict]:
    """Records in the shape KeystoneClient.fetch_bulk_inventory returns."""
    return [
        {
            "keystone_vcpn": f"VCPN{i:06d}",
            "sku": f"PART{i:04d}",
            "name": f"Part {i}",
            "brand": "Ford",
            "cost": 10.0 + i,
            "list_price": 20.0 + i,
            "quantity_available": i % 50,
            "category": "Engine",
            "availability": "In Stock",
        }
        for i in range(start, start + count)
    ]


class FakeCatalogClient:
    """Stands in for KeystoneClient. Records every call it receives."""

    def __init__(self, items: list[dict] | None = None, environment: str = "development"):
        self.items = items if items is not None else []
        self.environment = environment
        self.parts: dict[str, dict | None] = {}
        self.part_failures: dict[str, int] = {}
        self.pricing_error: Exception | None = None
        self.order_error: Exception | None = None
        self.inventory_calls: list[int] = []
        self.pricing_calls: list[list[str]] = []
        self.part_calls: list[str] = []
        self.orders: list[dict] = []

    def has_credentials(self, environment=None) -> bool:
        return False

    def data_source_name(self) -> str:
        return "simulated"

    async def fetch_bulk_inventory(self, limit, cancel_event=None):
        self.inventory_calls.append(limit)
        if cancel_event is not None and cancel_event.is_set():
            return []
        return [dict(i) for i in self.items[:limit]]

    async def fetch_bulk_pricing(self, vcpns):
        cleaned = validate_vcpns(vcpns)
        self.pricing_calls.append(cleaned)
        if self.pricing_error:
            raise self.pricing_error
        return [PriceResult(vcpn=v, cost=12.5, list_price=19.99, availability="In Stock") for v in cleaned]

    async def fetch_single_part(self, vcpn):
        self.part_calls.append(vcpn)
        remaining = self.part_failures.get(vcpn, 0)
        if remaining:
            self.part_failures[vcpn] = remaining - 1
            raise KeystoneAPIError("HTTP 503: Service Unavailable", status=503)
        return self.parts.get(vcpn)

    async def place_dropship_order(self, payload):
        self.orders.append(payload)
        if self.order_error:
            raise self.order_error
        return {
            "keystoneOrderId": "KS-TEST-0001",
            "totalValue": 51.98,
            "estimatedShipping": 11.19,
            "estimatedDeliveryDate": "2026-10-25",
            "trackingInfo": {"carrier": "UPS", "trackingNumber": "1ZTEST", "trackingUrl": None},
        }

    async def check_health(self):
        return {"environment": self.environment, "configured": False, "data_source": "simulated",
                "reachable": False, "error": None}


@pytest.fixture()
def fake_client() -> FakeCatalogClient:
    return FakeCatalogClient(items=make_items(250))


@pytest.fixture()
def services(test_settings, state_store, fake_client):
    from shopsync.dependencies import build_services

    return build_services(
        test_settings,
        session_factory=TestSessionLocal,
        state_store=state_store,
        client=fake_client,
    )


@pytest.fixture()
def client(db_session, services):
    """TestClient with DB and services overridden (lifespan not run)."""
    from shopsync.database import get_db
    from shopsync.dependencies import get_services
    from shopsync.main import app

    def _override_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_db
    app.dependency_overrides[get_services] = lambda: services
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
