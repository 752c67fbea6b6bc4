"""
conftest.py — Shared test fixtures for storelink

Provides an in-memory SQLite database, a FastAPI TestClient wired to it, and
a fake ShipStation API served through httpx.MockTransport.

Business Rules:
- All tests run against an isolated in-memory DB (no prod data risk)
- No test reaches the network; provider calls go to FakeShipStation
- Each test function gets fresh tables

Called by: all test files via pytest autodiscovery
Depends on: storelink.models (Base), storelink.database (get_db)
"""

import os

os.environ["TESTING"] = "1"  # Must be set before importing storelink modules
os.environ.setdefault("DATABASE_URL", "sqlite://")

import base64
import json

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from storelink.connectors.shipstation import RESOURCES, ShipStationClient
from storelink.models import Base, StoreIntegration

STORE_ID = "store-1"

# ── In-memory SQLite engine ──────────────────────────────────────────

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@event.listens_for(engine, "connect")
def _enable_fk(dbapi_conn, _):
    """SQLite ignores FKs by default — turn them on."""
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


# ── Fake provider ─────────────────────────────────────────────────────


class FakeShipStation:
    """Serves canned listings page by page, the way ShipStation v2 does.

    listings: resource -> full record list. Resources named in `failing`
    answer 500. Every request is recorded in `calls` as (resource, page).
    """

    def __init__(self, listings: dict | None = None, page_size: int = 2):
        self.listings = {r: [] for r in RESOURCES}
        self.listings.update(listings or {})
        self.page_size = page_size
        self.failing: set[str] = set()
        self.calls: list[tuple[str, int]] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        resource = request.url.path.rsplit("/", 1)[-1]
        page = int(request.url.params.get("page", "1"))
        size = int(request.url.params.get("page_size", str(self.page_size)))
        self.calls.append((resource, page))
        if request.headers.get("api-key") != "test-key":
            return httpx.Response(401, json={"message": "unauthorized"})
        if resource in self.failing:
            return httpx.Response(500, json={"message": "boom"})
        records = self.listings.get(resource, [])
        chunk = records[(page - 1) * size : page * size]
        return httpx.Response(200, content=json.dumps({RESOURCES[resource]: chunk}))

    def client(self, api_key: str = "test-key") -> ShipStationClient:
        return ShipStationClient(
            api_key,
            base_url="https://ss.test/v2",
            page_size=self.page_size,
            transport=httpx.MockTransport(self.handler),
        )


# ── Fixtures ─────────────────────────────────────────────────────────


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
def fake_shipstation() -> FakeShipStation:
    return FakeShipStation()


@pytest.fixture()
def ss_client(fake_shipstation: FakeShipStation):
    c = fake_shipstation.client()
    yield c
    c.close()


@pytest.fixture()
def store_integration(db_session: Session) -> StoreIntegration:
    """An active ShipStation integration whose key decodes to 'test-key'."""
    integ = StoreIntegration(
        store_id=STORE_ID,
        integration_type="shipstation",
        api_key_encrypted=base64.b64encode(b"test-key").decode(),
        is_active=True,
    )
    db_session.add(integ)
    db_session.commit()
    return integ


@pytest.fixture()
def client(db_session: Session) -> TestClient:
    """FastAPI TestClient bound to the test session."""
    from storelink.database import get_db
    from storelink.main import app

    def _override_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_db

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()
