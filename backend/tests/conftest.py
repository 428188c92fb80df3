"""Pytest configuration and fixtures."""

import os

# Configure before stockledger.core.config builds its settings
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key-with-at-least-32-characters")

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from stockledger.api.deps import get_store
from stockledger.core.identity import Actor
from stockledger.core.rate_limit import limiter
from stockledger.core.security import create_access_token
from stockledger.db.base import Base
from stockledger.db.session import get_db
from stockledger.main import app
# Import all models to ensure they're registered with Base.metadata
from stockledger.models import *  # noqa: F401,F403
from stockledger.repositories import MemoryStore, SqlStore
from stockledger.schemas.product import ProductCreate
from stockledger.services.product_service import ProductService

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite:///:memory:"

START = datetime(2024, 6, 3, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Deterministic clock; call it for the current instant."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(params=["sql", "memory"])
def store(request, db_session):
    """Every service test runs against both store backends."""
    if request.param == "sql":
        return SqlStore(db_session)
    return MemoryStore()


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def actor() -> Actor:
    return Actor(user_id="user-1", display_name="Ana Pérez")


@pytest.fixture
def other_actor() -> Actor:
    return Actor(user_id="user-2", display_name="Luis Gómez")


@pytest.fixture
def make_product(store, clock, actor):
    """Factory creating products through the catalog service."""
    service = ProductService(store, clock)

    def _make(name="Café molido", stock=0, price="10.00", owner=None, **kwargs):
        data = ProductCreate(name=name, unit_price=Decimal(price), stock_available=stock, **kwargs)
        return service.create_product(data, owner or actor)

    return _make


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database and store overrides."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    def override_get_store():
        return SqlStore(db_session)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_store] = override_get_store
    # Disable rate limiting during tests to avoid flaky failures
    limiter.enabled = False
    # Don't raise server exceptions so we can test error status codes
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    limiter.enabled = True
    app.dependency_overrides.clear()


@pytest.fixture
def auth_token() -> str:
    """Token as minted by the identity provider for user-1."""
    return create_access_token(data={"sub": "user-1", "name": "Ana Pérez"})


@pytest.fixture
def auth_headers(auth_token: str) -> dict:
    """Get authentication headers."""
    return {"Authorization": f"Bearer {auth_token}"}


@pytest.fixture
def other_auth_headers() -> dict:
    token = create_access_token(data={"sub": "user-2", "name": "Luis Gómez"})
    return {"Authorization": f"Bearer {token}"}
