"""Pytest configuration and fixtures."""

import os

# Settings are read once at import time; configure before importing the app
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("CONFLICT_RETRY_BASE_DELAY", "0.001")
os.environ.setdefault("CONFLICT_RETRY_MAX_DELAY", "0.01")

from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from stockledger.core.rbac import UserRole
from stockledger.core.security import create_access_token
from stockledger.db.base import Base
from stockledger.db.session import get_db
from stockledger.main import app
# Import all models to ensure they're registered with Base.metadata
from stockledger.models import *
from stockledger.models.product import Product
from stockledger.models.warehouse import Warehouse
from stockledger.core.security import Actor

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite:///:memory:"


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


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    # Disable rate limiter during tests to avoid flaky failures
    from stockledger.core.rate_limit import limiter as global_limiter
    global_limiter.enabled = False
    # Don't raise server exceptions so we can test error status codes
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    global_limiter.enabled = True
    app.dependency_overrides.clear()


def _token_headers(user_id: str, name: str, role: UserRole) -> dict:
    token = create_access_token(data={"sub": user_id, "name": name, "role": role.value})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers() -> dict:
    """Authentication headers for a staff user."""
    return _token_headers("u-staff", "Sam Staff", UserRole.STAFF)


@pytest.fixture
def manager_headers() -> dict:
    """Authentication headers for a manager."""
    return _token_headers("u-manager", "Morgan Manager", UserRole.MANAGER)


@pytest.fixture
def actor() -> Actor:
    return Actor(id="u-staff", name="Sam Staff")


@pytest.fixture
def manager() -> Actor:
    return Actor(id="u-manager", name="Morgan Manager")


@pytest.fixture
def stock_setup(db_session: Session) -> dict:
    """Two warehouses, a plain product and a batch-tracked product."""
    wh1 = Warehouse(name="Central Warehouse", code="WH1", active=True)
    wh2 = Warehouse(name="North Store", code="WH2", active=True)
    closed = Warehouse(name="Closed Depot", code="WH9", active=False)
    db_session.add_all([wh1, wh2, closed])

    widget = Product(name="Widget", sku="WID-001", track_batches=False, active=True)
    serum = Product(name="Serum", sku="SER-001", track_batches=True, active=True)
    db_session.add_all([widget, serum])
    db_session.commit()

    return {
        "wh1": wh1,
        "wh2": wh2,
        "closed": closed,
        "widget": widget,
        "serum": serum,
        "db": db_session,
    }
