"""
Test configuration and shared fixtures for the therapy practice test suite.

Each test gets a fresh in-memory SQLite database created from the model
metadata, so tests are fully isolated without a database server.
"""

import os

# Point the application engine at SQLite before any application module is imported
os.environ["DATABASE_URL"] = os.getenv("TEST_DATABASE_URL", "sqlite://")

import pytest
from typing import Generator

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from core.database import Base, get_db
# Import all models to ensure they're registered with SQLAlchemy before any relationships are resolved
import models  # noqa: F401
from services.delivery_gateway import get_delivery_gateway
from tests.utils import FakeDeliveryGateway


@pytest.fixture(scope="function")
def db_engine():
    """
    Create a fresh in-memory database for a test.

    StaticPool keeps the single in-memory connection alive and shared
    between the test and the TestClient worker thread.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Provide a database session bound to the test database."""
    TestingSession = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=db_engine,
        expire_on_commit=False,
    )
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def fake_gateway() -> FakeDeliveryGateway:
    """Delivery gateway double recording every message instead of sending it."""
    return FakeDeliveryGateway()


@pytest.fixture
def client(db_session, fake_gateway) -> Generator[TestClient, None, None]:
    """
    TestClient with the database session and delivery gateway overridden.

    The client is not used as a context manager, so the lifespan (and the
    invitation sweep scheduler) does not start.
    """
    from main import app

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_delivery_gateway] = lambda: fake_gateway

    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
