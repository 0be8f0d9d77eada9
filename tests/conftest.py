"""Pytest configuration and shared fixtures."""

import os
from datetime import datetime
from decimal import Decimal

# Set test database URL BEFORE any imports from src
# This ensures the module-level engine never touches a real database file
os.environ["DATABASE_URL"] = "sqlite:///:memory:"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from src.api.dependencies import get_now  # noqa: E402
from src.main import app  # noqa: E402
from src.models import Base  # noqa: E402
from src.services.billing_cycle import BillingConfig  # noqa: E402
from src.services.consumer_service import ConsumerService  # noqa: E402
from src.services.db import get_db  # noqa: E402


class FixedClock:
    """Settable evaluation instant injected in place of the system clock."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def test_engine():
    """In-memory SQLite engine with all tables created."""
    engine = create_engine(
        "sqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(test_engine):
    """Provide a test database session."""
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture
def billing_config() -> BillingConfig:
    return BillingConfig()


@pytest.fixture
def service(db_session, billing_config) -> ConsumerService:
    return ConsumerService(db_session, billing_config)


@pytest.fixture
def make_consumer(service):
    """Factory registering a consumer with sensible defaults."""

    def _make(consumer_number: str = "C-1001", **overrides):
        data = {
            "consumer_number": consumer_number,
            "meter_serial_number": f"MTR-{consumer_number}",
            "name": "Asha Verma",
            "address": "12 Lake Road",
            "phone_number": "9876543210",
            "tariff_plan": "Domestic",
            "current_reading": Decimal("100"),
        }
        data.update(overrides)
        return service.create_consumer(**data)

    return _make


@pytest.fixture
def clock() -> FixedClock:
    """Evaluation instant for API requests; tests move it as needed."""
    return FixedClock(datetime(2024, 1, 10, 9, 0))


@pytest.fixture
def client(db_session, clock):
    """Provide a FastAPI test client bound to the test session and clock."""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Don't close, let fixture handle cleanup

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_now] = clock

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def consumer_payload() -> dict:
    return {
        "consumer_number": "C-2001",
        "meter_serial_number": "MTR-2001",
        "name": "Ravi Kumar",
        "address": "4 Station Street",
        "phone_number": "9123456780",
        "tariff_plan": "Domestic",
        "current_reading": "100",
    }
