"""
Shared fixtures: in-memory database, API client and token helpers
"""

import os

# Must be set before the application modules read their settings
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["NOTIFICATION_URL"] = ""
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from deliverylink.database import Base, get_db
from deliverylink.auth.auth_handler import auth_handler
from deliverylink.schemas.order import OrderCreate
from deliverylink.services.order_lifecycle import OrderLifecycleEngine
from main import app

# Test database setup
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db

BUSINESS_ID = "business-1"
OTHER_BUSINESS_ID = "business-2"
DRIVER_ID = "driver-1"
OTHER_DRIVER_ID = "driver-2"
ADMIN_ID = "admin-1"


def order_payload(**overrides) -> dict:
    payload = {
        "priority": "normal",
        "pickup_contact_name": "Mama Mboga Stores",
        "pickup_contact_phone": "0712345678",
        "pickup_address": "Moi Avenue, Nairobi",
        "pickup_latitude": -1.2841,
        "pickup_longitude": 36.8233,
        "dropoff_contact_name": "Wanjiru Kamau",
        "dropoff_contact_phone": "+254722000111",
        "dropoff_address": "Ngong Road, Nairobi",
        "dropoff_latitude": -1.3001,
        "dropoff_longitude": 36.7853,
        "package_description": "Groceries",
        "package_weight": 3.5,
        "package_size": "medium",
        "package_quantity": 2,
        "package_value": "1500.00",
        "is_fragile": False,
        "estimated_distance_km": 10,
        "estimated_duration_minutes": 25,
    }
    payload.update(overrides)
    return payload


@pytest.fixture(autouse=True)
def reset_database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def lifecycle(db):
    return OrderLifecycleEngine(db)


@pytest.fixture
def place_order(lifecycle):
    """Factory placing an order through the engine"""
    def _place(actor_id: str = BUSINESS_ID, **overrides):
        data = OrderCreate(**order_payload(**overrides)).dict()
        return lifecycle.place_order(actor_id, data).order
    return _place


def make_headers(user_id: str, role: str) -> dict:
    token = auth_handler.create_access_token({"sub": user_id, "role": role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def business_headers():
    return make_headers(BUSINESS_ID, "business")


@pytest.fixture
def other_business_headers():
    return make_headers(OTHER_BUSINESS_ID, "business")


@pytest.fixture
def driver_headers():
    return make_headers(DRIVER_ID, "driver")


@pytest.fixture
def other_driver_headers():
    return make_headers(OTHER_DRIVER_ID, "driver")


@pytest.fixture
def admin_headers():
    return make_headers(ADMIN_ID, "admin")
