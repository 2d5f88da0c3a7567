import os
import tempfile

# Settings are read once at import time, point them at a throwaway database first
_DB_DIR = tempfile.mkdtemp(prefix="shipments-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{os.path.join(_DB_DIR, 'shipments.db')}")
os.environ.setdefault("RUN_MIGRATIONS", "false")
os.environ.setdefault("STREAM_POLL_INTERVAL_SECONDS", "0.05")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.domain.models import Base
from app.infrastructure.db import engine, SessionLocal
from app.application.schemas import ShipmentCreate

@pytest.fixture(autouse=True)
def _fresh_schema():
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    yield

@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()

@pytest.fixture
def client():
    return TestClient(app)

@pytest.fixture
def shipment_data():
    def _make(order_id: int = 42, **overrides) -> ShipmentCreate:
        payload = {
            "order_id": order_id,
            "recipient_name": "Jane Doe",
            "recipient_address": "1 Main Street",
            "recipient_city": "Springfield",
            "recipient_postal_code": "12345",
            "recipient_country": "US",
            "recipient_phone": "+1-555-0100",
            "weight_kg": 2.5,
            "notes": "Leave at the door",
        }
        payload.update(overrides)
        return ShipmentCreate(**payload)
    return _make
