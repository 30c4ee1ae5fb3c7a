"""
Pytest configuration for CoPallet tests.
Points the service at a throwaway SQLite database before anything imports it.
"""

import os
import tempfile
import uuid

# Must be set before any copallet imports
_test_data_dir = tempfile.mkdtemp(prefix="copallet_test_")
os.environ.setdefault("COPALLET_DATA_DIRECTORY", _test_data_dir)
os.environ.setdefault("COPALLET_LOG_DIRECTORY", os.path.join(_test_data_dir, "logs"))
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_test_data_dir}/test.db")

import pytest

# Ensure DB tables exist for all tests (create via SQLModel metadata)
from sqlmodel import SQLModel
from copallet.core.database import get_engine, import_models

import_models()
SQLModel.metadata.create_all(get_engine())

# Load error registry so CoPalletError returns correct HTTP status codes
from copallet.core.errors.registry import error_registry
error_registry.load()

from copallet.auth.actor_auth import Actor
from copallet.models.shipment import UserRole
from copallet.services.lifecycle_engine import LifecycleEngine


def _actor(role: UserRole) -> Actor:
    return Actor(user_id=f"{role.value[:4]}-{uuid.uuid4().hex[:12]}", role=role)


@pytest.fixture
def shipper() -> Actor:
    return _actor(UserRole.SHIPPER)


@pytest.fixture
def other_shipper() -> Actor:
    return _actor(UserRole.SHIPPER)


@pytest.fixture
def carrier_a() -> Actor:
    return _actor(UserRole.CARRIER)


@pytest.fixture
def carrier_b() -> Actor:
    return _actor(UserRole.CARRIER)


@pytest.fixture
def dispatcher() -> Actor:
    return _actor(UserRole.DISPATCHER)


@pytest.fixture
def admin() -> Actor:
    return _actor(UserRole.ADMIN)


@pytest.fixture
def engine() -> LifecycleEngine:
    return LifecycleEngine()


@pytest.fixture
def payload() -> dict:
    return {
        "from_address": {"street": "Kaiserstr. 1", "city": "Frankfurt", "postalCode": "60311", "country": "DE"},
        "to_address": {"street": "Rue de Rivoli 10", "city": "Paris", "postalCode": "75004", "country": "FR"},
        "pickup_window": {"start": "2026-03-10T08:00:00Z", "end": "2026-03-10T12:00:00Z"},
        "delivery_window": {"start": "2026-03-11T08:00:00Z", "end": "2026-03-11T18:00:00Z"},
        "pallets": {"quantity": 4, "dimensions": "120x80x150", "weight": 1800},
        "constraints": {"tailLift": True},
    }


@pytest.fixture
def open_shipment(engine, shipper, payload):
    """A published shipment owned by ``shipper``."""
    shipment = engine.create_shipment(shipper, payload)
    return engine.publish(shipment.id, shipper)
