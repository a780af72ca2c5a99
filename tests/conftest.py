"""
Configuración de pytest para tests
"""
import os

# antes de importar la app: Settings lee el entorno al importarse
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("BILLING_PROVIDER", "mock")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("JWT_SECRET", "test-secret")

import asyncio
import hashlib
import hmac
import json
import time
import uuid
from datetime import date, timedelta

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

WEBHOOK_SECRET = os.environ["STRIPE_WEBHOOK_SECRET"]


def future_date(days: int = 3) -> str:
    return (date.today() + timedelta(days=days)).isoformat()


def booking_payload(**overrides) -> dict:
    data = {
        "service": "Pet Sitting",
        "dog_name": "Luna",
        "dog_breed": "Beagle",
        "dog_age": 4,
        "date": future_date(),
        "time": "09:30",
        "duration": 60,
        "notes": "Loves the park",
    }
    data.update(overrides)
    return data


def sign(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Cabecera Stripe-Signature válida para `payload`."""
    t = timestamp or int(time.time())
    sig = hmac.new(secret.encode(), f"{t}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={t},v1={sig}"


def make_event(event_type: str, obj: dict) -> str:
    return json.dumps({
        "id": f"evt_{uuid.uuid4().hex[:16]}",
        "object": "event",
        "type": event_type,
        "data": {"object": obj},
    })


def succeeded_intent(provider, intent_id: str, method: str = "card") -> dict:
    """Marca el intent como pagado en el mock y devuelve el objeto del webhook."""
    provider.set_status(intent_id, "succeeded")
    return {
        "id": intent_id,
        "object": "payment_intent",
        "status": "succeeded",
        "amount": provider.intents[intent_id].amount,
        "latest_charge": provider.charge_for(intent_id),
        "payment_method_types": [method],
    }


@pytest.fixture
def db():
    """Base de datos Mongo en memoria, nueva en cada test"""
    client = AsyncMongoMockClient()
    return client[f"walkers_test_{uuid.uuid4().hex[:8]}"]


@pytest.fixture
def provider():
    from walkers.payments.mock_provider import MockPaymentProvider
    return MockPaymentProvider(WEBHOOK_SECRET)


@pytest.fixture
def client(db, provider):
    """Cliente de FastAPI con la base de datos y el proveedor sustituidos"""
    from walkers.db import get_db
    from walkers.dependencies import get_payment_provider
    from walkers.main import app

    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_payment_provider] = lambda: provider
    previous_limiter = app.state.limiter
    app.state.limiter = None
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        app.state.limiter = previous_limiter


def _insert_user(db, name: str, email: str, role: str = "user") -> dict:
    doc = {
        "name": name,
        "email": email,
        "phone": "+1 212 555 0100",
        "password_hash": "",
        "role": role,
    }
    res = asyncio.run(db.users.insert_one(doc))
    return {"id": str(res.inserted_id), "name": name, "email": email, "phone": doc["phone"], "role": role}


def _auth(user: dict) -> dict:
    from walkers.security import create_access_token
    return {"Authorization": f"Bearer {create_access_token(user['id'])}"}


@pytest.fixture
def user(db):
    return _insert_user(db, "Test User", "user@example.com")


@pytest.fixture
def other_user(db):
    return _insert_user(db, "Other User", "other@example.com")


@pytest.fixture
def admin(db):
    return _insert_user(db, "Admin", "admin@example.com", role="admin")


@pytest.fixture
def user_headers(user):
    return _auth(user)


@pytest.fixture
def other_headers(other_user):
    return _auth(other_user)


@pytest.fixture
def admin_headers(admin):
    return _auth(admin)


@pytest.fixture
def requester():
    """Usuario suelto para tests de servicio (no necesita estar en la BD)"""
    return {"id": str(ObjectId()), "role": "user"}


@pytest.fixture
def admin_requester():
    return {"id": str(ObjectId()), "role": "admin"}
