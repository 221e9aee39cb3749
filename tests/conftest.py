"""Shared fixtures: in-memory database, fake object store, fake Stripe client."""

from __future__ import annotations

import copy
import hashlib
import hmac
import json
import os
import threading
import time

# Configure before any app module reads the environment
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_123"
os.environ["R2_ACCESS_KEY_ID"] = ""
os.environ["R2_SECRET_ACCESS_KEY"] = ""

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from core.database import Base, SessionLocal, engine, get_db  # noqa: E402
from models.order import Order  # noqa: E402,F401
from utils.storage import StoreError, get_object_store  # noqa: E402
from utils.stripe_api import PaymentProviderError, get_payment_provider  # noqa: E402

WEBHOOK_SECRET = "whsec_test_secret"


def sign(body: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a Stripe-Signature header for body."""
    ts = int(time.time()) if timestamp is None else timestamp
    digest = hmac.new(secret.encode(), f"{ts}.".encode() + body, hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


def completion_event(session: dict, event_id: str = "evt_1") -> bytes:
    return json.dumps({
        "id": event_id,
        "type": "checkout.session.completed",
        "data": {"object": session},
    }).encode()


def make_session(session_id: str = "cs_test_1", **overrides) -> dict:
    session = {
        "id": session_id,
        "object": "checkout.session",
        "payment_status": "paid",
        "amount_total": 1999,
        "customer_email": "fallback@example.com",
        "customer_details": {
            "email": "buyer@example.com",
            "name": "Ada Buyer",
            "phone": "+15550100",
            "address": {"line1": "1 Billing St", "city": "Oakland", "country": "US", "postal_code": "94607"},
        },
        "shipping_details": {
            "name": "Ada Buyer",
            "address": {"line1": "2 Ship Rd", "city": "Berkeley", "country": "US", "postal_code": "94704"},
        },
        "shipping_cost": {"amount_total": 499},
        "metadata": {
            "quantity": "3",
            "pricePerCard": "4.50",
            "shippingCountry": "US",
            "cardImages": json.dumps(["https://cdn.test/a.png", "https://cdn.test/b.png"]),
            "cardImagesBase64": json.dumps(["aGVsbG8="]),
            "cardData": json.dumps([{"name": "Card A"}, {"name": "Card B"}]),
            "imageStoragePath": "ord_1/1700000000000/US_94704",
        },
    }
    session.update(overrides)
    return session


class FakeStore:
    """Records uploads; raises StoreError for payloads listed in fail_payloads."""

    def __init__(self, fail_payloads=(), delay: float = 0.0):
        self.fail_payloads = set(fail_payloads)
        self.delay = delay
        self.calls: list[tuple[str, bytes, str]] = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def put(self, key: str, data: bytes, content_type: str = "image/png") -> str:
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                time.sleep(self.delay)
            with self._lock:
                self.calls.append((key, data, content_type))
            if data in self.fail_payloads:
                raise StoreError(f"upload failed for {key}", code="InternalError", key=key)
            return f"https://cdn.test/{key}"
        finally:
            with self._lock:
                self.active -= 1


class FakePayments:
    """Stand-in for StripeAPI serving checkout sessions from a dict."""

    def __init__(self, sessions: dict | None = None, error: Exception | None = None):
        self.sessions = sessions or {}
        self.error = error
        self.calls: list[str] = []

    async def retrieve_checkout_session(self, session_id: str, expand=("customer", "line_items")) -> dict:
        self.calls.append(session_id)
        if self.error is not None:
            raise self.error
        if session_id not in self.sessions:
            raise PaymentProviderError(f"No such checkout.session: {session_id}", status_code=404)
        return copy.deepcopy(self.sessions[session_id])


@pytest.fixture()
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture()
def payments() -> FakePayments:
    return FakePayments()


@pytest.fixture()
def client(db, store, payments):
    from main import app

    def _db():
        yield db

    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_object_store] = lambda: store
    app.dependency_overrides[get_payment_provider] = lambda: payments
    try:
        yield TestClient(app, raise_server_exceptions=False)
    finally:
        app.dependency_overrides.clear()
