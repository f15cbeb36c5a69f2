"""
Pytest configuration and fixtures.
"""
import hashlib
import hmac
import json
import os
import time
from typing import Any, AsyncGenerator, Callable, Dict, List, Optional

# Settings are read when the app module is imported.
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_fake_key_for_testing")
os.environ.setdefault("STRIPE_PUBLISHABLE_KEY", "pk_test_fake_key_for_testing")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_fake_secret")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from config import Settings
from core.models import PaymentRecord
from core.sinks import NotificationSink

WEBHOOK_SECRET = "whsec_test_fake_secret"


class RecordingSink(NotificationSink):
    """Sink that remembers what it was given, optionally failing."""

    def __init__(self, name: str, error: Optional[Exception] = None):
        self.name = name
        self.error = error
        self.records: List[PaymentRecord] = []

    async def deliver(self, record: PaymentRecord) -> None:
        self.records.append(record)
        if self.error is not None:
            raise self.error


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Build a Stripe-Signature header the way Stripe does."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.".encode() + payload
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def make_event(
    session: Dict[str, Any],
    event_type: str = "checkout.session.completed",
    event_id: str = "evt_test_123",
) -> bytes:
    return json.dumps(
        {"id": event_id, "object": "event", "type": event_type, "data": {"object": session}}
    ).encode()


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        _env_file=None,
        stripe_secret_key="sk_test_fake_key_for_testing",
        stripe_publishable_key="pk_test_fake_key_for_testing",
        stripe_webhook_secret=WEBHOOK_SECRET,
        smtp_host="smtp.test.local",
        smtp_port=587,
        smtp_username="payments@example.org",
        smtp_password="secret",
        email_bcc="operator@example.org",
        airtable_api_key="pat_test",
        airtable_base_id="appTestBase",
        airtable_table_name="Payments",
        frontend_url="https://shop.example.org",
        default_currency="usd",
        app_name="checkout-notifier-test",
        app_env="test",
        log_level="DEBUG",
    )


@pytest.fixture
def completed_session() -> Dict[str, Any]:
    """A checkout.session.completed payload as Stripe sends it."""
    return {
        "id": "cs_test_123",
        "object": "checkout.session",
        "amount_total": 4000,
        "currency": "gbp",
        "customer_details": {"email": "a@b.com", "name": "Ada Lovelace", "phone": None},
        "metadata": {
            "eventName": "Gala",
            "items": '[{"name":"Ticket","price":20,"quantity":2}]',
        },
    }


@pytest.fixture
def signer() -> Callable[..., str]:
    return sign_payload


@pytest.fixture
def event_factory() -> Callable[..., bytes]:
    return make_event


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient, Any]:
    """Create test HTTP client."""
    from api.main import app

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()

