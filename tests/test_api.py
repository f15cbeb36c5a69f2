"""
API tests for webhook handling and checkout endpoints.

Stripe, the mail relay and Airtable are replaced with mocks; the webhook
payloads are signed with the real Stripe signature scheme.
"""
import json
from typing import Any, Callable, Dict, List
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from httpx import AsyncClient

from api.main import app
from api.services import Services, build_services, get_services
from config import Settings
from conftest import RecordingSink
from core.fanout import NotificationFanout
from core.sinks import SinkError
from integrations.ledger import AirtableLedger
from integrations.mailer import SMTPMailer
from integrations.stripe_client import StripeError, StripeErrorType
from monitoring.metrics import metrics


def _install(services: Services) -> Services:
    app.dependency_overrides[get_services] = lambda: services
    return services


def _with_sinks(settings: Settings, *sinks: Any) -> Services:
    services = build_services(settings)
    services.pipeline.fanout = NotificationFanout(list(sinks))
    return _install(services)


class TestWebhookEndpoint:
    """POST /webhook."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_end_to_end_confirmation(
        self,
        client: AsyncClient,
        test_settings: Settings,
        completed_session: Dict[str, Any],
        event_factory: Callable[..., bytes],
        signer: Callable[..., str],
        mocker: Any,
    ) -> None:
        """A confirmed payment produces one ledger row and one email."""
        ledger_requests: List[httpx.Request] = []

        def airtable(request: httpx.Request) -> httpx.Response:
            ledger_requests.append(request)
            return httpx.Response(200, json={"records": [{"id": "recABC"}]})

        smtp_cls = mocker.patch("integrations.mailer.smtplib.SMTP")
        ledger = AirtableLedger(
            test_settings, client=httpx.AsyncClient(transport=httpx.MockTransport(airtable))
        )
        _with_sinks(test_settings, SMTPMailer(test_settings), ledger)

        payload = event_factory(completed_session)
        response = await client.post(
            "/webhook",
            content=payload,
            headers={"Stripe-Signature": signer(payload), "Content-Type": "application/json"},
        )

        assert response.status_code == 200
        assert response.json() == {"received": True, "status": "processed", "event_id": "evt_test_123"}

        assert len(ledger_requests) == 1
        fields = json.loads(ledger_requests[0].content)["records"][0]["fields"]
        assert fields["Amount Paid"] == "40.00"
        assert fields["Currency"] == "GBP"
        assert "Ticket" in fields["Items Purchased"]

        smtp_cls.return_value.send_message.assert_called_once()
        message = smtp_cls.return_value.send_message.call_args.args[0]
        assert message["Subject"] == "New Payment for Gala"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_other_event_kinds_acknowledged_without_side_effects(
        self,
        client: AsyncClient,
        test_settings: Settings,
        event_factory: Callable[..., bytes],
        signer: Callable[..., str],
    ) -> None:
        sink = RecordingSink("email")
        _with_sinks(test_settings, sink)

        payload = event_factory({"id": "pi_1"}, event_type="payment_intent.created")
        response = await client.post("/webhook", content=payload, headers={"Stripe-Signature": signer(payload)})

        assert response.status_code == 200
        assert response.json()["status"] == "ignored"
        assert sink.records == []

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_bad_signature_rejected_without_side_effects(
        self,
        client: AsyncClient,
        test_settings: Settings,
        completed_session: Dict[str, Any],
        event_factory: Callable[..., bytes],
        signer: Callable[..., str],
    ) -> None:
        sink = RecordingSink("ledger")
        _with_sinks(test_settings, sink)

        payload = event_factory(completed_session)
        response = await client.post(
            "/webhook",
            content=payload,
            headers={"Stripe-Signature": signer(payload, secret="whsec_wrong")},
        )

        assert response.status_code == 400
        assert response.text.startswith("Webhook Error:")
        assert sink.records == []

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_missing_signature_rejected(
        self,
        client: AsyncClient,
        test_settings: Settings,
        completed_session: Dict[str, Any],
        event_factory: Callable[..., bytes],
    ) -> None:
        sink = RecordingSink("ledger")
        _with_sinks(test_settings, sink)

        response = await client.post("/webhook", content=event_factory(completed_session))

        assert response.status_code == 400
        assert sink.records == []

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_signed_non_event_counted_as_malformed(
        self,
        client: AsyncClient,
        test_settings: Settings,
        signer: Callable[..., str],
        mocker: Any,
    ) -> None:
        """A correctly signed body that is not an event is not a signature failure."""
        _with_sinks(test_settings, RecordingSink("ledger"))
        signature_failure = mocker.patch.object(metrics, "record_signature_failure")
        malformed = mocker.patch.object(metrics, "record_malformed_event")

        payload = b'["not", "an", "event"]'
        response = await client.post(
            "/webhook", content=payload, headers={"Stripe-Signature": signer(payload)}
        )

        assert response.status_code == 400
        assert response.text.startswith("Webhook Error:")
        malformed.assert_called_once_with()
        signature_failure.assert_not_called()

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_bad_signature_counted_as_signature_failure(
        self,
        client: AsyncClient,
        test_settings: Settings,
        completed_session: Dict[str, Any],
        event_factory: Callable[..., bytes],
        mocker: Any,
    ) -> None:
        _with_sinks(test_settings, RecordingSink("ledger"))
        signature_failure = mocker.patch.object(metrics, "record_signature_failure")
        malformed = mocker.patch.object(metrics, "record_malformed_event")

        response = await client.post(
            "/webhook",
            content=event_factory(completed_session),
            headers={"Stripe-Signature": "t=1,v1=deadbeef"},
        )

        assert response.status_code == 400
        signature_failure.assert_called_once_with()
        malformed.assert_not_called()

    @pytest.mark.integration
    @pytest.mark.asyncio
    @pytest.mark.parametrize("failing", ["email", "ledger"])
    async def test_sink_failure_still_acknowledged(
        self,
        client: AsyncClient,
        test_settings: Settings,
        completed_session: Dict[str, Any],
        event_factory: Callable[..., bytes],
        signer: Callable[..., str],
        failing: str,
    ) -> None:
        email = RecordingSink("email", error=SinkError("relay rejected") if failing == "email" else None)
        ledger = RecordingSink("ledger", error=SinkError("ledger down") if failing == "ledger" else None)
        _with_sinks(test_settings, email, ledger)

        payload = event_factory(completed_session)
        response = await client.post("/webhook", content=payload, headers={"Stripe-Signature": signer(payload)})

        assert response.status_code == 200
        assert len(email.records) == 1
        assert len(ledger.records) == 1

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_duplicate_delivery_dropped_when_dedup_enabled(
        self,
        client: AsyncClient,
        test_settings: Settings,
        completed_session: Dict[str, Any],
        event_factory: Callable[..., bytes],
        signer: Callable[..., str],
    ) -> None:
        settings = test_settings.model_copy(update={"webhook_dedup_enabled": True})
        sink = RecordingSink("email")
        services = _with_sinks(settings, sink)
        redis = AsyncMock()
        redis.set.side_effect = [True, None]
        services.deduplicator.redis_client = redis

        payload = event_factory(completed_session)
        first = await client.post("/webhook", content=payload, headers={"Stripe-Signature": signer(payload)})
        second = await client.post("/webhook", content=payload, headers={"Stripe-Signature": signer(payload)})

        assert first.json()["status"] == "processed"
        assert second.status_code == 200
        assert second.json()["status"] == "duplicate"
        assert len(sink.records) == 1


class TestCheckoutEndpoints:
    """Checkout session creation, retrieval and storefront config."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_create_checkout_session(
        self, client: AsyncClient, test_settings: Settings, mocker: Any
    ) -> None:
        create = mocker.patch("stripe.checkout.Session.create", return_value=MagicMock(id="cs_test_123"))
        _install(build_services(test_settings))

        response = await client.post(
            "/create-checkout-session",
            json={"items": [{"name": "Ticket", "price": 19.99, "quantity": 3}], "eventName": "Gala"},
        )

        assert response.status_code == 200
        assert response.json() == {"id": "cs_test_123"}
        line = create.call_args.kwargs["line_items"][0]
        assert line["price_data"]["unit_amount"] == 1999
        assert line["quantity"] == 3

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_event_name_line_breaks_collapsed_in_metadata(
        self, client: AsyncClient, test_settings: Settings, mocker: Any
    ) -> None:
        create = mocker.patch("stripe.checkout.Session.create", return_value=MagicMock(id="cs_test_123"))
        _install(build_services(test_settings))

        response = await client.post(
            "/create-checkout-session",
            json={"items": [{"name": "Ticket", "price": 5, "quantity": 1}], "eventName": "Gala\r\nNight"},
        )

        assert response.status_code == 200
        assert create.call_args.kwargs["metadata"]["eventName"] == "Gala Night"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_create_checkout_session_upstream_error(
        self, client: AsyncClient, test_settings: Settings
    ) -> None:
        services = _install(build_services(test_settings))
        services.stripe_client = AsyncMock()
        services.stripe_client.create_checkout_session.side_effect = StripeError(
            "Invalid API Key provided", StripeErrorType.PERMANENT
        )

        response = await client.post(
            "/create-checkout-session",
            json={"items": [{"name": "Ticket", "price": 10, "quantity": 1}], "eventId": 7},
        )

        assert response.status_code == 500
        assert response.json() == {"error": "Invalid API Key provided"}

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_create_checkout_session_rejects_bad_cart(
        self, client: AsyncClient, test_settings: Settings
    ) -> None:
        _install(build_services(test_settings))

        response = await client.post("/create-checkout-session", json={"items": [{"name": "Ticket"}]})

        assert response.status_code == 422

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_get_checkout_session(self, client: AsyncClient, test_settings: Settings) -> None:
        services = _install(build_services(test_settings))
        services.stripe_client = AsyncMock()
        services.stripe_client.retrieve_checkout_session.return_value = {
            "id": "cs_test_123",
            "customer_details": {"email": "a@b.com"},
        }

        response = await client.get("/checkout-session", params={"sessionId": "cs_test_123"})

        assert response.status_code == 200
        assert response.json()["customer_details"]["email"] == "a@b.com"
        services.stripe_client.retrieve_checkout_session.assert_awaited_once_with("cs_test_123")

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_get_checkout_session_upstream_error(
        self, client: AsyncClient, test_settings: Settings
    ) -> None:
        services = _install(build_services(test_settings))
        services.stripe_client = AsyncMock()
        services.stripe_client.retrieve_checkout_session.side_effect = StripeError(
            "No such checkout.session: cs_missing", StripeErrorType.PERMANENT
        )

        response = await client.get("/checkout-session", params={"sessionId": "cs_missing"})

        assert response.status_code == 500
        assert response.json() == {"error": "No such checkout.session: cs_missing"}

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_config(self, client: AsyncClient, test_settings: Settings) -> None:
        _install(build_services(test_settings))

        response = await client.get("/config")

        assert response.status_code == 200
        assert response.json() == {"publishableKey": "pk_test_fake_key_for_testing"}


class TestMonitoringEndpoints:
    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_liveness(self, client: AsyncClient, test_settings: Settings) -> None:
        _install(build_services(test_settings))

        response = await client.get("/health/live")

        assert response.status_code == 200
        assert response.json()["status"] == "alive"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_upstream_request_id_echoed(self, client: AsyncClient, test_settings: Settings) -> None:
        _install(build_services(test_settings))

        response = await client.get("/health/live", headers={"X-Request-ID": "req-from-proxy"})

        assert response.headers["X-Request-ID"] == "req-from-proxy"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_readiness_reports_stripe_outage(
        self, client: AsyncClient, test_settings: Settings
    ) -> None:
        services = _install(build_services(test_settings))
        services.health_check.stripe_client = AsyncMock()
        services.health_check.stripe_client.ping.side_effect = StripeError(
            "connection refused", StripeErrorType.TRANSIENT
        )

        response = await client.get("/health")

        assert response.status_code == 503

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_metrics_endpoint(self, client: AsyncClient) -> None:
        response = await client.get("/metrics")

        assert response.status_code == 200
        assert "text/plain" in response.headers["content-type"]
