"""
Prometheus metrics for the payment-confirmation pipeline.

Tracks:
- Webhook events received/processed by type and outcome
- Sink deliveries (email, ledger) by outcome and duration
- Stripe API calls and errors
- Checkout sessions created
"""
from prometheus_client import Counter, Histogram

# Webhook metrics
webhook_events_received_total = Counter(
    "webhook_events_received_total",
    "Total webhook events received",
    ["event_type"],
)

webhook_events_processed_total = Counter(
    "webhook_events_processed_total",
    "Total webhook events processed",
    ["event_type", "status"],  # processed, ignored, duplicate
)

webhook_signature_failures_total = Counter(
    "webhook_signature_failures_total",
    "Total webhook deliveries rejected by signature verification",
)

webhook_malformed_events_total = Counter(
    "webhook_malformed_events_total",
    "Total correctly signed webhook deliveries that were not Stripe events",
)

webhook_processing_duration_seconds = Histogram(
    "webhook_processing_duration_seconds",
    "Webhook processing duration in seconds",
    ["event_type"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

# Sink metrics
sink_deliveries_total = Counter(
    "sink_deliveries_total",
    "Total sink deliveries",
    ["sink", "status"],  # status: delivered, failed
)

sink_delivery_duration_seconds = Histogram(
    "sink_delivery_duration_seconds",
    "Sink delivery duration in seconds",
    ["sink"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

# Stripe API metrics
stripe_api_requests_total = Counter(
    "stripe_api_requests_total",
    "Total Stripe API requests",
    ["operation", "status"],  # operation: create_session, retrieve_session
)

stripe_api_errors_total = Counter(
    "stripe_api_errors_total",
    "Total Stripe API errors",
    ["error_type"],  # transient, permanent, rate_limit
)

stripe_api_duration_seconds = Histogram(
    "stripe_api_duration_seconds",
    "Stripe API call duration in seconds",
    ["operation"],
    buckets=(0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0),
)

checkout_sessions_created_total = Counter(
    "checkout_sessions_created_total",
    "Total checkout sessions created",
    ["currency"],
)


class MetricsCollector:
    """Helper class for collecting metrics."""

    @staticmethod
    def record_webhook_event(event_type: str, status: str, duration_seconds: float) -> None:
        """Record webhook event processing."""
        webhook_events_received_total.labels(event_type=event_type).inc()
        webhook_events_processed_total.labels(event_type=event_type, status=status).inc()
        webhook_processing_duration_seconds.labels(event_type=event_type).observe(
            duration_seconds
        )

    @staticmethod
    def record_signature_failure() -> None:
        """Record a rejected webhook delivery."""
        webhook_signature_failures_total.inc()

    @staticmethod
    def record_malformed_event() -> None:
        webhook_malformed_events_total.inc()

    @staticmethod
    def record_sink_delivery(sink: str, status: str, duration_seconds: float) -> None:
        """Record one sink delivery attempt."""
        sink_deliveries_total.labels(sink=sink, status=status).inc()
        sink_delivery_duration_seconds.labels(sink=sink).observe(duration_seconds)

    @staticmethod
    def record_stripe_api_call(
        operation: str, status: str, duration_seconds: float
    ) -> None:
        """Record Stripe API call."""
        stripe_api_requests_total.labels(operation=operation, status=status).inc()
        stripe_api_duration_seconds.labels(operation=operation).observe(duration_seconds)

    @staticmethod
    def record_stripe_api_error(error_type: str) -> None:
        """Record Stripe API error."""
        stripe_api_errors_total.labels(error_type=error_type).inc()

    @staticmethod
    def record_checkout_session(currency: str) -> None:
        checkout_sessions_created_total.labels(currency=currency).inc()


# Export singleton instance
metrics = MetricsCollector()
