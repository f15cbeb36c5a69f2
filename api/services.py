"""
Service wiring.

Builds the pipeline from the capability flags in settings: which sinks are
active and whether repeated deliveries are dropped.
"""
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional

import structlog

from config import get_settings
from config.settings import Settings
from core.fanout import NotificationFanout
from core.pipeline import PaymentPipeline
from core.sinks import NotificationSink
from integrations.ledger import AirtableLedger
from integrations.mailer import SMTPMailer
from integrations.stripe_client import StripeClient
from integrations.webhook_handler import EventDeduplicator, WebhookHandler
from monitoring.health import HealthCheck

logger = structlog.get_logger(__name__)


@dataclass
class Services:
    settings: Settings
    stripe_client: StripeClient
    pipeline: PaymentPipeline
    health_check: HealthCheck
    deduplicator: Optional[EventDeduplicator] = None

    async def close(self) -> None:
        await self.pipeline.fanout.close()
        if self.deduplicator is not None:
            await self.deduplicator.close()


def build_sinks(settings: Settings) -> List[NotificationSink]:
    """Instantiate the sinks enabled in settings."""
    sinks: List[NotificationSink] = []
    if settings.email_sink_enabled:
        sinks.append(SMTPMailer(settings))
    if settings.ledger_sink_enabled:
        sinks.append(AirtableLedger(settings))
    return sinks


def build_services(settings: Settings) -> Services:
    stripe_client = StripeClient(settings)
    deduplicator = EventDeduplicator(settings=settings) if settings.webhook_dedup_enabled else None
    fanout = NotificationFanout(build_sinks(settings))
    pipeline = PaymentPipeline(
        settings=settings,
        verifier=WebhookHandler(settings),
        fanout=fanout,
        deduplicator=deduplicator,
    )

    logger.info(
        "services_initialized",
        sinks=fanout.sink_names,
        collect_phone=settings.collect_phone,
        collect_items=settings.collect_items,
        dedup_enabled=deduplicator is not None,
    )

    return Services(
        settings=settings,
        stripe_client=stripe_client,
        pipeline=pipeline,
        health_check=HealthCheck(settings, stripe_client, deduplicator),
        deduplicator=deduplicator,
    )


@lru_cache()
def get_services() -> Services:
    """Process-wide services, built on first use."""
    return build_services(get_settings())
