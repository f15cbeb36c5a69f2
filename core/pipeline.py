"""
Payment-confirmation pipeline.

One webhook delivery flows through:

    verify signature -> (claim event id) -> normalize -> fan out to sinks

Only verification errors reach the caller. Once the fan-out has run the
delivery is acknowledged, whatever the sinks reported, because a
redelivery would trigger every sink again.
"""
from enum import Enum
from typing import List, Optional

import structlog
from pydantic import BaseModel, Field

from config.settings import Settings

from .fanout import NotificationFanout
from .models import VerifiedEvent
from .normalizer import normalize_event
from .sinks import SinkOutcome

logger = structlog.get_logger(__name__)


class PipelineStatus(Enum):
    PROCESSED = "processed"
    IGNORED = "ignored"
    DUPLICATE = "duplicate"


class PipelineResult(BaseModel):
    """What happened to one delivery."""

    status: PipelineStatus
    event_id: str
    event_type: str
    outcomes: List[SinkOutcome] = Field(default_factory=list)


class PaymentPipeline:
    """Wires the verifier, normalizer and fan-out together."""

    def __init__(
        self,
        settings: Settings,
        verifier,
        fanout: NotificationFanout,
        deduplicator=None,
    ):
        """
        Args:
            settings: Application settings (capability flags, currency)
            verifier: Object exposing `verify_signature(payload, signature)`
            fanout: Fan-out over the active sinks
            deduplicator: Optional object exposing `async claim(event_id)`
        """
        self.settings = settings
        self.verifier = verifier
        self.fanout = fanout
        self.deduplicator = deduplicator

    async def process_event(self, event: VerifiedEvent) -> PipelineResult:
        """Normalize a verified event and dispatch it to the sinks."""
        record = normalize_event(
            event,
            default_currency=self.settings.default_currency,
            collect_phone=self.settings.collect_phone,
            collect_items=self.settings.collect_items,
        )
        if record is None:
            return PipelineResult(
                status=PipelineStatus.IGNORED, event_id=event.id, event_type=event.type
            )

        if self.deduplicator is not None and not await self.deduplicator.claim(event.id):
            return PipelineResult(
                status=PipelineStatus.DUPLICATE, event_id=event.id, event_type=event.type
            )

        outcomes = await self.fanout.dispatch(record)

        failed = [outcome.sink for outcome in outcomes if not outcome.delivered]
        logger.info(
            "payment_event_processed",
            delivered=[outcome.sink for outcome in outcomes if outcome.delivered],
            failed=failed,
        )

        return PipelineResult(
            status=PipelineStatus.PROCESSED,
            event_id=event.id,
            event_type=event.type,
            outcomes=outcomes,
        )

    async def handle(self, payload: bytes, signature: Optional[str]) -> PipelineResult:
        """
        Handle one raw webhook delivery.

        Raises:
            WebhookError: If the delivery fails verification
        """
        event = self.verifier.verify_signature(payload, signature)
        # Sink and de-dup logs for this delivery carry the event identity.
        with structlog.contextvars.bound_contextvars(event_id=event.id, event_type=event.type):
            return await self.process_event(event)
