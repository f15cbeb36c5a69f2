"""
Notification fan-out.

Dispatches a PaymentRecord to every active sink concurrently. Sinks are
independent: one failing neither blocks nor rolls back the others, and the
fan-out itself never raises.
"""
import asyncio
import time
from typing import List, Sequence

import structlog

from monitoring.metrics import metrics

from .models import PaymentRecord
from .sinks import NotificationSink, SinkOutcome

logger = structlog.get_logger(__name__)


class NotificationFanout:
    """Runs all sinks for a record and contains their failures."""

    def __init__(self, sinks: Sequence[NotificationSink]):
        self.sinks = list(sinks)

    @property
    def sink_names(self) -> List[str]:
        return [sink.name for sink in self.sinks]

    async def _deliver(self, sink: NotificationSink, record: PaymentRecord) -> SinkOutcome:
        start_time = time.time()
        try:
            await sink.deliver(record)
        except Exception as e:
            duration = time.time() - start_time
            logger.error(
                "sink_delivery_failed",
                sink=sink.name,
                event_id=record.event_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            metrics.record_sink_delivery(sink.name, "failed", duration)
            return SinkOutcome(
                sink=sink.name, delivered=False, error=str(e), duration_seconds=duration
            )

        duration = time.time() - start_time
        logger.info(
            "sink_delivery_succeeded",
            sink=sink.name,
            event_id=record.event_id,
            duration_seconds=duration,
        )
        metrics.record_sink_delivery(sink.name, "delivered", duration)
        return SinkOutcome(sink=sink.name, delivered=True, duration_seconds=duration)

    async def dispatch(self, record: PaymentRecord) -> List[SinkOutcome]:
        """
        Deliver a record to all sinks and wait for every one to finish.

        Args:
            record: Normalized payment

        Returns:
            List[SinkOutcome]: One outcome per sink, in sink order
        """
        if not self.sinks:
            logger.warning("fanout_no_active_sinks", event_id=record.event_id)
            return []

        logger.info("fanout_dispatched", event_id=record.event_id, sinks=self.sink_names)

        outcomes = await asyncio.gather(
            *(self._deliver(sink, record) for sink in self.sinks)
        )
        return list(outcomes)

    async def close(self) -> None:
        for sink in self.sinks:
            await sink.close()
