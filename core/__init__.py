"""Payment-confirmation pipeline core."""
from .fanout import NotificationFanout
from .models import EventKind, LineItem, PaymentRecord, VerifiedEvent
from .normalizer import decode_items, format_minor_units, normalize_event
from .pipeline import PaymentPipeline, PipelineResult, PipelineStatus
from .sinks import NotificationSink, SinkError, SinkOutcome

__all__ = [
    "EventKind",
    "LineItem",
    "NotificationFanout",
    "NotificationSink",
    "PaymentPipeline",
    "PaymentRecord",
    "PipelineResult",
    "PipelineStatus",
    "SinkError",
    "SinkOutcome",
    "VerifiedEvent",
    "decode_items",
    "format_minor_units",
    "normalize_event",
]
