"""Contract shared by the downstream side effects of a confirmed payment."""
from abc import ABC, abstractmethod
from typing import Optional

from pydantic import BaseModel

from .models import PaymentRecord


class SinkError(Exception):
    """Raised by a sink when its side effect could not be performed."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.original_error = original_error


class NotificationSink(ABC):
    """
    A side effect triggered once per confirmed payment.

    Implementations raise SinkError on failure and leave the decision of
    what to do about it to the caller.
    """

    name: str = "sink"

    @abstractmethod
    async def deliver(self, record: PaymentRecord) -> None:
        """Perform the side effect for one payment."""

    async def close(self) -> None:
        """Release any resources held for the process lifetime."""


class SinkOutcome(BaseModel):
    """Result of one sink delivery."""

    sink: str
    delivered: bool
    error: Optional[str] = None
    duration_seconds: float = 0.0
