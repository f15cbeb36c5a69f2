"""
Value objects passed through the payment-confirmation pipeline.

All of them are immutable: a PaymentRecord is handed to every sink at once,
so no sink can change what another one sees.
"""
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

NO_NAME = "No Name Provided"
NO_EMAIL = "No Email Provided"
NO_PHONE = "No Phone Provided"
UNKNOWN_EVENT = "Unknown Event"

CHECKOUT_COMPLETED = "checkout.session.completed"


class EventKind(Enum):
    """Discriminant of a verified processor event."""

    PAYMENT_COMPLETED = "payment_completed"
    OTHER = "other"

    @classmethod
    def from_event_type(cls, event_type: str) -> "EventKind":
        if event_type == CHECKOUT_COMPLETED:
            return cls.PAYMENT_COMPLETED
        return cls.OTHER


class VerifiedEvent(BaseModel):
    """A processor event whose signature has been checked."""

    model_config = ConfigDict(frozen=True)

    id: str
    type: str
    kind: EventKind
    payload: Dict[str, Any] = Field(default_factory=dict)


class LineItem(BaseModel):
    """One cart line as it was sent to checkout."""

    model_config = ConfigDict(frozen=True)

    name: str
    price: Decimal
    quantity: int

    def describe(self, currency: str) -> str:
        """Render as `Ticket - GBP20 x 2`."""
        return f"{self.name} - {currency}{self.price} x {self.quantity}"


class PaymentRecord(BaseModel):
    """Canonical normalized form of a confirmed payment."""

    model_config = ConfigDict(frozen=True)

    customer_name: str = NO_NAME
    customer_email: str = NO_EMAIL
    customer_phone: str = NO_PHONE
    event_name: str = UNKNOWN_EVENT
    currency: str
    amount_paid: str
    items: Tuple[LineItem, ...] = ()
    event_id: Optional[str] = None

    @property
    def has_customer_email(self) -> bool:
        return self.customer_email != NO_EMAIL

    def items_summary(self) -> str:
        """One `name - CURprice x qty` line per item, in cart order."""
        return "\n".join(item.describe(self.currency) for item in self.items)
