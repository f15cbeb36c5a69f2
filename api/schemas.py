"""
Pydantic schemas for API request/response models.
"""
from decimal import Decimal
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.models import LineItem


class CheckoutItem(BaseModel):
    """One cart line sent by the storefront."""

    name: str = Field(..., min_length=1, description="Product name")
    price: Decimal = Field(..., ge=0, description="Unit price in major units (e.g. 19.99)")
    quantity: int = Field(..., ge=1, description="Number of units")

    def to_line_item(self) -> LineItem:
        return LineItem(name=self.name, price=self.price, quantity=self.quantity)


class CreateCheckoutSessionRequest(BaseModel):
    """Request schema for creating a hosted checkout session."""

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {
                    "items": [{"name": "Ticket", "price": 19.99, "quantity": 3}],
                    "eventName": "Gala",
                }
            ]
        },
    )

    items: List[CheckoutItem] = Field(..., min_length=1, description="Cart lines")
    event_name: Optional[str] = Field(default=None, alias="eventName", description="Event name")
    event_id: Optional[Union[str, int]] = Field(
        default=None, alias="eventId", description="Event identifier"
    )

    @field_validator("event_name")
    @classmethod
    def validate_event_name(cls, v: Optional[str]) -> Optional[str]:
        """Collapse line breaks and runs of whitespace; the name ends up in mail headers."""
        return None if v is None else " ".join(v.split())

    @field_validator("event_id")
    @classmethod
    def validate_event_id(cls, v: Optional[Union[str, int]]) -> Optional[str]:
        """Metadata values are strings."""
        return None if v is None else str(v)


class CreateCheckoutSessionResponse(BaseModel):
    """Response schema for session creation."""

    id: str = Field(..., description="Checkout Session ID")


class ErrorResponse(BaseModel):
    """Upstream failure passed through to the caller."""

    error: str = Field(..., description="Processor error message")


class ConfigResponse(BaseModel):
    """Publishable configuration for the storefront."""

    model_config = ConfigDict(populate_by_name=True)

    publishable_key: str = Field(..., alias="publishableKey")


class WebhookResponse(BaseModel):
    """Response schema for webhook processing."""

    received: bool = Field(default=True, description="Delivery acknowledged")
    status: str = Field(..., description="Processing status (processed/ignored/duplicate)")
    event_id: str = Field(..., description="Stripe event ID")


class HealthCheckResponse(BaseModel):
    """Response schema for health checks."""

    status: str = Field(..., description="Overall health status")
    checks: Optional[dict] = Field(default=None, description="Individual service checks")
    message: Optional[str] = Field(default=None, description="Status message")
