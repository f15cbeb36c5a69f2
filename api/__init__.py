"""FastAPI application and routes."""
from .main import app
from .schemas import (
    CheckoutItem,
    ConfigResponse,
    CreateCheckoutSessionRequest,
    CreateCheckoutSessionResponse,
    WebhookResponse,
)

__all__ = [
    "app",
    "CheckoutItem",
    "ConfigResponse",
    "CreateCheckoutSessionRequest",
    "CreateCheckoutSessionResponse",
    "WebhookResponse",
]
