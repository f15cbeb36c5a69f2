"""
Stripe API client for hosted checkout.

Implements:
- Checkout Session creation from a cart, with the cart and event name
  stored as session metadata so the completed-payment webhook can
  recover them
- Session retrieval
- Error classification for logging and metrics
"""
import asyncio
import json
import time
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Callable, Dict, Optional, Sequence, Union

import stripe
import structlog

from config import get_settings
from config.settings import Settings
from core.models import LineItem
from monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


class StripeErrorType(Enum):
    """Classification of Stripe errors."""

    TRANSIENT = "transient"
    PERMANENT = "permanent"
    RATE_LIMIT = "rate_limit"


class StripeError(Exception):
    """Base exception for Stripe-related errors."""

    def __init__(
        self,
        message: str,
        error_type: StripeErrorType,
        original_error: Optional[Exception] = None,
    ):
        """
        Initialize Stripe error.

        Args:
            message: Error message
            error_type: Classification of error
            original_error: Original Stripe exception
        """
        super().__init__(message)
        self.error_type = error_type
        self.original_error = original_error


def to_minor_units(price: Decimal) -> int:
    """Convert a major-unit price to an integer minor-unit amount, rounding half up."""
    return int((Decimal(str(price)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _json_number(value: Decimal) -> Union[int, float]:
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def serialize_items(items: Sequence[LineItem]) -> str:
    """Compact JSON form of the cart, as read back by the normalizer."""
    return json.dumps(
        [
            {"name": item.name, "price": _json_number(item.price), "quantity": item.quantity}
            for item in items
        ],
        separators=(",", ":"),
    )


class StripeClient:
    """
    Wrapper for the Stripe Checkout API.

    The SDK is blocking, so every call runs in a worker thread.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        """Initialize Stripe client."""
        settings = settings or get_settings()
        stripe.api_key = settings.stripe_secret_key
        stripe.api_version = settings.stripe_api_version
        self.settings = settings

        logger.info(
            "stripe_client_initialized",
            api_version=stripe.api_version,
            test_mode=settings.is_test_mode,
        )

    @staticmethod
    def _classify_error(error: stripe.StripeError) -> StripeErrorType:
        """
        Classify Stripe error.

        Args:
            error: Stripe error

        Returns:
            StripeErrorType: Error classification
        """
        if isinstance(error, stripe.RateLimitError):
            return StripeErrorType.RATE_LIMIT
        elif isinstance(error, (stripe.APIConnectionError, stripe.APIError)):
            return StripeErrorType.TRANSIENT
        elif isinstance(
            error,
            (
                stripe.CardError,
                stripe.InvalidRequestError,
                stripe.AuthenticationError,
                stripe.PermissionError,
            ),
        ):
            return StripeErrorType.PERMANENT
        else:
            # Unknown errors are treated as transient
            return StripeErrorType.TRANSIENT

    def _handle_stripe_error(self, operation: str, error: stripe.StripeError) -> None:
        """
        Handle and classify Stripe errors.

        Raises:
            StripeError: Classified error
        """
        error_type = self._classify_error(error)

        logger.error(
            "stripe_api_error",
            operation=operation,
            error_type=error_type.value,
            error_code=getattr(error, "code", None),
            error_message=str(error.user_message or error),
        )
        metrics.record_stripe_api_error(error_type.value)

        raise StripeError(
            message=str(error.user_message or error),
            error_type=error_type,
            original_error=error,
        )

    async def _call(self, operation: str, func: Callable[[], Any]) -> Any:
        start_time = time.time()
        try:
            result = await asyncio.to_thread(func)
        except stripe.StripeError as e:
            metrics.record_stripe_api_call(operation, "error", time.time() - start_time)
            self._handle_stripe_error(operation, e)
            raise  # For type checker
        metrics.record_stripe_api_call(operation, "success", time.time() - start_time)
        return result

    def build_session_params(
        self,
        items: Sequence[LineItem],
        event_name: Optional[str] = None,
        event_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Build Checkout Session parameters for a cart.

        Args:
            items: Cart lines in display order
            event_name: Human-readable event name
            event_id: Event identifier, used as the name when none is given

        Returns:
            Dict[str, Any]: Keyword arguments for `checkout.Session.create`
        """
        currency = self.settings.default_currency
        base_url = self.settings.storefront_url

        metadata: Dict[str, str] = {"items": serialize_items(items)}
        if event_name or event_id:
            metadata["eventName"] = event_name or str(event_id)
        if event_id:
            metadata["eventId"] = str(event_id)

        params: Dict[str, Any] = {
            "payment_method_types": ["card"],
            "line_items": [
                {
                    "price_data": {
                        "currency": currency,
                        "product_data": {"name": item.name},
                        "unit_amount": to_minor_units(item.price),
                    },
                    "quantity": item.quantity,
                }
                for item in items
            ],
            "mode": "payment",
            "success_url": f"{base_url}/success.html?session_id={{CHECKOUT_SESSION_ID}}",
            "cancel_url": f"{base_url}/cancel.html",
            "metadata": metadata,
        }
        if self.settings.collect_phone:
            params["phone_number_collection"] = {"enabled": True}
        return params

    async def create_checkout_session(
        self,
        items: Sequence[LineItem],
        event_name: Optional[str] = None,
        event_id: Optional[str] = None,
    ) -> stripe.checkout.Session:
        """
        Create a hosted Checkout Session.

        Raises:
            StripeError: If session creation fails
        """
        params = self.build_session_params(items, event_name=event_name, event_id=event_id)

        logger.info(
            "creating_checkout_session",
            item_count=len(items),
            event_name=params["metadata"].get("eventName"),
            currency=self.settings.default_currency,
        )

        session = await self._call(
            "create_session", lambda: stripe.checkout.Session.create(**params)
        )
        metrics.record_checkout_session(self.settings.default_currency)

        logger.info("checkout_session_created", session_id=session.id)
        return session

    async def retrieve_checkout_session(self, session_id: str) -> Dict[str, Any]:
        """
        Retrieve a Checkout Session by ID.

        Returns:
            Dict[str, Any]: The processor's session object, unmodified

        Raises:
            StripeError: If retrieval fails
        """
        logger.info("retrieving_checkout_session", session_id=session_id)
        session = await self._call(
            "retrieve_session", lambda: stripe.checkout.Session.retrieve(session_id)
        )
        return session.to_dict()

    async def ping(self) -> None:
        """Cheapest authenticated call, used by the readiness check."""
        await self._call("balance", lambda: stripe.Balance.retrieve())
