"""
Stripe webhook verification and optional event de-duplication.

Implements:
- Signature verification against the raw request body
- Decoding of the event only after the signature checks out
- Redis-backed claiming of event ids so redeliveries can be dropped
"""
import json
from typing import Optional

import redis.asyncio as aioredis
import stripe
import structlog

from config import get_settings
from config.settings import Settings
from core.models import EventKind, VerifiedEvent

logger = structlog.get_logger(__name__)


class WebhookError(Exception):
    """Raised when an inbound webhook cannot be accepted."""

    pass


class SignatureInvalid(WebhookError):
    """Raised when the body, signature header and secret do not match."""

    pass


class MalformedEvent(WebhookError):
    """Raised when a correctly signed body is not a processor event."""

    pass


class WebhookHandler:
    """
    Verifies Stripe webhook deliveries.

    The body is treated as opaque bytes until the signature has been
    checked; only then is it decoded into a VerifiedEvent.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def verify_signature(
        self, payload: bytes, signature: Optional[str], secret: Optional[str] = None
    ) -> VerifiedEvent:
        """
        Verify webhook signature and construct event.

        Args:
            payload: Raw request body as bytes
            signature: Stripe-Signature header value
            secret: Optional webhook secret (uses config if not provided)

        Returns:
            VerifiedEvent: Verified processor event

        Raises:
            SignatureInvalid: If signature verification fails
            MalformedEvent: If the verified body is not an event object
        """
        webhook_secret = secret or self.settings.stripe_webhook_secret

        if not signature:
            logger.error("webhook_signature_missing")
            raise SignatureInvalid("No Stripe-Signature header value was provided.")

        try:
            body = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            logger.error("webhook_body_not_utf8", error=str(e))
            raise SignatureInvalid(f"Invalid webhook payload encoding: {str(e)}")

        try:
            stripe.WebhookSignature.verify_header(
                body,
                signature,
                webhook_secret,
                tolerance=self.settings.stripe_webhook_tolerance,
            )
        except stripe.SignatureVerificationError as e:
            logger.error("webhook_signature_verification_failed", error=str(e))
            raise SignatureInvalid(str(e))

        try:
            data = json.loads(body)
        except ValueError as e:
            logger.error("webhook_body_not_json", error=str(e))
            raise MalformedEvent(f"Invalid payload: {str(e)}")

        if not isinstance(data, dict) or not isinstance(data.get("type"), str):
            raise MalformedEvent("Invalid payload: not an event object")

        event_data = data.get("data")
        payload_object = event_data.get("object") if isinstance(event_data, dict) else None

        event = VerifiedEvent(
            id=str(data.get("id") or ""),
            type=data["type"],
            kind=EventKind.from_event_type(data["type"]),
            payload=payload_object if isinstance(payload_object, dict) else {},
        )

        logger.info(
            "webhook_signature_verified",
            event_id=event.id,
            event_type=event.type,
        )

        return event


class EventDeduplicator:
    """
    Remembers processed event ids in Redis.

    A claim is atomic (SET NX), so two concurrent deliveries of the same
    event cannot both win. When Redis is unavailable the claim succeeds:
    losing a confirmation is worse than sending it twice.
    """

    def __init__(
        self,
        redis_client: Optional[aioredis.Redis] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.redis_client = redis_client
        self._owns_client = redis_client is None

    def _ensure_redis(self) -> aioredis.Redis:
        """Ensure Redis client is initialized."""
        if self.redis_client is None:
            self.redis_client = aioredis.from_url(
                self.settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
        return self.redis_client

    @staticmethod
    def _key(event_id: str) -> str:
        return f"webhook:processed:{event_id}"

    async def claim(self, event_id: str) -> bool:
        """
        Claim an event for processing.

        Args:
            event_id: Stripe event ID

        Returns:
            bool: True if this delivery should be processed
        """
        if not event_id:
            return True

        try:
            redis = self._ensure_redis()
            claimed = await redis.set(
                self._key(event_id), "1", nx=True, ex=self.settings.webhook_dedup_ttl
            )
        except Exception as e:
            logger.warning("webhook_dedup_check_error", error=str(e), event_id=event_id)
            return True

        if not claimed:
            logger.info("webhook_event_already_processed", event_id=event_id)
        return bool(claimed)

    async def ping(self) -> bool:
        redis = self._ensure_redis()
        return bool(await redis.ping())

    async def close(self) -> None:
        """Close Redis connection."""
        if self.redis_client is not None and self._owns_client:
            await self.redis_client.aclose()
            self.redis_client = None
