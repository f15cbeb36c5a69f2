"""
API routes for checkout and payment confirmation.
"""
import time
from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from integrations.stripe_client import StripeError
from integrations.webhook_handler import MalformedEvent, SignatureInvalid
from monitoring.metrics import metrics

from .schemas import (
    ConfigResponse,
    CreateCheckoutSessionRequest,
    CreateCheckoutSessionResponse,
    ErrorResponse,
    HealthCheckResponse,
    WebhookResponse,
)
from .services import Services, get_services

logger = structlog.get_logger(__name__)

# Create routers
checkout_router = APIRouter(tags=["checkout"])
webhook_router = APIRouter(tags=["webhooks"])
monitoring_router = APIRouter(tags=["monitoring"])


@webhook_router.post(
    "/webhook",
    response_model=WebhookResponse,
    summary="Stripe webhook endpoint",
    description="Verify a Stripe delivery and trigger the payment confirmation side effects",
)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None, alias="Stripe-Signature"),
    services: Services = Depends(get_services),
) -> Any:
    """
    Handle Stripe webhook events.

    The body is read raw; it must not be parsed before the signature is checked.
    """
    start_time = time.time()
    body = await request.body()

    try:
        result = await services.pipeline.handle(body, stripe_signature)
    except SignatureInvalid as e:
        metrics.record_signature_failure()
        logger.warning("api_webhook_rejected", reason="signature", error=str(e))
        return PlainTextResponse(
            f"Webhook Error: {str(e)}", status_code=status.HTTP_400_BAD_REQUEST
        )
    except MalformedEvent as e:
        metrics.record_malformed_event()
        logger.warning("api_webhook_rejected", reason="malformed", error=str(e))
        return PlainTextResponse(
            f"Webhook Error: {str(e)}", status_code=status.HTTP_400_BAD_REQUEST
        )

    duration = time.time() - start_time
    metrics.record_webhook_event(result.event_type, result.status.value, duration)

    logger.info(
        "api_webhook_acknowledged",
        event_id=result.event_id,
        event_type=result.event_type,
        status=result.status.value,
        duration_seconds=duration,
    )

    return {"received": True, "status": result.status.value, "event_id": result.event_id}


@checkout_router.get(
    "/config",
    response_model=ConfigResponse,
    response_model_by_alias=True,
    summary="Publishable configuration",
)
async def get_config(services: Services = Depends(get_services)) -> Dict[str, Any]:
    """Return the Stripe publishable key for the storefront."""
    return {"publishableKey": services.settings.stripe_publishable_key}


@checkout_router.post(
    "/create-checkout-session",
    response_model=CreateCheckoutSessionResponse,
    responses={500: {"model": ErrorResponse}},
    summary="Create a checkout session",
    description="Create a Stripe-hosted checkout session for a cart",
)
async def create_checkout_session(
    request: CreateCheckoutSessionRequest,
    services: Services = Depends(get_services),
) -> Any:
    """Create a hosted checkout session; the cart travels in session metadata."""
    logger.info(
        "api_create_checkout_session_request",
        item_count=len(request.items),
        event_name=request.event_name,
        event_id=request.event_id,
    )

    try:
        session = await services.stripe_client.create_checkout_session(
            [item.to_line_item() for item in request.items],
            event_name=request.event_name,
            event_id=request.event_id,
        )
    except StripeError as e:
        logger.error("api_create_checkout_session_error", error=str(e))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": str(e)}
        )

    return {"id": session.id}


@checkout_router.get(
    "/checkout-session",
    responses={500: {"model": ErrorResponse}},
    summary="Retrieve a checkout session",
    description="Return the processor's session object verbatim",
)
async def get_checkout_session(
    session_id: str = Query(..., alias="sessionId"),
    services: Services = Depends(get_services),
) -> Any:
    """Retrieve session details, e.g. for the success page."""
    try:
        return await services.stripe_client.retrieve_checkout_session(session_id)
    except StripeError as e:
        logger.error("api_get_checkout_session_error", session_id=session_id, error=str(e))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": str(e)}
        )


@monitoring_router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Readiness check",
    description="Check Stripe and, when enabled, Redis",
)
async def readiness(services: Services = Depends(get_services)) -> Dict[str, Any]:
    """Readiness check endpoint."""
    result = await services.health_check.readiness()
    if result["status"] != "healthy":
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=result)
    return result


@monitoring_router.get(
    "/health/live",
    response_model=HealthCheckResponse,
    summary="Liveness check",
)
async def liveness(services: Services = Depends(get_services)) -> Dict[str, Any]:
    """Liveness check endpoint."""
    return await services.health_check.liveness()


@monitoring_router.get(
    "/metrics",
    summary="Prometheus metrics",
    include_in_schema=False,
)
async def prometheus_metrics() -> Response:
    """Expose Prometheus metrics."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
