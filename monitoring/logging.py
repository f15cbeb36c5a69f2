"""
Structured logging for the checkout notifier.

Every log line is a single JSON object on stdout. Request and event
identifiers come from structlog contextvars (bound by the request
middleware and the webhook pipeline); the service identity is stamped on
by `ServiceContext`. Customer contact details are masked before rendering.
"""
import logging
import sys
from typing import Any, Dict, Optional

import structlog
from pythonjsonlogger import jsonlogger

from config import get_settings
from config.settings import Settings

REDACTED_FIELDS = ("customer_email", "customer_phone", "recipient")

QUIET_LOGGERS = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "stripe": logging.INFO,
    # request_started/request_completed already cover access logging
    "uvicorn.access": logging.WARNING,
}


def mask_email(address: str) -> str:
    """`ada@example.org` -> `a***@example.org`."""
    local, sep, domain = address.partition("@")
    if not sep:
        return "***"
    return f"{local[:1]}***@{domain}"


def redact_customer_fields(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    for key in REDACTED_FIELDS:
        value = event_dict.get(key)
        if not isinstance(value, str) or not value:
            continue
        event_dict[key] = mask_email(value) if "@" in value else "***"
    return event_dict


class ServiceContext:
    """Processor adding the service name, environment and Stripe mode."""

    def __init__(self, settings: Settings) -> None:
        self._context = {
            "app_name": settings.app_name,
            "app_env": settings.app_env,
            "stripe_mode": "test" if settings.is_test_mode else "live",
        }

    def __call__(
        self, logger: Any, method_name: str, event_dict: Dict[str, Any]
    ) -> Dict[str, Any]:
        for key, value in self._context.items():
            event_dict.setdefault(key, value)
        return event_dict


def setup_logging(settings: Optional[Settings] = None) -> None:
    """Configure structlog and the root stdlib logger for JSON output."""
    settings = settings or get_settings()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            ServiceContext(settings),
            redact_customer_fields,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Library records (uvicorn, httpx) share the JSON handler.
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        jsonlogger.JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"asctime": "timestamp", "levelname": "level", "name": "logger"},
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers[:] = [handler]
    root_logger.setLevel(settings.log_level)

    for name, level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)

    structlog.get_logger(__name__).info(
        "logging_configured",
        log_level=settings.log_level,
        email_sink=settings.email_sink_enabled,
        ledger_sink=settings.ledger_sink_enabled,
    )
