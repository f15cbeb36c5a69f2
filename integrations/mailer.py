"""
SMTP messaging sink.

Renders the payment confirmation and submits it to the mail relay. A new
SMTP connection is opened for every message and closed once it is sent, so
nothing about one delivery leaks into the next.
"""
import asyncio
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formatdate, make_msgid
from pathlib import Path
from typing import List, Optional

import structlog
from jinja2 import Environment, FileSystemLoader, select_autoescape

from config import get_settings
from config.settings import Settings
from core.models import PaymentRecord
from core.sinks import NotificationSink, SinkError

logger = structlog.get_logger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"
TEMPLATE_NAME = "payment_confirmation.html"

_environment = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html"]),
)


class MailerError(SinkError):
    """Raised when the relay did not accept the confirmation."""

    pass


def render_confirmation(record: PaymentRecord, show_phone: bool = False) -> str:
    """Render the HTML body of a confirmation email."""
    template = _environment.get_template(TEMPLATE_NAME)
    return template.render(record=record, show_phone=show_phone)


class SMTPMailer(NotificationSink):
    """Sends one HTML confirmation per payment through an SMTP relay."""

    name = "email"

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def recipients(self, record: PaymentRecord) -> List[str]:
        """Customer first, operator blind-copied; operator alone without a customer email."""
        operator = self.settings.operator_address
        addresses = [record.customer_email] if record.has_customer_email else []
        if operator and operator not in addresses:
            addresses.append(operator)
        return addresses

    def build_message(self, record: PaymentRecord) -> EmailMessage:
        # Event names come from checkout metadata; header values must stay on one line.
        event_name = " ".join(record.event_name.split())
        msg = EmailMessage()
        msg["From"] = self.settings.sender_address
        msg["To"] = (
            record.customer_email if record.has_customer_email else self.settings.operator_address
        )
        msg["Subject"] = f"New Payment for {event_name}"
        msg["Date"] = formatdate(localtime=True)
        msg["Message-ID"] = make_msgid()
        msg.set_content(
            f"Payment of {record.amount_paid} {record.currency} received for {event_name}."
        )
        msg.add_alternative(
            render_confirmation(record, show_phone=self.settings.collect_phone),
            subtype="html",
        )
        return msg

    def _send(self, msg: EmailMessage, to_addrs: List[str]) -> None:
        s = self.settings
        context = ssl.create_default_context()
        if s.smtp_use_ssl:
            server: smtplib.SMTP = smtplib.SMTP_SSL(
                s.smtp_host, s.smtp_port, timeout=s.smtp_timeout, context=context
            )
        else:
            server = smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=s.smtp_timeout)

        with server:
            if s.smtp_use_tls and not s.smtp_use_ssl:
                server.starttls(context=context)
            if s.smtp_username:
                server.login(s.smtp_username, s.smtp_password)
            server.send_message(msg, to_addrs=to_addrs)

    async def deliver(self, record: PaymentRecord) -> None:
        """
        Send the confirmation for a payment.

        Raises:
            MailerError: If there is nobody to send to or the relay fails
        """
        to_addrs = self.recipients(record)
        if not to_addrs:
            raise MailerError("No recipient address available")

        msg = self.build_message(record)

        try:
            await asyncio.to_thread(self._send, msg, to_addrs)
        except (smtplib.SMTPException, OSError) as e:
            raise MailerError(f"SMTP delivery failed: {str(e)}", original_error=e)

        logger.info(
            "confirmation_email_sent",
            event_id=record.event_id,
            event_name=record.event_name,
            customer_email=record.customer_email,
            recipient_count=len(to_addrs),
        )
