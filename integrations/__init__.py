"""External integrations: Stripe, the mail relay and the Airtable ledger."""
from .ledger import AirtableLedger, LedgerError
from .mailer import MailerError, SMTPMailer
from .stripe_client import StripeClient, StripeError
from .webhook_handler import EventDeduplicator, SignatureInvalid, WebhookError, WebhookHandler

__all__ = [
    "AirtableLedger",
    "EventDeduplicator",
    "LedgerError",
    "MailerError",
    "SMTPMailer",
    "SignatureInvalid",
    "StripeClient",
    "StripeError",
    "WebhookError",
    "WebhookHandler",
]
