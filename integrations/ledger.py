"""
Airtable ledger sink.

Appends one row per confirmed payment to the `Payments` table through the
Airtable REST API. Only record creation is used; rows are never updated or
deleted.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx
import structlog

from config import get_settings
from config.settings import Settings
from core.models import PaymentRecord
from core.sinks import NotificationSink, SinkError

logger = structlog.get_logger(__name__)


class LedgerError(SinkError):
    """Raised when a ledger row could not be appended."""

    pass


class AirtableLedger(NotificationSink):
    """Append-only ledger backed by an Airtable table."""

    name = "ledger"

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or get_settings()
        self._client = client
        self._owns_client = client is None

    @property
    def table_url(self) -> str:
        root = self.settings.airtable_api_url.rstrip("/")
        return f"{root}/{self.settings.airtable_base_id}/{self.settings.airtable_table_name}"

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.settings.airtable_timeout)
        return self._client

    def build_fields(self, record: PaymentRecord) -> Dict[str, Any]:
        """
        Map a record onto the ledger's named columns.

        Args:
            record: Normalized payment

        Returns:
            Dict[str, Any]: Column name to cell value
        """
        fields: Dict[str, Any] = {
            "Timestamp": datetime.now(timezone.utc).isoformat(timespec="seconds"),
            "Customer Name": record.customer_name,
            "Customer Email": record.customer_email,
        }
        if self.settings.collect_phone:
            fields["Phone Number"] = record.customer_phone
        fields.update(
            {
                "Event Name": record.event_name,
                "Amount Paid": record.amount_paid,
                "Items Purchased": record.items_summary(),
                "Currency": record.currency,
            }
        )
        return fields

    async def deliver(self, record: PaymentRecord) -> None:
        """
        Append one row for a payment.

        Raises:
            LedgerError: On transport failure or a non-2xx response
        """
        body = {"records": [{"fields": self.build_fields(record)}], "typecast": False}
        headers = {"Authorization": f"Bearer {self.settings.airtable_api_key}"}

        try:
            response = await self._get_client().post(self.table_url, json=body, headers=headers)
        except httpx.HTTPError as e:
            raise LedgerError(f"Ledger request failed: {str(e)}", original_error=e)

        if response.is_error:
            raise LedgerError(
                f"Ledger rejected row with HTTP {response.status_code}: {response.text}"
            )

        row_ids = [row.get("id") for row in response.json().get("records", [])]
        logger.info("ledger_row_appended", event_id=record.event_id, row_ids=row_ids)

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
