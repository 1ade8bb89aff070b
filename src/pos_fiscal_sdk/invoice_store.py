from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field

from pydantic import ValidationError as PydanticValidationError

from .kv_store import JsonFileKeyValueStore, KeyValueStore
from .models import Invoice, InvoiceStatus

logger = logging.getLogger(__name__)

INVOICES_KEY = "invoices"


@dataclass
class InvoiceStore:
    """Write-ahead record of invoices the coordinator is driving.

    Entries survive restarts so an invoice left in SUBMITTING can be
    reconciled against the fiscal service instead of being resubmitted
    blindly.

    Submission claims live in memory only. A SUBMITTING entry without a
    claim was left behind by an earlier process.
    """

    store: KeyValueStore = field(default_factory=JsonFileKeyValueStore)
    key: str = INVOICES_KEY
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _in_flight: set[str] = field(default_factory=set, init=False, repr=False)

    def _read(self) -> dict[str, dict]:
        data = self.store.get(self.key)
        return data if isinstance(data, dict) else {}

    def _parse(self, invoice_id: str, raw: object) -> Invoice | None:
        try:
            return Invoice.model_validate(raw)
        except PydanticValidationError:
            logger.warning("invoice_store_unreadable_entry", extra={"invoice_id": invoice_id})
            return None

    def save(self, invoice: Invoice) -> None:
        with self._lock:
            data = self._read()
            data[invoice.id] = invoice.model_dump(mode="json")
            self.store.set(self.key, data)

    def get(self, invoice_id: str) -> Invoice | None:
        raw = self._read().get(invoice_id)
        if raw is None:
            return None
        return self._parse(invoice_id, raw)

    def list_by_status(self, *statuses: InvoiceStatus) -> list[Invoice]:
        invoices = []
        for invoice_id, raw in sorted(self._read().items()):
            invoice = self._parse(invoice_id, raw)
            if invoice is not None and (not statuses or invoice.status in statuses):
                invoices.append(invoice)
        return sorted(invoices, key=lambda item: item.created_at)

    def list_pending(self) -> list[Invoice]:
        return self.list_by_status(InvoiceStatus.DRAFT, InvoiceStatus.SUBMITTING, InvoiceStatus.FAILED)

    def remove(self, invoice_id: str) -> None:
        with self._lock:
            data = self._read()
            if data.pop(invoice_id, None) is not None:
                self.store.set(self.key, data)

    def claim(self, invoice_id: str) -> bool:
        """Mark a submission of this invoice as running in this process; False if one already is."""
        with self._lock:
            if invoice_id in self._in_flight:
                return False
            self._in_flight.add(invoice_id)
            return True

    def release(self, invoice_id: str) -> None:
        with self._lock:
            self._in_flight.discard(invoice_id)

    def is_claimed(self, invoice_id: str) -> bool:
        with self._lock:
            return invoice_id in self._in_flight
