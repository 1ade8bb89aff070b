from __future__ import annotations

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from .exceptions import ValidationError
from .kv_store import JsonFileKeyValueStore, KeyValueStore
from .models import SalesAggregate, SalesEvent, quantize_money
from .telemetry import TelemetryLogger

logger = logging.getLogger(__name__)

LEDGER_KEY = "sales_ledger"


def _as_date(value: date | str, field_name: str) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError as exc:
        raise ValidationError(
            code="VALIDATION_ERROR",
            message=f"{field_name} must be an ISO date (YYYY-MM-DD)",
            details=[{"field": field_name, "reason": "invalid date"}],
        ) from exc


def _summarize(events: list[SalesEvent]) -> SalesAggregate:
    total = sum((event.amount for event in events), Decimal("0.00"))
    return SalesAggregate(total_amount=quantize_money(total), total_transactions=len(events))


@dataclass
class SalesLedger:
    """Append-only record of issued invoices, one event per invoice id."""

    store: KeyValueStore = field(default_factory=JsonFileKeyValueStore)
    key: str = LEDGER_KEY
    telemetry: TelemetryLogger | None = None
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def record(self, invoice_id: str, employee_id: str, amount: Decimal | int | str, date: date | str) -> bool:
        """Append the sale; False if the invoice was already recorded."""
        event = SalesEvent(
            invoice_id=invoice_id,
            employee_id=employee_id,
            date=_as_date(date, "date"),
            amount=quantize_money(amount),
        )
        with self._lock:
            data = self._read()
            if invoice_id in data:
                logger.debug("sales_event_duplicate", extra={"invoice_id": invoice_id})
                return False
            data[invoice_id] = event.model_dump(mode="json")
            self.store.set(self.key, data)
        logger.info("sales_event_recorded", extra={"invoice_id": invoice_id, "employee_id": employee_id})
        if self.telemetry is not None:
            self.telemetry.record(
                category="ledger",
                name="ledger.record",
                action="record",
                success=True,
                context={"invoice_id": invoice_id},
            )
        return True

    def events(self, employee_id: str | None = None) -> list[SalesEvent]:
        events = [SalesEvent.model_validate(raw) for raw in self._read().values()]
        if employee_id is not None:
            events = [event for event in events if event.employee_id == employee_id]
        return sorted(events, key=lambda event: (event.date, event.invoice_id))

    def aggregate(self, employee_id: str, start: date | str, end: date | str) -> SalesAggregate:
        """Totals for one employee over an inclusive date range."""
        first = _as_date(start, "start")
        last = _as_date(end, "end")
        if first > last:
            raise ValidationError(
                code="VALIDATION_ERROR",
                message="start must not be after end",
                details=[{"field": "start", "reason": "after end"}],
            )
        return _summarize([event for event in self.events(employee_id) if first <= event.date <= last])

    def daily_summary(self, day: date | str) -> dict[str, SalesAggregate]:
        target = _as_date(day, "day")
        return self._by_employee(event for event in self.events() if event.date == target)

    def monthly_summary(self, year: int, month: int) -> dict[str, SalesAggregate]:
        if not 1 <= month <= 12:
            raise ValidationError(
                code="VALIDATION_ERROR",
                message="month must be between 1 and 12",
                details=[{"field": "month", "reason": "out of range"}],
            )
        return self._by_employee(
            event for event in self.events() if event.date.year == year and event.date.month == month
        )

    def _by_employee(self, events) -> dict[str, SalesAggregate]:
        grouped: dict[str, list[SalesEvent]] = defaultdict(list)
        for event in events:
            grouped[event.employee_id].append(event)
        return {employee_id: _summarize(items) for employee_id, items in sorted(grouped.items())}

    def _read(self) -> dict[str, dict]:
        data = self.store.get(self.key)
        return data if isinstance(data, dict) else {}
