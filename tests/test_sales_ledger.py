from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from pos_fiscal_sdk.exceptions import ValidationError
from pos_fiscal_sdk.kv_store import JsonFileKeyValueStore
from pos_fiscal_sdk.models import SalesAggregate
from pos_fiscal_sdk.sales_ledger import SalesLedger


def test_record_is_idempotent(ledger: SalesLedger) -> None:
    assert ledger.record("inv-1", "7", Decimal("100.00"), date(2026, 10, 18)) is True
    before = ledger.aggregate("7", "2026-10-01", "2026-10-31")

    assert ledger.record("inv-1", "7", Decimal("100.00"), date(2026, 10, 18)) is False

    assert ledger.aggregate("7", "2026-10-01", "2026-10-31") == before
    assert before == SalesAggregate(total_amount=Decimal("100.00"), total_transactions=1)


def test_aggregate_range_is_inclusive(ledger: SalesLedger) -> None:
    ledger.record("inv-1", "7", "10.10", "2026-10-01")
    ledger.record("inv-2", "7", "20.20", "2026-10-31")
    ledger.record("inv-3", "7", "5", "2026-11-01")
    ledger.record("inv-4", "8", "99", "2026-10-15")

    october = ledger.aggregate("7", date(2026, 10, 1), date(2026, 10, 31))

    assert october.total_amount == Decimal("30.30")
    assert october.total_transactions == 2
    assert ledger.aggregate("9", "2026-10-01", "2026-10-31") == SalesAggregate()


def test_aggregate_rejects_inverted_or_bad_range(ledger: SalesLedger) -> None:
    with pytest.raises(ValidationError):
        ledger.aggregate("7", "2026-10-31", "2026-10-01")
    with pytest.raises(ValidationError):
        ledger.aggregate("7", "yesterday", "2026-10-01")


def test_daily_and_monthly_summaries(ledger: SalesLedger) -> None:
    ledger.record("inv-1", "7", "100", "2026-10-18")
    ledger.record("inv-2", "7", "50", "2026-10-02")
    ledger.record("inv-3", "8", "25", "2026-10-18")
    ledger.record("inv-4", "8", "10", "2026-09-30")

    daily = ledger.daily_summary("2026-10-18")
    monthly = ledger.monthly_summary(2026, 10)

    assert daily == {
        "7": SalesAggregate(total_amount=Decimal("100.00"), total_transactions=1),
        "8": SalesAggregate(total_amount=Decimal("25.00"), total_transactions=1),
    }
    assert monthly["7"] == SalesAggregate(total_amount=Decimal("150.00"), total_transactions=2)
    assert monthly["8"].total_transactions == 1
    with pytest.raises(ValidationError):
        ledger.monthly_summary(2026, 13)


def test_events_are_sorted_and_filtered(ledger: SalesLedger) -> None:
    ledger.record("inv-b", "7", "1", "2026-10-18")
    ledger.record("inv-a", "8", "1", "2026-10-17")
    assert [event.invoice_id for event in ledger.events()] == ["inv-a", "inv-b"]
    assert [event.invoice_id for event in ledger.events("7")] == ["inv-b"]


def test_ledger_survives_restart(tmp_path) -> None:
    SalesLedger(store=JsonFileKeyValueStore(directory=tmp_path)).record("inv-1", "7", "12.50", "2026-10-18")

    reopened = SalesLedger(store=JsonFileKeyValueStore(directory=tmp_path))

    assert reopened.record("inv-1", "7", "12.50", "2026-10-18") is False
    assert reopened.aggregate("7", "2026-10-18", "2026-10-18").total_amount == Decimal("12.50")
