from __future__ import annotations

from dataclasses import dataclass

from .models import InvoiceStatus

# Legal moves of the issuance state machine. ISSUED has none.
TRANSITIONS: dict[InvoiceStatus, frozenset[InvoiceStatus]] = {
    InvoiceStatus.DRAFT: frozenset({InvoiceStatus.SUBMITTING}),
    InvoiceStatus.SUBMITTING: frozenset({InvoiceStatus.ISSUED, InvoiceStatus.FAILED}),
    InvoiceStatus.FAILED: frozenset({InvoiceStatus.SUBMITTING}),
    InvoiceStatus.ISSUED: frozenset(),
}


@dataclass(frozen=True)
class InvoiceActionAvailability:
    can_submit: bool
    can_retry: bool
    can_cancel: bool


def can_transition(current: InvoiceStatus | str, target: InvoiceStatus | str) -> bool:
    return InvoiceStatus(target) in TRANSITIONS[InvoiceStatus(current)]


def invoice_action_availability(status: InvoiceStatus | str | None) -> InvoiceActionAvailability:
    if not status:
        return InvoiceActionAvailability(False, False, False)

    status_value = str(getattr(status, "value", status)).upper()
    return InvoiceActionAvailability(
        can_submit=status_value == "DRAFT",
        can_retry=status_value == "FAILED",
        can_cancel=status_value in {"DRAFT", "FAILED"},
    )
