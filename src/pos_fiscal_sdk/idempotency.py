from __future__ import annotations

import uuid
from dataclasses import dataclass

IDEMPOTENCY_HEADER = "Idempotency-Key"


@dataclass(frozen=True)
class IdempotencyKeys:
    transaction_id: str
    idempotency_key: str


def new_invoice_id() -> str:
    return str(uuid.uuid4())


def invoice_idempotency_keys(invoice_id: str) -> IdempotencyKeys:
    """Keys for a fiscal submission; identical for every attempt of the same invoice."""
    if not invoice_id:
        raise ValueError("invoice_id is required")
    return IdempotencyKeys(transaction_id=invoice_id, idempotency_key=f"invoice-{invoice_id}")


def idempotency_headers(keys: IdempotencyKeys) -> dict[str, str]:
    return {IDEMPOTENCY_HEADER: keys.idempotency_key}
