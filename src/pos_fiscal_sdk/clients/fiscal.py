from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..exceptions import InvalidResponseError, NotFoundError, RejectedByAuthority
from ..idempotency import idempotency_headers, invoice_idempotency_keys
from ..models import FiscalResponse, Invoice
from .base import BaseClient, parse_model, unwrap

# Authority verdicts: A = approved, P = approved with observations, R = rejected.
_REJECTED = "R"

_CANONICAL_KEYS = {
    "fiscalNumber": "fiscal_number",
    "nroCmp": "fiscal_number",
    "caeExpiresOn": "cae_expires_on",
    "caeFchVto": "cae_expires_on",
    "issuedOn": "issued_on",
    "cbteFch": "issued_on",
    "issuerTaxId": "issuer_tax_id",
    "cuit": "issuer_tax_id",
    "pointOfSale": "point_of_sale",
    "ptoVta": "point_of_sale",
    "voucherType": "voucher_type",
    "cbteTipo": "voucher_type",
    "exchangeRate": "exchange_rate",
    "receiverDocType": "receiver_doc_type",
    "docTipo": "receiver_doc_type",
    "receiverDocNumber": "receiver_doc_number",
    "docNro": "receiver_doc_number",
}


def _canonical(body: dict[str, Any]) -> dict[str, Any]:
    return {_CANONICAL_KEYS.get(key, key): value for key, value in body.items() if value is not None}


@dataclass
class FiscalClient(BaseClient):
    """Fiscal gateway of the retail backend; the authority protocol stays behind it."""

    issuer_tax_id: str | None = None
    timeout_seconds: float | None = None

    def submit_invoice(self, invoice: Invoice) -> FiscalResponse:
        keys = invoice_idempotency_keys(invoice.id)
        data = self._request(
            "POST",
            "/fiscal/invoices",
            json_body=self._payload(invoice),
            headers=idempotency_headers(keys),
            read_timeout_seconds=self.timeout_seconds,
            module="fiscal",
            operation="submit_invoice",
        )
        return self._parse(unwrap(data), invoice)

    def find_invoice(self, invoice: Invoice) -> FiscalResponse | None:
        """Look up an earlier submission by invoice identity.

        Returns None when the gateway has no record of it and raises
        ``RejectedByAuthority`` when the recorded verdict is a rejection.
        """
        try:
            data = self._request(
                "GET",
                f"/fiscal/invoices/{invoice.id}",
                read_timeout_seconds=self.timeout_seconds,
                module="fiscal",
                operation="find_invoice",
            )
        except NotFoundError:
            return None
        body = unwrap(data)
        if not isinstance(body, dict):
            return None
        if str(body.get("result") or "").upper() == _REJECTED:
            raise _rejection(body)
        if not body.get("cae"):
            return None
        return self._to_response(body, invoice)

    def _payload(self, invoice: Invoice) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "invoice_id": invoice.id,
            "attempt": invoice.attempt_count,
            "employee_id": invoice.employee_id,
            "voucher_type": invoice.voucher_type.afip_code,
            "point_of_sale": invoice.point_of_sale,
            "receiver_doc_type": invoice.receiver_doc_type.value,
            "receiver_doc_number": invoice.receiver_doc_number,
            "total": format(invoice.total, "f"),
            "items": [
                {
                    "product_id": item.product_id,
                    "quantity": format(item.quantity, "f"),
                    "unit_price": format(item.unit_price, "f"),
                    "line_total": format(item.line_total, "f"),
                }
                for item in invoice.items
            ],
        }
        if self.issuer_tax_id:
            payload["issuer_tax_id"] = self.issuer_tax_id
        return payload

    def _parse(self, body: Any, invoice: Invoice) -> FiscalResponse:
        if not isinstance(body, dict):
            raise InvalidResponseError(
                code="INVALID_RESPONSE",
                message="Expected fiscal submission response to be a JSON object",
                raw_payload=body,
            )
        verdict = str(body.get("result") or "").upper()
        if verdict == _REJECTED or not body.get("cae"):
            raise _rejection(body)
        return self._to_response(body, invoice)

    def _to_response(self, body: dict[str, Any], invoice: Invoice) -> FiscalResponse:
        # Only invoice-derived fields are defaulted; the issue date must come from the authority.
        defaults = {
            "issuer_tax_id": self.issuer_tax_id,
            "point_of_sale": invoice.point_of_sale,
            "voucher_type": invoice.voucher_type.afip_code,
            "amount": format(invoice.total, "f"),
            "receiver_doc_type": invoice.receiver_doc_type.value,
            "receiver_doc_number": invoice.receiver_doc_number,
        }
        merged = {key: value for key, value in defaults.items() if value is not None}
        merged.update(_canonical(body))
        return parse_model(FiscalResponse, merged)


def _rejection(body: dict[str, Any]) -> RejectedByAuthority:
    return RejectedByAuthority(
        code=str(body.get("code") or "REJECTED_BY_AUTHORITY"),
        message=str(body.get("message") or "The fiscal authority rejected the invoice"),
        details={
            "observations": body.get("observations") or [],
            "errors": body.get("errors") or [],
        },
        trace_id=body.get("trace_id"),
        status_code=200,
        raw_payload=body,
    )
