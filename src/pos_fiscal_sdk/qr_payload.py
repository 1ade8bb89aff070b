"""AFIP QR payload for issued electronic invoices.

The authority's format is a JSON document with a fixed field set,
base64 encoded and appended to the verification URL. The encoder is a
pure function of the fiscal response: identical input yields a
byte-identical payload.
"""
from __future__ import annotations

import base64
import binascii
import io
import json
from decimal import Decimal
from typing import Any, Mapping

import qrcode
import qrcode.image.svg
from pydantic import ValidationError as PydanticValidationError

from .exceptions import EncodingError
from .models import FiscalResponse

QR_BASE_URL = "https://www.afip.gob.ar/fe/qr/?p="
QR_FORMAT_VERSION = 1
AUTHORIZATION_KIND = "E"  # CAE

_REQUIRED_FIELDS = (
    "fiscal_number",
    "cae",
    "issued_on",
    "issuer_tax_id",
    "point_of_sale",
    "voucher_type",
    "amount",
)


def _encoding_error(message: str, details: object | None = None) -> EncodingError:
    return EncodingError(code="QR_ENCODING_ERROR", message=message, details=details)


def _coerce(value: FiscalResponse | Mapping[str, Any]) -> FiscalResponse:
    if isinstance(value, FiscalResponse):
        return value
    if not isinstance(value, Mapping):
        raise _encoding_error("Fiscal response must be a mapping or FiscalResponse")
    try:
        return FiscalResponse.model_validate(dict(value))
    except PydanticValidationError as exc:
        fields = sorted({".".join(str(part) for part in error["loc"]) for error in exc.errors()})
        raise _encoding_error("Fiscal response is missing or has invalid fields", {"fields": fields}) from exc


def _number(value: Decimal) -> int | float:
    if value == value.to_integral_value():
        return int(value)
    return float(value.quantize(Decimal("0.01")))


def _digits(name: str, value: str) -> int:
    if not value or not value.isdigit():
        raise _encoding_error(f"{name} must be numeric", {"fields": [name]})
    return int(value)


def qr_document(fiscal_response: FiscalResponse | Mapping[str, Any]) -> dict[str, Any]:
    response = _coerce(fiscal_response)
    missing = [name for name in _REQUIRED_FIELDS if getattr(response, name) in (None, "")]
    if missing:
        raise _encoding_error("Fiscal response is missing required fields", {"fields": missing})
    # Key order is part of the output; do not sort.
    return {
        "ver": QR_FORMAT_VERSION,
        "fecha": response.issued_on.isoformat(),
        "cuit": _digits("issuer_tax_id", response.issuer_tax_id),
        "ptoVta": response.point_of_sale,
        "tipoCmp": response.voucher_type,
        "nroCmp": response.fiscal_number,
        "importe": _number(response.amount),
        "moneda": response.currency,
        "ctz": _number(response.exchange_rate),
        "tipoDocRec": response.receiver_doc_type,
        "nroDocRec": _digits("receiver_doc_number", response.receiver_doc_number),
        "tipoCodAut": AUTHORIZATION_KIND,
        "codAut": _digits("cae", response.cae),
    }


def encode(fiscal_response: FiscalResponse | Mapping[str, Any]) -> str:
    document = qr_document(fiscal_response)
    raw = json.dumps(document, separators=(",", ":"), ensure_ascii=True)
    return QR_BASE_URL + base64.b64encode(raw.encode("ascii")).decode("ascii")


def decode(payload: str) -> dict[str, Any]:
    if not payload or not payload.startswith(QR_BASE_URL):
        raise _encoding_error("Payload is not an AFIP QR URL")
    try:
        raw = base64.b64decode(payload[len(QR_BASE_URL):], validate=True)
        document = json.loads(raw.decode("ascii"))
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        raise _encoding_error("Payload is not valid base64 JSON") from exc
    if not isinstance(document, dict):
        raise _encoding_error("Payload document must be a JSON object")
    return document


def render_svg(payload: str, *, box_size: int = 10, border: int = 4) -> bytes:
    """Scannable SVG rendering of a QR payload."""
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=box_size,
        border=border,
        image_factory=qrcode.image.svg.SvgPathImage,
    )
    qr.add_data(payload)
    qr.make(fit=True)
    buffer = io.BytesIO()
    qr.make_image().save(buffer)
    return buffer.getvalue()
