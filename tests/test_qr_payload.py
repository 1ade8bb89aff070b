from __future__ import annotations

import base64
from decimal import Decimal

import pytest

from pos_fiscal_sdk.exceptions import EncodingError
from pos_fiscal_sdk.qr_payload import QR_BASE_URL, decode, encode, render_svg

from conftest import ISSUER_CUIT, make_fiscal_response

EXPECTED_KEYS = [
    "ver",
    "fecha",
    "cuit",
    "ptoVta",
    "tipoCmp",
    "nroCmp",
    "importe",
    "moneda",
    "ctz",
    "tipoDocRec",
    "nroDocRec",
    "tipoCodAut",
    "codAut",
]


def test_encode_is_byte_identical_for_identical_input() -> None:
    first = encode(make_fiscal_response())
    second = encode(make_fiscal_response())
    assert first == second
    assert first.startswith(QR_BASE_URL)


def test_encode_matches_authority_document() -> None:
    document = decode(encode(make_fiscal_response()))
    assert list(document) == EXPECTED_KEYS
    assert document == {
        "ver": 1,
        "fecha": "2026-10-18",
        "cuit": 20123456789,
        "ptoVta": 1,
        "tipoCmp": 6,
        "nroCmp": 15,
        "importe": 300,
        "moneda": "PES",
        "ctz": 1,
        "tipoDocRec": 99,
        "nroDocRec": 0,
        "tipoCodAut": "E",
        "codAut": 74123456789012,
    }


def test_encode_is_compact_json() -> None:
    raw = base64.b64decode(encode(make_fiscal_response())[len(QR_BASE_URL):])
    assert b" " not in raw
    assert raw.startswith(b'{"ver":1,"fecha":"2026-10-18"')


def test_encode_keeps_cents() -> None:
    document = decode(encode(make_fiscal_response(amount=Decimal("121.50"))))
    assert document["importe"] == 121.5


def test_encode_accepts_gateway_mapping() -> None:
    mapping = {
        "nroCmp": 15,
        "cae": "74123456789012",
        "cbteFch": "20261018",
        "cuit": ISSUER_CUIT,
        "ptoVta": 1,
        "cbteTipo": 6,
        "amount": "300.00",
    }
    assert encode(mapping) == encode(make_fiscal_response())


def test_missing_fields_raise_encoding_error() -> None:
    with pytest.raises(EncodingError) as exc_info:
        encode({"cae": "74123456789012", "amount": "10"})
    assert "fiscal_number" in exc_info.value.details["fields"]


def test_non_numeric_cae_raises_encoding_error() -> None:
    with pytest.raises(EncodingError) as exc_info:
        encode(make_fiscal_response(cae="CAE-PENDING"))
    assert exc_info.value.details == {"fields": ["cae"]}


def test_decode_rejects_foreign_payloads() -> None:
    with pytest.raises(EncodingError):
        decode("https://example.com/?p=abc")
    with pytest.raises(EncodingError):
        decode(QR_BASE_URL + "%%%")


def test_render_svg() -> None:
    payload = encode(make_fiscal_response())
    svg = render_svg(payload)
    assert b"<svg" in svg
    assert render_svg(payload) == svg
