from __future__ import annotations

import pytest

from pos_fiscal_sdk.exceptions import ValidationError
from pos_fiscal_sdk.models import ReceiverDocType, Role, VoucherType
from pos_fiscal_sdk.validation import (
    validate_invoice_lines,
    validate_pin,
    validate_receiver,
    validate_registration,
)


def test_validate_receiver_defaults_to_final_consumer() -> None:
    assert validate_receiver("factura_b", 99, None) == (VoucherType.FACTURA_B, ReceiverDocType.CONSUMIDOR_FINAL, "0")


def test_validate_receiver_factura_a_requires_cuit() -> None:
    with pytest.raises(ValidationError) as exc_info:
        validate_receiver(VoucherType.FACTURA_A, ReceiverDocType.DNI, "30111222")
    assert exc_info.value.details[0]["field"] == "receiver_doc_type"
    assert validate_receiver("FACTURA_A", 80, "30-71234567-1") == (
        VoucherType.FACTURA_A,
        ReceiverDocType.CUIT,
        "30712345671",
    )


def test_validate_receiver_collects_every_issue() -> None:
    with pytest.raises(ValidationError) as exc_info:
        validate_receiver("TICKET", 42, "abc")
    fields = [issue["field"] for issue in exc_info.value.details]
    assert fields == ["voucher_type", "receiver_doc_type", "receiver_doc_number"]


def test_validate_invoice_lines_reports_rows() -> None:
    with pytest.raises(ValidationError) as exc_info:
        validate_invoice_lines(
            [
                {"product_id": "p1", "quantity": "1", "unit_price": "10"},
                {"product_id": "p2", "quantity": "1", "unit_price": "-1"},
            ]
        )
    assert exc_info.value.details[0]["row_index"] == 1
    assert exc_info.value.message.startswith("row 1")


def test_validate_registration_role() -> None:
    kwargs = dict(name="Ana", email="a@x.com", password="secret1", confirm_password="secret1", min_password_length=6)
    assert validate_registration(role="employee", **kwargs) is Role.EMPLOYEE
    with pytest.raises(ValidationError):
        validate_registration(role="OWNER", **kwargs)


def test_validate_pin_accepts_ints() -> None:
    assert validate_pin(1234, 4) == "1234"
    with pytest.raises(ValidationError):
        validate_pin("0123 ", 3)
