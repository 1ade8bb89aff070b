from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from typing import Any, Mapping, Sequence, cast

from pydantic import ValidationError as PydanticValidationError

from .exceptions import ValidationError
from .models import LineItem, ReceiverDocType, Role, VoucherType

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass(frozen=True)
class ValidationIssue:
    row_index: int | None
    field: str
    reason: str


def _format_message(issues: Sequence[ValidationIssue]) -> str:
    if not issues:
        return "Validation failed"
    issue = issues[0]
    location = f"row {issue.row_index}" if issue.row_index is not None else "payload"
    return f"{location} {issue.field}: {issue.reason}"


def raise_if_issues(issues: Sequence[ValidationIssue]) -> None:
    if not issues:
        return
    raise ValidationError(
        code="VALIDATION_ERROR",
        message=_format_message(issues),
        details=[asdict(issue) for issue in issues],
    )


def validate_credentials(email: str, password: str) -> str:
    issues: list[ValidationIssue] = []
    normalized = (email or "").strip().lower()
    if not normalized:
        issues.append(ValidationIssue(None, "email", "required"))
    if not password:
        issues.append(ValidationIssue(None, "password", "required"))
    raise_if_issues(issues)
    return normalized


def validate_registration(
    *,
    name: str,
    email: str,
    password: str,
    confirm_password: str | None,
    role: Role | str,
    min_password_length: int,
) -> Role:
    issues: list[ValidationIssue] = []
    if not (name or "").strip():
        issues.append(ValidationIssue(None, "name", "required"))
    if not _EMAIL_RE.match((email or "").strip()):
        issues.append(ValidationIssue(None, "email", "must be a valid email address"))
    if len(password or "") < min_password_length:
        issues.append(ValidationIssue(None, "password", f"must be at least {min_password_length} characters"))
    if confirm_password is not None and confirm_password != password:
        issues.append(ValidationIssue(None, "confirm_password", "does not match password"))
    parsed_role: Role | None = None
    try:
        parsed_role = Role.parse(role)
    except ValueError:
        issues.append(ValidationIssue(None, "role", "must be ADMIN or EMPLOYEE"))
    raise_if_issues(issues)
    return cast(Role, parsed_role)


def validate_pin(pin: str | int | None, length: int) -> str:
    value = str(pin).strip() if pin is not None else ""
    if not value.isdigit() or len(value) != length:
        raise_if_issues([ValidationIssue(None, "pin", f"must be {length} digits")])
    return value


def validate_invoice_lines(lines: Sequence[LineItem | Mapping[str, Any]]) -> list[LineItem]:
    if not lines:
        raise_if_issues([ValidationIssue(None, "items", "at least one line is required")])
    normalized: list[LineItem] = []
    issues: list[ValidationIssue] = []
    for index, line in enumerate(lines):
        if isinstance(line, LineItem):
            normalized.append(line)
            continue
        try:
            normalized.append(LineItem.model_validate(line))
        except PydanticValidationError as exc:
            for error in exc.errors():
                field = ".".join(str(part) for part in error.get("loc", ())) or "line"
                issues.append(ValidationIssue(index, field, error.get("msg", "invalid")))
    raise_if_issues(issues)
    return normalized


def validate_receiver(
    voucher_type: VoucherType | str,
    doc_type: ReceiverDocType | int,
    doc_number: str | int | None,
) -> tuple[VoucherType, ReceiverDocType, str]:
    issues: list[ValidationIssue] = []
    voucher: VoucherType | None = None
    receiver: ReceiverDocType | None = None
    try:
        voucher = VoucherType(str(getattr(voucher_type, "value", voucher_type)).upper())
    except ValueError:
        issues.append(ValidationIssue(None, "voucher_type", "must be FACTURA_A, FACTURA_B or FACTURA_C"))
    try:
        receiver = ReceiverDocType(int(doc_type))
    except (TypeError, ValueError):
        issues.append(ValidationIssue(None, "receiver_doc_type", "must be 80, 96 or 99"))
    number = str(doc_number or "0").replace("-", "").strip()
    if not number.isdigit():
        issues.append(ValidationIssue(None, "receiver_doc_number", "must be numeric"))
    if voucher == VoucherType.FACTURA_A and receiver is not None and receiver != ReceiverDocType.CUIT:
        issues.append(ValidationIssue(None, "receiver_doc_type", "FACTURA_A requires a CUIT receiver"))
    if receiver == ReceiverDocType.CUIT and len(number) != 11:
        issues.append(ValidationIssue(None, "receiver_doc_number", "CUIT must have 11 digits"))
    raise_if_issues(issues)
    return cast(VoucherType, voucher), cast(ReceiverDocType, receiver), number
