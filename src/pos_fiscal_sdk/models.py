from __future__ import annotations

import datetime as dt
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, computed_field, field_validator

from .idempotency import new_invoice_id

CENT = Decimal("0.01")


def quantize_money(value: Decimal | int | str) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: object) -> object:
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _parse_compact_date(value: object) -> object:
    # The fiscal gateway passes dates through in the authority's YYYYMMDD form.
    if isinstance(value, str) and len(value) == 8 and value.isdigit():
        return date(int(value[:4]), int(value[4:6]), int(value[6:]))
    return value


class Role(str, Enum):
    ADMIN = "ADMIN"
    EMPLOYEE = "EMPLOYEE"

    @classmethod
    def parse(cls, value: "Role | str") -> "Role":
        if isinstance(value, cls):
            return value
        normalized = str(value or "").strip().upper()
        try:
            return cls(normalized)
        except ValueError as exc:
            raise ValueError(f"Unknown role: {value!r}") from exc


class User(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    email: str | None = None
    role: Role

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_text(cls, value: object) -> object:
        return str(value) if isinstance(value, int) else value

    @field_validator("role", mode="before")
    @classmethod
    def _parse_role(cls, value: object) -> Role:
        return Role.parse(value)  # type: ignore[arg-type]


class AuthResult(BaseModel):
    user: User
    token: str
    expires_at: datetime | None = Field(default=None, validation_alias=AliasChoices("expires_at", "expiresAt"))

    @field_validator("expires_at")
    @classmethod
    def _utc_expiry(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)  # type: ignore[return-value]


class Session(BaseModel):
    model_config = ConfigDict(frozen=True)

    token: str = Field(repr=False)
    user: User
    issued_at: datetime = Field(default_factory=utc_now)
    expires_at: datetime | None = None
    # False for a session restored from disk until the backend attests the token.
    verified: bool = True

    @field_validator("issued_at", "expires_at")
    @classmethod
    def _utc(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)  # type: ignore[return-value]

    @property
    def role(self) -> Role:
        return self.user.role

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or utc_now())


class StoredCredential(BaseModel):
    access_token: str
    user: User
    issued_at: datetime
    expires_at: Optional[datetime] = None
    env_name: str | None = None

    @field_validator("issued_at", "expires_at")
    @classmethod
    def _utc(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)  # type: ignore[return-value]


class EmployeeIdentity(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    name: str
    pin: str | None = Field(default=None, repr=False, exclude=True)
    role: Role = Role.EMPLOYEE
    is_active: bool = Field(default=True, validation_alias=AliasChoices("is_active", "isActive", "active"))

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_text(cls, value: object) -> object:
        return str(value) if isinstance(value, int) else value

    @field_validator("pin", mode="before")
    @classmethod
    def _pin_as_text(cls, value: object) -> object:
        return str(value) if isinstance(value, int) else value

    @field_validator("role", mode="before")
    @classmethod
    def _parse_role(cls, value: object) -> Role:
        return Role.parse(value)  # type: ignore[arg-type]


class VoucherType(str, Enum):
    FACTURA_A = "FACTURA_A"
    FACTURA_B = "FACTURA_B"
    FACTURA_C = "FACTURA_C"

    @property
    def afip_code(self) -> int:
        return {"FACTURA_A": 1, "FACTURA_B": 6, "FACTURA_C": 11}[self.value]


class ReceiverDocType(int, Enum):
    CUIT = 80
    DNI = 96
    CONSUMIDOR_FINAL = 99


class InvoiceStatus(str, Enum):
    DRAFT = "DRAFT"
    SUBMITTING = "SUBMITTING"
    ISSUED = "ISSUED"
    FAILED = "FAILED"


class LineItem(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    product_id: str = Field(validation_alias=AliasChoices("product_id", "productId"))
    quantity: Decimal = Field(gt=0)
    unit_price: Decimal = Field(ge=0, validation_alias=AliasChoices("unit_price", "unitPrice"))
    description: str | None = None

    @property
    def line_total(self) -> Decimal:
        return quantize_money(self.quantity * self.unit_price)


class FiscalResponse(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    fiscal_number: int = Field(validation_alias=AliasChoices("fiscal_number", "fiscalNumber", "nroCmp"))
    cae: str
    cae_expires_on: date | None = Field(
        default=None, validation_alias=AliasChoices("cae_expires_on", "caeExpiresOn", "caeFchVto")
    )
    issued_on: date = Field(validation_alias=AliasChoices("issued_on", "issuedOn", "cbteFch"))
    issuer_tax_id: str = Field(validation_alias=AliasChoices("issuer_tax_id", "issuerTaxId", "cuit"))
    point_of_sale: int = Field(validation_alias=AliasChoices("point_of_sale", "pointOfSale", "ptoVta"))
    voucher_type: int = Field(validation_alias=AliasChoices("voucher_type", "voucherType", "cbteTipo"))
    amount: Decimal
    currency: str = "PES"
    exchange_rate: Decimal = Field(default=Decimal("1"), validation_alias=AliasChoices("exchange_rate", "exchangeRate"))
    receiver_doc_type: int = Field(
        default=ReceiverDocType.CONSUMIDOR_FINAL.value,
        validation_alias=AliasChoices("receiver_doc_type", "receiverDocType", "docTipo"),
    )
    receiver_doc_number: str = Field(
        default="0", validation_alias=AliasChoices("receiver_doc_number", "receiverDocNumber", "docNro")
    )
    qr_payload: str | None = None

    @field_validator("cae_expires_on", "issued_on", mode="before")
    @classmethod
    def _compact_dates(cls, value: object) -> object:
        return _parse_compact_date(value)

    @field_validator("issuer_tax_id", "receiver_doc_number", mode="before")
    @classmethod
    def _digits_as_text(cls, value: object) -> object:
        if isinstance(value, int):
            return str(value)
        if isinstance(value, str):
            return value.replace("-", "").strip()
        return value


class FailureInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: str
    code: str
    message: str
    trace_id: str | None = None
    retryable: bool = True


class Invoice(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_invoice_id)
    items: List[LineItem] = Field(min_length=1)
    status: InvoiceStatus = InvoiceStatus.DRAFT
    fiscal_response: FiscalResponse | None = None
    attempt_count: int = 0
    employee_id: str | None = None
    voucher_type: VoucherType = VoucherType.FACTURA_B
    point_of_sale: int = 1
    receiver_doc_type: ReceiverDocType = ReceiverDocType.CONSUMIDOR_FINAL
    receiver_doc_number: str = "0"
    created_at: datetime = Field(default_factory=utc_now)
    last_failure: FailureInfo | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total(self) -> Decimal:
        return sum((item.line_total for item in self.items), Decimal("0.00"))

    @property
    def is_terminal(self) -> bool:
        return self.status == InvoiceStatus.ISSUED


class SalesEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    invoice_id: str
    employee_id: str
    date: dt.date
    amount: Decimal


class SalesAggregate(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_amount: Decimal = Decimal("0.00")
    total_transactions: int = 0
