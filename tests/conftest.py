from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

import pytest

from pos_fiscal_sdk.auth_store import AuthStore
from pos_fiscal_sdk.config import ClientConfig
from pos_fiscal_sdk.invoice_coordinator import InvoiceIssuanceCoordinator
from pos_fiscal_sdk.invoice_store import InvoiceStore
from pos_fiscal_sdk.kv_store import MemoryKeyValueStore
from pos_fiscal_sdk.models import AuthResult, FiscalResponse, Invoice, Role, User
from pos_fiscal_sdk.sales_ledger import SalesLedger
from pos_fiscal_sdk.session import SessionManager

BASE_URL = "https://api.example.com"
ISSUER_CUIT = "20123456789"


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    for key in (
        "POS_FISCAL_ENV",
        "POS_FISCAL_API_BASE_URL",
        "POS_FISCAL_API_BASE_URL_DEV",
        "POS_FISCAL_POINT_OF_SALE",
        "POS_FISCAL_ISSUER_TAX_ID",
        "POS_FISCAL_TELEMETRY_ENABLED",
    ):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def config() -> ClientConfig:
    return ClientConfig(
        env_name="test",
        api_base_url=BASE_URL,
        retries=0,
        retry_backoff_seconds=0,
        issuer_tax_id=ISSUER_CUIT,
    )


@dataclass
class FakeAuthClient:
    """Stands in for AuthClient; results are keyed by operation."""

    results: dict[str, object] = field(default_factory=dict)
    calls: list[tuple[str, tuple]] = field(default_factory=list)
    token: str | None = None
    hook: object | None = None

    def _answer(self, operation: str, *args):
        self.calls.append((operation, args))
        if self.hook is not None:
            self.hook(operation)
        result = self.results[operation]
        if isinstance(result, Exception):
            raise result
        return result

    def login(self, email: str, password: str) -> AuthResult:
        return self._answer("login", email, password)

    def register(self, name: str, email: str, password: str, role: Role) -> AuthResult:
        return self._answer("register", name, email, password, role)

    def me(self) -> User:
        return self._answer("me")


@dataclass
class FakeFiscalGateway:
    """Replays queued outcomes for submit_invoice; each entry is a response or an exception."""

    outcomes: list[object] = field(default_factory=list)
    lookup: object | None = None
    submitted: list[Invoice] = field(default_factory=list)
    looked_up: list[str] = field(default_factory=list)
    tokens: list[str] = field(default_factory=list)
    hook: object | None = None

    def submit_invoice(self, invoice: Invoice) -> FiscalResponse:
        self.submitted.append(invoice)
        if self.hook is not None:
            self.hook(invoice)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def find_invoice(self, invoice: Invoice) -> FiscalResponse | None:
        self.looked_up.append(invoice.id)
        if isinstance(self.lookup, Exception):
            raise self.lookup
        return self.lookup


def make_user(role: str = "EMPLOYEE", user_id: str = "7") -> User:
    return User(id=user_id, name="Ana", email="a@x.com", role=role)


def make_fiscal_response(**overrides) -> FiscalResponse:
    values = {
        "fiscal_number": 15,
        "cae": "74123456789012",
        "cae_expires_on": date(2026, 10, 28),
        "issued_on": date(2026, 10, 18),
        "issuer_tax_id": ISSUER_CUIT,
        "point_of_sale": 1,
        "voucher_type": 6,
        "amount": Decimal("300.00"),
    }
    values.update(overrides)
    return FiscalResponse(**values)


@pytest.fixture
def kv() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def auth_client() -> FakeAuthClient:
    return FakeAuthClient(
        results={"login": AuthResult(user=make_user(), token="tok-1"), "me": make_user()},
    )


@pytest.fixture
def session_manager(kv: MemoryKeyValueStore, auth_client: FakeAuthClient) -> SessionManager:
    def factory(token: str | None) -> FakeAuthClient:
        auth_client.token = token
        return auth_client

    return SessionManager(factory, AuthStore(store=kv), env_name="test")


@pytest.fixture
def logged_in(session_manager: SessionManager) -> SessionManager:
    session_manager.login("a@x.com", "secret1")
    return session_manager


@pytest.fixture
def gateway() -> FakeFiscalGateway:
    return FakeFiscalGateway()


@pytest.fixture
def ledger(kv: MemoryKeyValueStore) -> SalesLedger:
    return SalesLedger(store=kv)


@pytest.fixture
def invoice_store(kv: MemoryKeyValueStore) -> InvoiceStore:
    return InvoiceStore(store=kv)


@pytest.fixture
def coordinator(
    gateway: FakeFiscalGateway,
    logged_in: SessionManager,
    invoice_store: InvoiceStore,
    ledger: SalesLedger,
) -> InvoiceIssuanceCoordinator:
    def factory(token: str) -> FakeFiscalGateway:
        gateway.tokens.append(token)
        return gateway

    return InvoiceIssuanceCoordinator(factory, logged_in, invoice_store, ledger)
