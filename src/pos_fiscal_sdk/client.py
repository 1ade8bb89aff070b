from __future__ import annotations

from dataclasses import dataclass, field

from .auth_store import AuthStore
from .clients.auth import AuthClient
from .clients.employees import EmployeesClient
from .clients.fiscal import FiscalClient
from .config import ClientConfig
from .http_client import HttpClient
from .invoice_coordinator import InvoiceIssuanceCoordinator
from .invoice_store import InvoiceStore
from .kv_store import JsonFileKeyValueStore, KeyValueStore
from .pin_verifier import EmployeePinVerifier
from .sales_ledger import SalesLedger
from .session import SessionManager
from .telemetry import TelemetryLogger
from .tracing import TraceContext


@dataclass
class PosClient:
    """Wires the terminal's components around one key-value store and one trace context."""

    config: ClientConfig
    store: KeyValueStore | None = None
    trace: TraceContext | None = None
    telemetry: TelemetryLogger | None = None
    auth_store: AuthStore = field(init=False)
    session_manager: SessionManager = field(init=False)
    sales_ledger: SalesLedger = field(init=False)
    invoice_store: InvoiceStore = field(init=False)
    _coordinator: InvoiceIssuanceCoordinator | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        self.store = self.store or JsonFileKeyValueStore(app_name=self.config.app_name)
        self.trace = self.trace or TraceContext()
        self.auth_store = AuthStore(store=self.store)
        self.session_manager = SessionManager(
            self.auth_client,
            self.auth_store,
            env_name=self.config.env_name,
            min_password_length=self.config.min_password_length,
            telemetry=self.telemetry,
        )
        self.sales_ledger = SalesLedger(store=self.store, telemetry=self.telemetry)
        self.invoice_store = InvoiceStore(store=self.store)

    def _http(self) -> HttpClient:
        return HttpClient(config=self.config, trace=self.trace)

    def _token(self) -> str | None:
        session = self.session_manager.current_session()
        return session.token if session is not None else None

    def auth_client(self, token: str | None = None) -> AuthClient:
        return AuthClient(http=self._http(), access_token=token)

    def employees_client(self) -> EmployeesClient:
        return EmployeesClient(http=self._http(), access_token=self._token())

    def fiscal_client(self, token: str | None = None) -> FiscalClient:
        return FiscalClient(
            http=self._http(),
            access_token=token or self._token(),
            issuer_tax_id=self.config.issuer_tax_id,
            timeout_seconds=self.config.fiscal_timeout_seconds,
        )

    def pin_verifier(self) -> EmployeePinVerifier:
        return EmployeePinVerifier(
            lambda: self.employees_client().list_employees(),
            pin_length=self.config.pin_length,
        )

    def invoice_coordinator(self) -> InvoiceIssuanceCoordinator:
        """The terminal's single coordinator; every caller observes the same sale."""
        if self._coordinator is None:
            self._coordinator = InvoiceIssuanceCoordinator(
                self.fiscal_client,
                self.session_manager,
                self.invoice_store,
                self.sales_ledger,
                point_of_sale=self.config.point_of_sale,
                telemetry=self.telemetry,
            )
        return self._coordinator
