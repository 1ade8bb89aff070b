from .access_control import AccessDecision, ProtectedAction, decide, require
from .auth_store import AuthStore
from .client import PosClient
from .config import ClientConfig, ConfigError, load_config
from .exceptions import (
    ApiError,
    ConflictingOperation,
    ConnectivityFailure,
    DuplicateEmail,
    EncodingError,
    ForbiddenError,
    InvalidCredentials,
    InvalidResponseError,
    InvoiceStateError,
    LoginRequiredError,
    NetworkError,
    NotFoundError,
    RejectedByAuthority,
    UnauthorizedError,
    UnknownFailure,
    ValidationError,
)
from .invoice_coordinator import InvoiceIssuanceCoordinator, InvoiceState
from .invoice_state import InvoiceActionAvailability, invoice_action_availability
from .invoice_store import InvoiceStore
from .kv_store import JsonFileKeyValueStore, KeyValueStore, MemoryKeyValueStore
from .models import (
    EmployeeIdentity,
    FiscalResponse,
    Invoice,
    InvoiceStatus,
    LineItem,
    ReceiverDocType,
    Role,
    SalesAggregate,
    SalesEvent,
    Session,
    User,
    VoucherType,
)
from .pin_verifier import EmployeePinVerifier
from .sales_ledger import SalesLedger
from .session import SessionManager, SessionState
from .tracing import TraceContext

__all__ = [
    "AccessDecision",
    "ApiError",
    "AuthStore",
    "ClientConfig",
    "ConfigError",
    "ConflictingOperation",
    "ConnectivityFailure",
    "DuplicateEmail",
    "EmployeeIdentity",
    "EmployeePinVerifier",
    "EncodingError",
    "FiscalResponse",
    "ForbiddenError",
    "InvalidCredentials",
    "InvalidResponseError",
    "Invoice",
    "InvoiceActionAvailability",
    "InvoiceIssuanceCoordinator",
    "InvoiceState",
    "InvoiceStateError",
    "InvoiceStatus",
    "InvoiceStore",
    "JsonFileKeyValueStore",
    "KeyValueStore",
    "LineItem",
    "LoginRequiredError",
    "MemoryKeyValueStore",
    "NetworkError",
    "NotFoundError",
    "PosClient",
    "ProtectedAction",
    "ReceiverDocType",
    "RejectedByAuthority",
    "Role",
    "SalesAggregate",
    "SalesEvent",
    "SalesLedger",
    "Session",
    "SessionManager",
    "SessionState",
    "TraceContext",
    "UnauthorizedError",
    "UnknownFailure",
    "User",
    "ValidationError",
    "VoucherType",
    "decide",
    "invoice_action_availability",
    "load_config",
    "require",
]
