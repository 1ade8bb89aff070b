from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ApiError(Exception):
    code: str
    message: str
    details: object | None = None
    trace_id: str | None = None
    status_code: int = 0
    raw_payload: object | None = None

    def __str__(self) -> str:
        trace = f" trace_id={self.trace_id}" if self.trace_id else ""
        return f"[{self.status_code}] {self.code}: {self.message}{trace}"


class ValidationError(ApiError):
    """Caller-fixable input problem. Raised locally before any I/O when status_code is 0."""


class UnauthorizedError(ApiError):
    pass


class InvalidCredentials(UnauthorizedError):
    """The authentication service rejected the email/password pair."""


class LoginRequiredError(UnauthorizedError):
    """No usable session for a protected action."""


class ForbiddenError(ApiError):
    pass


class NotFoundError(ApiError):
    pass


class ConflictError(ApiError):
    """409 or conflict-style errors."""


class DuplicateEmail(ConflictError):
    pass


class ConflictingOperation(ConflictError):
    """Another operation on the same invoice or session is already in flight."""


class RateLimitError(ApiError):
    """429 throttling error."""


class ServerError(ApiError):
    """5xx server-side failures."""


class TransportError(ApiError):
    """Network/transport failure before an HTTP response was returned."""


NetworkError = TransportError


class InvalidResponseError(ApiError):
    """2xx response whose body could not be parsed into the expected shape."""


class FiscalError(ApiError):
    """Failure of a fiscal submission; the invoice moves to FAILED."""

    kind = "UNKNOWN"
    retryable = True


class ConnectivityFailure(FiscalError):
    kind = "CONNECTIVITY"
    retryable = True


class RejectedByAuthority(FiscalError):
    kind = "REJECTED"
    retryable = False


class UnknownFailure(FiscalError):
    kind = "UNKNOWN"
    retryable = True


class InvoiceStateError(ValidationError):
    """Operation not legal from the invoice's current status."""


class EncodingError(ApiError):
    """Fiscal response is structurally invalid for QR encoding."""
