from __future__ import annotations

from typing import Mapping

from .exceptions import (
    ApiError,
    ConflictError,
    ConnectivityFailure,
    FiscalError,
    ForbiddenError,
    NotFoundError,
    RateLimitError,
    RejectedByAuthority,
    ServerError,
    TransportError,
    UnauthorizedError,
    UnknownFailure,
    ValidationError,
)


def _message_from(payload: Mapping[str, object]) -> str:
    # Backend envelopes carry either {"message": ...} or {"success": false, "error": ...}.
    for key in ("message", "error"):
        value = payload.get(key)
        if isinstance(value, str) and value:
            return value
        if isinstance(value, Mapping) and value.get("message"):
            return str(value["message"])
    return "Request failed"


def map_error(status_code: int, payload: Mapping[str, object] | None, trace_id: str | None) -> ApiError:
    payload = payload or {}
    code = str(payload.get("code") or "HTTP_ERROR")
    message = _message_from(payload)
    details = payload.get("details")
    payload_trace_id = payload.get("trace_id")
    resolved_trace_id = str(payload_trace_id) if payload_trace_id is not None else trace_id
    mapped: type[ApiError]
    if status_code == 401:
        mapped = UnauthorizedError
    elif status_code == 403:
        mapped = ForbiddenError
    elif status_code == 404:
        mapped = NotFoundError
    elif status_code in {400, 422}:
        mapped = ValidationError
    elif status_code == 409:
        mapped = ConflictError
    elif status_code == 429:
        mapped = RateLimitError
    elif status_code >= 500:
        mapped = ServerError
    else:
        mapped = ApiError
    return mapped(
        code=code,
        message=message,
        details=details,
        trace_id=resolved_trace_id,
        status_code=status_code,
        raw_payload=dict(payload),
    )


def to_fiscal_error(error: Exception) -> FiscalError:
    """Fold any submission failure into the fiscal failure taxonomy."""
    if isinstance(error, FiscalError):
        return error
    if isinstance(error, (TransportError, ServerError, RateLimitError)):
        mapped: type[FiscalError] = ConnectivityFailure
    elif isinstance(error, ValidationError):
        mapped = RejectedByAuthority
    else:
        mapped = UnknownFailure
    if isinstance(error, ApiError):
        return mapped(
            code=error.code,
            message=error.message,
            details=error.details,
            trace_id=error.trace_id,
            status_code=error.status_code,
            raw_payload=error.raw_payload,
        )
    return mapped(code="UNEXPECTED_ERROR", message=str(error) or type(error).__name__)
