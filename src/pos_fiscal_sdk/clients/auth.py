from __future__ import annotations

from ..exceptions import ConflictError, DuplicateEmail, InvalidCredentials, UnauthorizedError, ValidationError
from ..models import AuthResult, Role, User
from .base import BaseClient, parse_model, unwrap

_DUPLICATE_HINTS = ("already exists", "ya existe", "duplicate")


class AuthClient(BaseClient):
    def login(self, email: str, password: str) -> AuthResult:
        payload = {"email": email, "password": password}
        try:
            data = self.http.request("POST", "/auth/login", json_body=payload, module="auth", operation="login")
        except UnauthorizedError as exc:
            raise InvalidCredentials(
                code="INVALID_CREDENTIALS",
                message=exc.message,
                details=exc.details,
                trace_id=exc.trace_id,
                status_code=exc.status_code,
                raw_payload=exc.raw_payload,
            ) from exc
        return parse_model(AuthResult, unwrap(data))

    def register(self, name: str, email: str, password: str, role: Role) -> AuthResult:
        payload = {"name": name, "email": email, "password": password, "role": role.value}
        try:
            data = self.http.request("POST", "/auth/register", json_body=payload, module="auth", operation="register")
        except (ConflictError, ValidationError) as exc:
            if isinstance(exc, ConflictError) or _looks_duplicate(exc):
                raise DuplicateEmail(
                    code="DUPLICATE_EMAIL",
                    message=exc.message,
                    details=exc.details,
                    trace_id=exc.trace_id,
                    status_code=exc.status_code,
                    raw_payload=exc.raw_payload,
                ) from exc
            raise
        return parse_model(AuthResult, unwrap(data))

    def me(self) -> User:
        data = self._request("GET", "/auth/me", module="auth", operation="me")
        body = unwrap(data)
        if isinstance(body, dict) and "user" in body:
            body = body["user"]
        return parse_model(User, body)


def _looks_duplicate(error: ValidationError) -> bool:
    if error.code.upper() in {"DUPLICATE_EMAIL", "USER_EXISTS"}:
        return True
    message = error.message.lower()
    return any(hint in message for hint in _DUPLICATE_HINTS)
