from __future__ import annotations

import base64
import json
import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, Iterable

from .access_control import AccessDecision, decide
from .auth_store import AuthStore
from .clients.auth import AuthClient
from .exceptions import ApiError, ConflictingOperation, LoginRequiredError, UnauthorizedError, ValidationError
from .models import AuthResult, Role, Session, StoredCredential, utc_now
from .telemetry import TelemetryLogger
from .validation import validate_credentials, validate_registration

logger = logging.getLogger(__name__)

AuthClientFactory = Callable[[str | None], AuthClient]


def token_expiry(token: str | None) -> datetime | None:
    """Expiry from a JWT ``exp`` claim; None for opaque or claim-less tokens."""
    if not token:
        return None
    parts = token.split(".")
    if len(parts) != 3:
        return None
    payload_part = parts[1]
    padded = payload_part + ("=" * (-len(payload_part) % 4))
    try:
        payload = json.loads(base64.urlsafe_b64decode(padded.encode("utf-8")).decode("utf-8"))
    except (ValueError, UnicodeDecodeError):
        return None
    exp = payload.get("exp") if isinstance(payload, dict) else None
    if not isinstance(exp, (int, float)):
        return None
    return datetime.fromtimestamp(float(exp), tz=timezone.utc)


@dataclass(frozen=True)
class SessionState:
    session: Session | None = None
    is_loading: bool = False
    last_error: Exception | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.session is not None


SessionListener = Callable[[SessionState], None]


class SessionManager:
    """Owns the terminal's single active session and its persisted credential.

    Every mutation updates the credential store and the in-memory state
    under the same lock, store first, so observers never see an
    authenticated session that would not survive a restart (or the
    reverse). Login and register remember the session generation they
    started in; a logout or invalidation that lands while the network
    call is in flight bumps the generation and the late result is
    discarded.
    """

    def __init__(
        self,
        auth_client_factory: AuthClientFactory,
        auth_store: AuthStore,
        *,
        env_name: str | None = None,
        min_password_length: int = 6,
        clock: Callable[[], datetime] = utc_now,
        telemetry: TelemetryLogger | None = None,
    ) -> None:
        self._auth_client_factory = auth_client_factory
        self._auth_store = auth_store
        self._env_name = env_name
        self._min_password_length = min_password_length
        self._clock = clock
        self._telemetry = telemetry
        self._lock = threading.RLock()
        self._state = SessionState()
        self._generation = 0
        self._listeners: list[SessionListener] = []

    @property
    def state(self) -> SessionState:
        return self._state

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def login(self, email: str, password: str) -> Session:
        try:
            normalized_email = validate_credentials(email, password)
        except ValidationError as exc:
            self._update(last_error=exc)
            raise
        generation = self._begin()
        logger.info("login_attempt")
        try:
            result = self._auth_client_factory(None).login(normalized_email, password)
        except (ApiError, ValueError) as exc:
            self._fail(generation, exc, "login")
            raise
        return self._establish(result, generation, "login")

    def register(
        self,
        name: str,
        email: str,
        password: str,
        role: Role | str = Role.EMPLOYEE,
        confirm_password: str | None = None,
    ) -> Session:
        try:
            parsed_role = validate_registration(
                name=name,
                email=email,
                password=password,
                confirm_password=confirm_password,
                role=role,
                min_password_length=self._min_password_length,
            )
        except ValidationError as exc:
            self._update(last_error=exc)
            raise
        generation = self._begin()
        logger.info("register_attempt", extra={"role": parsed_role.value})
        try:
            result = self._auth_client_factory(None).register(
                name.strip(), email.strip().lower(), password, parsed_role
            )
        except (ApiError, ValueError) as exc:
            self._fail(generation, exc, "register")
            raise
        return self._establish(result, generation, "register")

    def logout(self) -> None:
        with self._lock:
            self._generation += 1
            try:
                self._auth_store.clear()
            except OSError:
                logger.exception("logout_credential_clear_failed")
            self._update(session=None, is_loading=False, last_error=None)
        logger.info("logout")
        self._emit("logout", success=True)

    def invalidate(self, reason: str = "token_rejected") -> None:
        """Destroy the session after the backend rejected its token."""
        with self._lock:
            if self._state.session is None:
                return
            self._generation += 1
            try:
                self._auth_store.clear()
            except OSError:
                logger.exception("invalidate_credential_clear_failed")
            error = UnauthorizedError(code="SESSION_INVALID", message=reason, status_code=401)
            self._update(session=None, is_loading=False, last_error=error)
        logger.warning("session_invalidated", extra={"reason": reason})
        self._emit("invalidate", success=False, error_code="SESSION_INVALID")

    def rehydrate(self) -> Session | None:
        stored = self._auth_store.load()
        if stored is None:
            return None
        if self._env_name and stored.env_name and stored.env_name != self._env_name:
            logger.info("rehydrate_env_mismatch", extra={"stored_env": stored.env_name})
            self._auth_store.clear()
            return None
        expires_at = stored.expires_at or token_expiry(stored.access_token)
        if expires_at is not None and expires_at <= self._clock():
            logger.info("rehydrate_expired")
            self._auth_store.clear()
            return None
        session = Session(
            token=stored.access_token,
            user=stored.user,
            issued_at=stored.issued_at,
            expires_at=expires_at,
            verified=False,
        )
        with self._lock:
            self._update(session=session, is_loading=False, last_error=None)
        logger.info("rehydrate_success", extra={"role": session.role.value})
        return session

    def verify(self) -> Session:
        """Confirm a rehydrated session against the backend."""
        with self._lock:
            session = self._state.session
            generation = self._generation
        if session is None:
            raise LoginRequiredError(code="LOGIN_REQUIRED", message="No session to verify")
        if session.verified:
            return session
        try:
            user = self._auth_client_factory(session.token).me()
        except UnauthorizedError:
            self.invalidate("token_rejected")
            raise
        except ApiError as exc:
            self._update(last_error=exc)
            raise
        with self._lock:
            current = self._state.session
            if generation != self._generation or current is None or current.token != session.token:
                raise ConflictingOperation(code="SESSION_SUPERSEDED", message="Session changed during verification")
            verified = current.model_copy(update={"user": user, "verified": True})
            self._auth_store.save(self._credential(verified))
            self._update(session=verified, last_error=None)
        logger.info("session_verified", extra={"role": user.role.value})
        return verified

    def current_session(self) -> Session | None:
        with self._lock:
            session = self._state.session
            if session is not None and session.is_expired(self._clock()):
                self.invalidate("expired")
                return None
            return session

    def authorize(self, required_roles: Iterable[Role | str]) -> AccessDecision:
        session = self.current_session()
        return decide(session, required_roles, loading=self._state.is_loading)

    def clear_error(self) -> None:
        self._update(last_error=None)

    def _begin(self) -> int:
        with self._lock:
            self._update(is_loading=True, last_error=None)
            return self._generation

    def _fail(self, generation: int, error: Exception, operation: str) -> None:
        with self._lock:
            if generation == self._generation:
                self._update(is_loading=False, last_error=error)
        error_code = error.code if isinstance(error, ApiError) else "INVALID_RESPONSE"
        trace_id = error.trace_id if isinstance(error, ApiError) else None
        logger.warning(f"{operation}_failure", extra={"error_code": error_code, "trace_id": trace_id})
        self._emit(operation, success=False, error_code=error_code, trace_id=trace_id)

    def _establish(self, result: AuthResult, generation: int, operation: str) -> Session:
        session = Session(
            token=result.token,
            user=result.user,
            issued_at=self._clock(),
            expires_at=result.expires_at or token_expiry(result.token),
            verified=True,
        )
        with self._lock:
            if generation != self._generation:
                logger.warning(f"{operation}_superseded")
                raise ConflictingOperation(
                    code="SESSION_SUPERSEDED",
                    message=f"{operation} finished after the session was closed",
                )
            try:
                self._auth_store.save(self._credential(session))
            except OSError as exc:
                self._update(is_loading=False, last_error=exc)
                logger.exception(f"{operation}_credential_persist_failed")
                raise
            self._update(session=session, is_loading=False, last_error=None)
        logger.info(f"{operation}_success", extra={"role": session.role.value})
        self._emit(operation, success=True, context={"role": session.role.value})
        return session

    def _credential(self, session: Session) -> StoredCredential:
        return StoredCredential(
            access_token=session.token,
            user=session.user,
            issued_at=session.issued_at,
            expires_at=session.expires_at,
            env_name=self._env_name,
        )

    def _update(self, **changes: object) -> None:
        with self._lock:
            self._state = replace(self._state, **changes)
            snapshot = self._state
            listeners = list(self._listeners)
            for listener in listeners:
                listener(snapshot)

    def _emit(self, action: str, **kwargs: object) -> None:
        if self._telemetry is None:
            return
        self._telemetry.record(category="auth", name=f"auth.{action}", action=action, **kwargs)
