from __future__ import annotations

from collections.abc import Iterable, Mapping
from enum import Enum
from typing import Any, cast

from .exceptions import ForbiddenError, LoginRequiredError
from .models import Role, Session


class AccessDecision(str, Enum):
    ALLOW = "ALLOW"
    DENY = "DENY"
    LOGIN_REQUIRED = "LOGIN_REQUIRED"


class ProtectedAction:
    """Role sets guarding the terminal's protected screens and operations."""

    ISSUE_INVOICE = frozenset({Role.ADMIN, Role.EMPLOYEE})
    VIEW_SALES = frozenset({Role.ADMIN, Role.EMPLOYEE})
    VIEW_REPORTS = frozenset({Role.ADMIN})
    MANAGE_EMPLOYEES = frozenset({Role.ADMIN})
    MANAGE_CATALOG = frozenset({Role.ADMIN})
    FISCAL_SETTINGS = frozenset({Role.ADMIN})


def _parse_roles(roles: Iterable[Role | str]) -> frozenset[Role]:
    parsed = set()
    for role in roles:
        try:
            parsed.add(Role.parse(role))
        except ValueError:
            continue
    return frozenset(parsed)


def _session_role(session: Any) -> Role | None:
    if isinstance(session, Session):
        return session.user.role
    if isinstance(session, Mapping):
        raw = session.get("role")
        if raw is None and isinstance(session.get("user"), Mapping):
            raw = session["user"].get("role")
    else:
        user = getattr(session, "user", None)
        raw = getattr(user, "role", None) if user is not None else getattr(session, "role", None)
    try:
        return Role.parse(raw)
    except ValueError:
        return None


def decide(
    session: Session | Mapping[str, Any] | None,
    required_roles: Iterable[Role | str],
    *,
    loading: bool = False,
) -> AccessDecision:
    """Pure access decision: no I/O, no clock, no mutation of its inputs."""
    if loading or session is None:
        return AccessDecision.LOGIN_REQUIRED
    role = _session_role(session)
    if role is None or role not in _parse_roles(required_roles):
        return AccessDecision.DENY
    return AccessDecision.ALLOW


def require(
    session: Session | None,
    required_roles: Iterable[Role | str],
    *,
    loading: bool = False,
) -> Session:
    decision = decide(session, required_roles, loading=loading)
    if decision is AccessDecision.LOGIN_REQUIRED:
        raise LoginRequiredError(code="LOGIN_REQUIRED", message="An authenticated session is required")
    if decision is AccessDecision.DENY:
        raise ForbiddenError(
            code="PERMISSION_DENIED",
            message="The current role is not allowed to perform this action",
            details={"required_roles": sorted(role.value for role in _parse_roles(required_roles))},
        )
    return cast(Session, session)
