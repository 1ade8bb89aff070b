from __future__ import annotations

import copy

import pytest

from pos_fiscal_sdk.access_control import AccessDecision, ProtectedAction, decide, require
from pos_fiscal_sdk.exceptions import ForbiddenError, LoginRequiredError
from pos_fiscal_sdk.models import Role, Session

from conftest import make_user


def _session(role: str) -> Session:
    return Session(token="tok", user=make_user(role))


def test_decide_without_session_requires_login() -> None:
    assert decide(None, {"ADMIN"}) is AccessDecision.LOGIN_REQUIRED


def test_decide_while_loading_requires_login() -> None:
    assert decide(_session("ADMIN"), {"ADMIN"}, loading=True) is AccessDecision.LOGIN_REQUIRED


def test_decide_role_membership() -> None:
    assert decide({"role": "EMPLOYEE"}, {"ADMIN"}) is AccessDecision.DENY
    assert decide({"role": "ADMIN"}, {"ADMIN", "EMPLOYEE"}) is AccessDecision.ALLOW


@pytest.mark.parametrize("role", ["admin", "Admin", " ADMIN "])
def test_decide_is_case_insensitive(role: str) -> None:
    assert decide({"role": role}, {"admin"}) is AccessDecision.ALLOW


def test_decide_accepts_nested_user_and_models() -> None:
    assert decide({"user": {"role": "EMPLOYEE"}}, ProtectedAction.ISSUE_INVOICE) is AccessDecision.ALLOW
    assert decide(_session("EMPLOYEE"), ProtectedAction.MANAGE_EMPLOYEES) is AccessDecision.DENY
    assert decide(_session("ADMIN"), ProtectedAction.FISCAL_SETTINGS) is AccessDecision.ALLOW


def test_decide_unknown_role_is_denied() -> None:
    assert decide({"role": "SUPERUSER"}, {"ADMIN", "EMPLOYEE"}) is AccessDecision.DENY
    assert decide({}, {"ADMIN"}) is AccessDecision.DENY


def test_decide_is_pure() -> None:
    session = {"user": {"role": "EMPLOYEE"}}
    roles = {"ADMIN", "EMPLOYEE"}
    before = (copy.deepcopy(session), set(roles))

    results = {decide(session, roles) for _ in range(50)}

    assert results == {AccessDecision.ALLOW}
    assert (session, roles) == before


def test_require_raises_by_decision() -> None:
    with pytest.raises(LoginRequiredError):
        require(None, {Role.ADMIN})
    with pytest.raises(ForbiddenError) as exc_info:
        require(_session("EMPLOYEE"), ProtectedAction.VIEW_REPORTS)
    assert exc_info.value.code == "PERMISSION_DENIED"
    assert exc_info.value.details == {"required_roles": ["ADMIN"]}
    session = _session("ADMIN")
    assert require(session, ProtectedAction.VIEW_REPORTS) is session
