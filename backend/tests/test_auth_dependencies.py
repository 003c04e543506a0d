import pathlib
import sys
from datetime import timedelta

import pytest
from fastapi import HTTPException


ROOT = pathlib.Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import backend.main as backend_main
from backend import app_context
from backend.app.membership import PrincipalRole, User


def _user(uid: int, **overrides) -> User:
    return User(id=uid, email=f"user{uid}@example.com", password_hash="x", **overrides)


def test_missing_token_raises_unauthorized():
    with pytest.raises(HTTPException) as exc_info:
        backend_main.get_current_principal(None, None)

    assert exc_info.value.status_code == 401


def test_invalid_token_does_not_resolve():
    assert backend_main.resolve_principal_from_token("not-a-valid-token") is None


def test_expired_token_does_not_resolve(monkeypatch):
    expired_token = backend_main.create_access_token(
        subject="42", expires_delta=timedelta(minutes=-5)
    )

    def _unexpected_get_user_by_id(_uid: int):
        raise AssertionError("get_user_by_id should not be called for expired tokens")

    monkeypatch.setattr(backend_main, "get_user_by_id", _unexpected_get_user_by_id)

    assert backend_main.resolve_principal_from_token(expired_token) is None


def test_valid_cookie_token_resolves_principal(monkeypatch):
    monkeypatch.setattr(backend_main, "get_user_by_id", lambda uid: _user(uid) if uid == 123 else None)

    token = backend_main.create_access_token(subject="123", role=PrincipalRole.ADMIN)

    principal = backend_main.get_current_principal(token, None)

    assert principal.id == 123
    assert principal.is_admin is True
    assert principal.email == "user123@example.com"


def test_bearer_header_is_accepted(monkeypatch):
    monkeypatch.setattr(backend_main, "get_user_by_id", _user)

    token = backend_main.create_access_token(subject="7")

    principal = backend_main.get_current_principal(None, f"Bearer {token}")

    assert principal.id == 7
    assert principal.role == PrincipalRole.USER


def test_deleted_user_is_not_authenticated(monkeypatch):
    monkeypatch.setattr(backend_main, "get_user_by_id", lambda uid: _user(uid, is_deleted=True))

    token = backend_main.create_access_token(subject="9")

    with pytest.raises(HTTPException) as exc_info:
        backend_main.get_current_principal(token, None)

    assert exc_info.value.status_code == 401


def test_missing_credentials_raise_unauthorized():
    with pytest.raises(HTTPException) as exc_info:
        backend_main.get_current_principal(None, "Basic abc")

    assert exc_info.value.status_code == 401


def test_app_context_routes_principal_resolution(monkeypatch):
    monkeypatch.setattr(backend_main, "get_user_by_id", _user)
    app_context.configure(get_conn=backend_main.get_conn, get_current_principal=backend_main.get_current_principal)

    token = backend_main.create_access_token(subject="11")

    principal = app_context.get_current_principal(session_token=token, authorization=None)

    assert principal.id == 11
