from datetime import timedelta
from types import SimpleNamespace

import pytest

from conftest import make_user
from cotacao.core.config import settings
from cotacao.core.security import (
    AuthContext,
    SessionStatus,
    create_access_token,
    create_refresh_token,
    decode_token,
    derive_role,
    get_password_hash,
    issue_session,
    operador_email,
    verify_password,
)


def test_derive_role():
    assert derive_role(None) is None
    assert derive_role(SimpleNamespace(email="x@fabrica.com", role="operador")) == "operador"
    assert derive_role(SimpleNamespace(email=operador_email("0001"), role=None)) == "operador"
    upper = SimpleNamespace(email=f"0001@{settings.OPERADOR_DOMAIN.upper()}", role=None)
    assert derive_role(upper) == "operador"
    assert derive_role(SimpleNamespace(email="chefe@fabrica.com", role=None)) == "gestor"
    assert derive_role(SimpleNamespace(email="chefe@fabrica.com", role="outro")) == "gestor"


def test_password_hash_roundtrip_and_limit():
    hashed = get_password_hash("segredo")
    assert verify_password("segredo", hashed)
    assert not verify_password("errado", hashed)
    assert not verify_password("segredo", "")
    with pytest.raises(ValueError):
        get_password_hash("x" * 73)


def test_token_types_are_not_interchangeable():
    access = create_access_token({"sub": "u1"})
    refresh = create_refresh_token({"sub": "u1"})
    assert decode_token(access)["sub"] == "u1"
    assert decode_token(refresh) is None
    assert decode_token(access, "refresh") is None
    assert decode_token("nao-e-um-token") is None
    expired = create_access_token({"sub": "u1"}, expires_delta=timedelta(seconds=-5))
    assert decode_token(expired) is None


def test_auth_context_lifecycle(db_session):
    user = make_user(db_session, "gestor@fabrica.com", password="senha123")
    context = AuthContext(db_session)
    assert context.status is SessionStatus.UNINITIALIZED
    assert not context.authenticated

    assert context.sign_in("gestor@fabrica.com", "errada") is None
    assert context.status is SessionStatus.RESOLVED
    assert not context.authenticated

    session = context.sign_in("  GESTOR@fabrica.com ", "senha123")
    assert session["token_type"] == "bearer"
    assert session["expires_in"] == settings.ACCESS_TOKEN_EXPIRE_HOURS * 3600
    assert context.user.id == user.id
    assert context.role == "gestor"

    refreshed = AuthContext(db_session)
    assert refreshed.refresh(session["refresh_token"]) is not None
    assert refreshed.user.id == user.id
    assert AuthContext(db_session).refresh(session["access_token"]) is None

    resolved = AuthContext(db_session)
    assert resolved.resolve(session["access_token"]).id == user.id
    assert resolved.authenticated

    context.sign_out()
    assert context.status is SessionStatus.RESOLVED
    assert context.user is None and context.role is None


def test_inactive_user_cannot_sign_in_or_resolve(db_session):
    user = make_user(db_session, "inativo@fabrica.com", password="senha123", status="blocked")
    assert AuthContext(db_session).sign_in("inativo@fabrica.com", "senha123") is None
    assert AuthContext(db_session).resolve(issue_session(user)["access_token"]) is None
