import pytest

from cotacao.core.config import settings
from cotacao.core.security import AuthContext
from scripts.bootstrap_operadores import parse_pins, provision


def test_parse_pins():
    assert parse_pins(" 1234, 5678,,1234 ") == ["1234", "5678"]
    assert parse_pins("") == []
    with pytest.raises(SystemExit):
        parse_pins("12345")


def test_provisioned_operator_can_sign_in(db_session):
    users = provision(db_session, ["4321"])
    assert users[0].email == f"4321@{settings.OPERADOR_DOMAIN}"

    context = AuthContext(db_session)
    assert context.sign_in(users[0].email, settings.OPERADOR_PASSWORD) is not None
    assert context.role == "operador"

    users[0].status = "blocked"
    db_session.commit()
    assert provision(db_session, ["4321"])[0].status == "active"
