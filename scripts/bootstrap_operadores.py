"""
Cria (ou reativa) contas de operador a partir de PINs de 4 digitos.

    OPERADOR_PINS=1234,5678 python scripts/bootstrap_operadores.py
"""
import os
import re

from sqlalchemy import func

from cotacao.core.config import settings
from cotacao.core.security import ROLE_OPERADOR, get_password_hash, operador_email
from cotacao.db import models
from cotacao.db.init_db import ensure_schema
from cotacao.db.session import SessionLocal, engine

PIN_PATTERN = re.compile(r"[0-9]{4}")


def parse_pins(raw: str) -> list[str]:
    pins = []
    for item in (raw or "").split(","):
        pin = item.strip()
        if not pin:
            continue
        if not PIN_PATTERN.fullmatch(pin):
            raise SystemExit(f"PIN invalido: {pin!r} (use 4 digitos).")
        if pin not in pins:
            pins.append(pin)
    return pins


def provision(db, pins: list[str]) -> list[models.User]:
    password_hash = get_password_hash(settings.OPERADOR_PASSWORD)
    users = []
    for pin in pins:
        email = operador_email(pin).lower()
        user = db.query(models.User).filter(func.lower(models.User.email) == email).first()
        if not user:
            user = models.User(name=f"Operador {pin}", email=email, password_hash=password_hash)
            db.add(user)
        else:
            user.password_hash = password_hash
        user.role = ROLE_OPERADOR
        user.status = "active"
        users.append(user)
    db.commit()
    return users


def main() -> None:
    pins = parse_pins(os.getenv("OPERADOR_PINS", ""))
    if not pins:
        raise SystemExit("OPERADOR_PINS nao definido.")

    ensure_schema(engine)
    db = SessionLocal()
    try:
        for user in provision(db, pins):
            print(f"Operador ativo: {user.email}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
