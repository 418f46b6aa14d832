import logging
import os

from sqlalchemy import func, inspect, text
from sqlalchemy.orm import Session

from cotacao.core.config import settings
from cotacao.core.security import ROLE_GESTOR, get_password_hash
from cotacao.db import models
from cotacao.db.session import SessionLocal

logger = logging.getLogger("cotacao")

RESET_DEFAULT_PASSWORDS = os.getenv("RESET_DEFAULT_PASSWORDS", "").strip().lower() in {"1", "true", "yes"}


def _ensure_missing_columns(engine) -> None:
    if engine.dialect.name != "sqlite":
        return
    inspector = inspect(engine)
    preparer = engine.dialect.identifier_preparer
    existing_tables = set(inspector.get_table_names())
    for table_name, table in models.Base.metadata.tables.items():
        if table_name not in existing_tables:
            continue
        existing_columns = {col["name"] for col in inspector.get_columns(table_name)}
        for column in table.columns:
            if column.name in existing_columns:
                continue
            col_type = column.type.compile(dialect=engine.dialect)
            with engine.begin() as connection:
                connection.execute(
                    text(
                        f"ALTER TABLE {preparer.quote(table_name)} "
                        f"ADD COLUMN {preparer.quote(column.name)} {col_type}"
                    )
                )


def ensure_schema(engine) -> None:
    models.Base.metadata.create_all(bind=engine)
    _ensure_missing_columns(engine)


def seed_gestor(db: Session) -> models.User:
    email = settings.GESTOR_EMAIL.strip().lower()
    gestor = db.query(models.User).filter(func.lower(models.User.email) == email).first()
    if not gestor:
        gestor = models.User(
            name="Gestor",
            email=email,
            password_hash=get_password_hash(settings.GESTOR_PASSWORD),
            role=ROLE_GESTOR,
            status="active",
        )
        db.add(gestor)
        logger.info("gestor inicial criado email=%s", email)
    elif RESET_DEFAULT_PASSWORDS:
        gestor.password_hash = get_password_hash(settings.GESTOR_PASSWORD)
        gestor.status = "active"
    db.commit()
    db.refresh(gestor)
    return gestor


def seed_initial_data() -> None:
    db: Session = SessionLocal()
    try:
        seed_gestor(db)
    finally:
        db.close()
