from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cotacao.core.config import settings


def build_engine(uri: str):
    if not uri.startswith("sqlite"):
        return create_engine(uri, pool_pre_ping=True)
    kwargs = {"connect_args": {"check_same_thread": False}}
    if uri in {"sqlite://", "sqlite:///:memory:"}:
        kwargs["poolclass"] = StaticPool
    sqlite_engine = create_engine(uri, **kwargs)

    # SQLite so respeita ON DELETE CASCADE / SET NULL com foreign_keys ligado
    @event.listens_for(sqlite_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return sqlite_engine


engine = build_engine(settings.SQLALCHEMY_DATABASE_URI)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
