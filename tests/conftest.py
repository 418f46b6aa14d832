from decimal import Decimal
from io import BytesIO

import pytest
from fastapi.testclient import TestClient
from PIL import Image
from sqlalchemy.orm import sessionmaker

from cotacao.core.config import settings
from cotacao.core.security import get_password_hash, issue_session, operador_email
from cotacao.db import models
from cotacao.db.session import build_engine, get_db
from cotacao.main import app


@pytest.fixture()
def engine(tmp_path, monkeypatch):
    monkeypatch.setenv("LOCAL_STORAGE", "1")
    monkeypatch.setenv("LOCAL_STORAGE_DIR", str(tmp_path / "storage"))
    engine = build_engine("sqlite://")
    models.Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def db_session(engine):
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = SessionLocal()
    yield db
    db.close()


@pytest.fixture()
def client(engine):
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def _get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_user(db, email, password="senha123", role=None, status="active"):
    user = models.User(
        name=email.split("@")[0],
        email=email,
        password_hash=get_password_hash(password),
        role=role,
        status=status,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def bearer(user):
    return {"Authorization": f"Bearer {issue_session(user)['access_token']}"}


@pytest.fixture()
def gestor(db_session):
    return make_user(db_session, "gestor@fabrica.com.br", role="gestor")


@pytest.fixture()
def operador(db_session):
    return make_user(db_session, operador_email("1234"), password=settings.OPERADOR_PASSWORD)


@pytest.fixture()
def gestor_headers(gestor):
    return bearer(gestor)


@pytest.fixture()
def operador_headers(operador):
    return bearer(operador)


def png_bytes(width=40, height=20):
    out = BytesIO()
    Image.new("RGB", (width, height), color=(255, 255, 255)).save(out, format="PNG")
    return out.getvalue()


def make_desenho(db, codigo="DES-001", cotas=(), archived=False):
    """cotas: (etiqueta, nominal, tol_mais, tol_menos)"""
    desenho = models.Desenho(
        codigo=codigo,
        nome=f"Peca {codigo}",
        imagem_url=f"file:///tmp/{codigo}.png",
        imagem_path=None,
        largura_px=40,
        altura_px=20,
        archived=archived,
    )
    db.add(desenho)
    db.flush()
    for etiqueta, nominal, tol_mais, tol_menos in cotas:
        db.add(
            models.Cota(
                desenho_id=desenho.id,
                etiqueta=etiqueta,
                nominal=Decimal(nominal) if nominal is not None else None,
                tol_mais=Decimal(tol_mais) if tol_mais is not None else None,
                tol_menos=Decimal(tol_menos) if tol_menos is not None else None,
                unidade="mm",
            )
        )
    db.commit()
    db.refresh(desenho)
    return desenho


SCENARIO_COTAS = (("A", "10.00", "0.05", "0.05"), ("B", None, None, None))
