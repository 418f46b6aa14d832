import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class User(Base):
    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("email", name="uq_users_email"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False)
    email = Column(String, nullable=False)
    password_hash = Column(String, nullable=False)
    # "gestor" | "operador"; vazio = derivado pelo dominio do e-mail
    role = Column(String, nullable=True)
    status = Column(String, nullable=False, default="active")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    action = Column(String, nullable=False)
    resource_type = Column(String, nullable=True)
    resource_id = Column(String, nullable=True)
    payload_resumo = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    ip = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)


class Desenho(Base):
    __tablename__ = "desenhos"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    codigo = Column(String, nullable=False)
    nome = Column(String, nullable=False)
    descricao = Column(String, nullable=True)
    imagem_url = Column(String, nullable=False)
    imagem_path = Column(String, nullable=True)
    largura_px = Column(Integer, nullable=True)
    altura_px = Column(Integer, nullable=True)
    archived = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    cotas = relationship(
        "Cota",
        back_populates="desenho",
        cascade="all, delete-orphan",
        order_by="Cota.etiqueta",
    )
    ops = relationship("OP", back_populates="desenho")


class Cota(Base):
    __tablename__ = "cotas"
    __table_args__ = (UniqueConstraint("desenho_id", "etiqueta", name="uq_cota_desenho_etiqueta"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    desenho_id = Column(String, ForeignKey("desenhos.id", ondelete="CASCADE"), nullable=False)
    etiqueta = Column(String, nullable=False)
    x_percent = Column(Float, nullable=False, default=0.5)
    y_percent = Column(Float, nullable=False, default=0.5)
    observacao = Column(String, nullable=True)
    nominal = Column(Numeric(14, 4), nullable=True)
    tol_mais = Column(Numeric(14, 4), nullable=True)
    tol_menos = Column(Numeric(14, 4), nullable=True)
    unidade = Column(String, nullable=True, default="mm")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    desenho = relationship("Desenho", back_populates="cotas")
    medicoes = relationship("Medicao", back_populates="cota", cascade="all, delete-orphan")


class OP(Base):
    __tablename__ = "ops"
    __table_args__ = (
        CheckConstraint("qty IS NULL OR qty > 0", name="ck_ops_qty_positive"),
        CheckConstraint("freq IS NULL OR freq > 0", name="ck_ops_freq_positive"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    codigo = Column(String, nullable=False)
    status = Column(String, nullable=False, default="aberta")
    desenho_id = Column(String, ForeignKey("desenhos.id", ondelete="SET NULL"), nullable=True)
    qty = Column(Integer, nullable=True)
    freq = Column(Integer, nullable=True)
    # "gestor" | "operador" | NULL (sem declaracao)
    params_origem = Column(String, nullable=True)
    created_by = Column(String, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    concluida_em = Column(DateTime, nullable=True)

    desenho = relationship("Desenho", back_populates="ops")
    amostras = relationship(
        "Amostra",
        back_populates="op",
        cascade="all, delete-orphan",
        order_by="Amostra.indice",
    )


class Amostra(Base):
    __tablename__ = "op_amostras"
    __table_args__ = (
        UniqueConstraint("op_id", "indice", name="uq_amostra_op_indice"),
        CheckConstraint("indice > 0", name="ck_amostra_indice_positive"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    op_id = Column(String, ForeignKey("ops.id", ondelete="CASCADE"), nullable=False)
    indice = Column(Integer, nullable=False)
    status = Column(String, nullable=False, default="pendente")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    op = relationship("OP", back_populates="amostras")
    medicoes = relationship("Medicao", back_populates="amostra", cascade="all, delete-orphan")


class Medicao(Base):
    __tablename__ = "medicoes"
    __table_args__ = (UniqueConstraint("amostra_id", "cota_id", name="uq_medicao_amostra_cota"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    amostra_id = Column(String, ForeignKey("op_amostras.id", ondelete="CASCADE"), nullable=False)
    cota_id = Column(String, ForeignKey("cotas.id", ondelete="CASCADE"), nullable=False)
    valor = Column(Numeric(14, 4), nullable=False)
    created_by = Column(String, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    amostra = relationship("Amostra", back_populates="medicoes")
    cota = relationship("Cota", back_populates="medicoes")
