import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cotacao.db import models
from cotacao.quality.numbers import InvalidNumberError, Number, to_decimal
from cotacao.quality.progress import (
    STATUS_CONCLUIDA,
    OPReport,
    build_matrix,
    ensure_can_complete,
    sample_status,
)
from cotacao.quality.sampling import DECLARED_ORIGINS, ORIGEM_GESTOR, ORIGEM_OPERADOR, generate_indices
from cotacao.quality.tolerance import ToleranceResult, evaluate_cota

logger = logging.getLogger("cotacao.ops")

OP_ABERTA = "aberta"
OP_CONCLUIDA = "concluida"


class OPClosedError(Exception):
    pass


class SamplesExistError(Exception):
    pass


class MeasurementTargetError(Exception):
    pass


def load_context(db: Session, op: models.OP) -> tuple[list, list, list]:
    """Cotas do desenho, amostras e medicoes da OP."""
    cotas = []
    if op.desenho_id:
        cotas = (
            db.query(models.Cota)
            .filter(models.Cota.desenho_id == op.desenho_id)
            .order_by(models.Cota.etiqueta.asc())
            .all()
        )
    amostras = (
        db.query(models.Amostra)
        .filter(models.Amostra.op_id == op.id)
        .order_by(models.Amostra.indice.asc())
        .all()
    )
    medicoes = []
    if amostras:
        medicoes = (
            db.query(models.Medicao)
            .filter(models.Medicao.amostra_id.in_([a.id for a in amostras]))
            .all()
        )
    return cotas, amostras, medicoes


def _ensure_open(op: models.OP) -> None:
    if op.status != OP_ABERTA:
        raise OPClosedError("OP concluida nao aceita alteracoes.")


def _add_samples(db: Session, op: models.OP, indices: list[int]) -> list[models.Amostra]:
    amostras = [models.Amostra(op_id=op.id, indice=indice) for indice in indices]
    db.add_all(amostras)
    return amostras


def record_declared_plan(
    db: Session,
    op: models.OP,
    qty: Optional[int],
    freq: Optional[int],
    origem: str,
) -> models.OP:
    if origem not in DECLARED_ORIGINS:
        raise ValueError(f"Origem de plano invalida: {origem}")
    op.qty = qty
    op.freq = freq
    op.params_origem = origem
    db.add(op)
    return op


def create_op(
    db: Session,
    codigo: str,
    desenho: models.Desenho,
    qty: Optional[int],
    freq: Optional[int],
    user: Optional[models.User] = None,
) -> models.OP:
    has_params = bool((qty and qty > 0) or (freq and freq > 0))
    op = models.OP(
        codigo=codigo,
        desenho_id=desenho.id,
        status=OP_ABERTA,
        qty=qty,
        freq=freq,
        params_origem=ORIGEM_GESTOR if has_params else None,
        created_by=user.id if user else None,
    )
    db.add(op)
    db.flush()
    indices = generate_indices(qty, freq)
    if indices:
        _add_samples(db, op, indices)
    db.commit()
    db.refresh(op)
    logger.info("op criada codigo=%s amostras=%s", codigo, len(indices))
    return op


def generate_samples(
    db: Session,
    op: models.OP,
    qty: int,
    freq: int,
    origem: str = ORIGEM_OPERADOR,
) -> list[models.Amostra]:
    """
    Gera as amostras de uma OP que ainda nao tem nenhuma e registra o plano
    declarado. Amostras e plano vao no mesmo commit.
    """
    _ensure_open(op)
    existing = db.query(models.Amostra).filter(models.Amostra.op_id == op.id).count()
    if existing:
        raise SamplesExistError("OP ja possui amostras.")
    indices = generate_indices(qty, freq)
    if not indices:
        return []
    amostras = _add_samples(db, op, indices)
    record_declared_plan(db, op, qty, freq, origem)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise SamplesExistError("OP ja possui amostras.") from exc
    for amostra in amostras:
        db.refresh(amostra)
    logger.info("amostras geradas op=%s indices=%s origem=%s", op.codigo, indices, origem)
    return amostras


def refresh_sample_status(db: Session, amostra: models.Amostra, cotas: list) -> None:
    medicoes = db.query(models.Medicao).filter(models.Medicao.amostra_id == amostra.id).all()
    matrix = build_matrix([amostra], cotas, medicoes)
    amostra.status = sample_status(amostra, cotas, matrix)
    db.add(amostra)


def _load_target(db: Session, op: models.OP, amostra_id: str, cota_id: str):
    amostra = (
        db.query(models.Amostra)
        .filter(models.Amostra.id == amostra_id, models.Amostra.op_id == op.id)
        .first()
    )
    if not amostra:
        raise MeasurementTargetError("Amostra nao pertence a OP.")
    cota = None
    if op.desenho_id:
        cota = (
            db.query(models.Cota)
            .filter(models.Cota.id == cota_id, models.Cota.desenho_id == op.desenho_id)
            .first()
        )
    if not cota:
        raise MeasurementTargetError("Cota nao pertence ao desenho da OP.")
    return amostra, cota


def _find_medicao(db: Session, amostra_id: str, cota_id: str) -> Optional[models.Medicao]:
    return (
        db.query(models.Medicao)
        .filter(models.Medicao.amostra_id == amostra_id, models.Medicao.cota_id == cota_id)
        .first()
    )


def _write_medicao(db: Session, amostra_id: str, cota_id: str, valor, user) -> models.Medicao:
    medicao = _find_medicao(db, amostra_id, cota_id)
    if medicao:
        medicao.valor = valor
        medicao.updated_at = datetime.utcnow()
    else:
        medicao = models.Medicao(amostra_id=amostra_id, cota_id=cota_id, valor=valor)
    medicao.created_by = user.id if user else medicao.created_by
    db.add(medicao)
    db.flush()
    return medicao


def upsert_medicao(
    db: Session,
    op: models.OP,
    amostra_id: str,
    cota_id: str,
    valor: Number,
    user: Optional[models.User] = None,
) -> tuple[models.Medicao, ToleranceResult]:
    """Um valor por (amostra, cota); gravar de novo substitui o anterior."""
    _ensure_open(op)
    parsed = to_decimal(valor)
    if parsed is None:
        raise InvalidNumberError("Valor vazio.")
    amostra, cota = _load_target(db, op, amostra_id, cota_id)
    try:
        medicao = _write_medicao(db, amostra.id, cota.id, parsed, user)
    except IntegrityError:
        # outra gravacao inseriu o mesmo par entre a consulta e o insert
        db.rollback()
        logger.info("medicao concorrente amostra=%s cota=%s; atualizando", amostra_id, cota_id)
        medicao = _write_medicao(db, amostra_id, cota_id, parsed, user)
    cotas, _, _ = load_context(db, op)
    refresh_sample_status(db, amostra, cotas)
    db.commit()
    db.refresh(medicao)
    return medicao, evaluate_cota(cota, parsed)


def delete_medicao(db: Session, op: models.OP, medicao_id: str) -> bool:
    _ensure_open(op)
    medicao = (
        db.query(models.Medicao)
        .join(models.Amostra, models.Amostra.id == models.Medicao.amostra_id)
        .filter(models.Medicao.id == medicao_id, models.Amostra.op_id == op.id)
        .first()
    )
    if not medicao:
        return False
    amostra = medicao.amostra
    db.delete(medicao)
    db.flush()
    cotas, _, _ = load_context(db, op)
    refresh_sample_status(db, amostra, cotas)
    db.commit()
    return True


def complete_op(db: Session, op: models.OP) -> OPReport:
    _ensure_open(op)
    cotas, amostras, medicoes = load_context(db, op)
    report = ensure_can_complete(amostras, cotas, medicoes)
    op.status = OP_CONCLUIDA
    op.concluida_em = datetime.utcnow()
    for amostra in amostras:
        amostra.status = STATUS_CONCLUIDA
    db.commit()
    db.refresh(op)
    logger.info("op concluida codigo=%s leituras=%s", op.codigo, report.completeness.lidos)
    return report


def refresh_desenho_samples(db: Session, desenho_id: str) -> None:
    """Recalcula o status das amostras das OPs abertas depois de mudar as cotas do desenho."""
    ops = (
        db.query(models.OP)
        .filter(models.OP.desenho_id == desenho_id, models.OP.status == OP_ABERTA)
        .all()
    )
    for op in ops:
        cotas, amostras, medicoes = load_context(db, op)
        matrix = build_matrix(amostras, cotas, medicoes)
        for amostra in amostras:
            amostra.status = sample_status(amostra, cotas, matrix)
