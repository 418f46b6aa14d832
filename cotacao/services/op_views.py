from datetime import datetime, timedelta
from typing import Iterable, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from cotacao.db import models
from cotacao.quality.numbers import percent
from cotacao.quality.progress import build_report, quality_totals
from cotacao.services.ops import OP_ABERTA, OP_CONCLUIDA, load_context

STATUS_FILTERS = {"abertas": OP_ABERTA, "concluidas": OP_CONCLUIDA}


def _counts_by(db: Session, column, ids: list[str]) -> dict[str, int]:
    if not ids:
        return {}
    rows = db.query(column, func.count()).filter(column.in_(ids)).group_by(column).all()
    return {key: count for key, count in rows}


def _measured_by_op(db: Session, op_ids: list[str]) -> dict[str, int]:
    if not op_ids:
        return {}
    rows = (
        db.query(models.Amostra.op_id, func.count(models.Medicao.id))
        .join(models.Medicao, models.Medicao.amostra_id == models.Amostra.id)
        .join(models.Cota, models.Cota.id == models.Medicao.cota_id)
        .join(models.OP, models.OP.id == models.Amostra.op_id)
        .filter(models.Amostra.op_id.in_(op_ids), models.Cota.desenho_id == models.OP.desenho_id)
        .group_by(models.Amostra.op_id)
        .all()
    )
    return {op_id: count for op_id, count in rows}


def list_op_rows(db: Session, status: Optional[str] = None, limit: Optional[int] = None) -> list[dict]:
    """OPs com os campos do desenho e progresso_pct, mais recentes primeiro."""
    query = db.query(models.OP, models.Desenho).outerjoin(
        models.Desenho, models.Desenho.id == models.OP.desenho_id
    )
    if status:
        query = query.filter(models.OP.status == status)
    query = query.order_by(models.OP.created_at.desc())
    if limit:
        query = query.limit(limit)
    rows = query.all()

    op_ids = [op.id for op, _ in rows]
    desenho_ids = [desenho.id for _, desenho in rows if desenho]
    amostras = _counts_by(db, models.Amostra.op_id, op_ids)
    cotas = _counts_by(db, models.Cota.desenho_id, desenho_ids)
    lidos = _measured_by_op(db, op_ids)

    items = []
    for op, desenho in rows:
        esperado = amostras.get(op.id, 0) * (cotas.get(desenho.id, 0) if desenho else 0)
        items.append(
            {
                "id": op.id,
                "codigo": op.codigo,
                "status": op.status,
                "created_at": op.created_at,
                "qty": op.qty,
                "freq": op.freq,
                "desenho_id": op.desenho_id,
                "desenho_codigo": desenho.codigo if desenho else None,
                "desenho_nome": desenho.nome if desenho else None,
                "progresso_pct": percent(lidos.get(op.id, 0), esperado),
            }
        )
    return items


def quality_rows(db: Session, op_ids: Iterable[str]) -> dict[str, dict]:
    ops = db.query(models.OP).filter(models.OP.id.in_(list(op_ids))).all()
    result = {}
    for op in ops:
        cotas, amostras, medicoes = load_context(db, op)
        totals = quality_totals(build_report(amostras, cotas, medicoes).por_cota)
        result[op.id] = {"op_id": op.id, "lidos": totals.lidos, "fora": totals.fora, "pct_fora": totals.pct_fora}
    return result


def dashboard(db: Session, now: Optional[datetime] = None) -> dict:
    now = now or datetime.utcnow()
    desde = now - timedelta(days=30)
    abertas = list_op_rows(db, OP_ABERTA, limit=5)
    concluidas = list_op_rows(db, OP_CONCLUIDA, limit=5)
    return {
        "desenhos": db.query(models.Desenho).count(),
        "ops_abertas": db.query(models.OP).filter(models.OP.status == OP_ABERTA).count(),
        "ops_concluidas_30d": (
            db.query(models.OP)
            .filter(models.OP.status == OP_CONCLUIDA, models.OP.created_at >= desde)
            .count()
        ),
        "recentes_abertas": abertas,
        "recentes_concluidas": concluidas,
        "qualidade": quality_rows(db, [row["id"] for row in concluidas]),
    }
