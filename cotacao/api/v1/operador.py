import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from cotacao.api.v1.common import (
    AmostraResponse,
    GerarAmostrasPayload,
    MedicaoPayload,
    domain_http_error,
    get_op_or_404,
    medicao_to_dict,
    op_detail,
)
from cotacao.core.security import ROLE_OPERADOR, require_role
from cotacao.db import models
from cotacao.db.session import get_db
from cotacao.quality.numbers import InvalidNumberError
from cotacao.quality.progress import OPIncompleteError
from cotacao.quality.sampling import ORIGEM_OPERADOR
from cotacao.services.audit import audit_log
from cotacao.services.op_views import list_op_rows
from cotacao.services.ops import (
    OP_ABERTA,
    MeasurementTargetError,
    OPClosedError,
    SamplesExistError,
    complete_op,
    delete_medicao,
    generate_samples,
    upsert_medicao,
)

logger = logging.getLogger("cotacao.ops")

router = APIRouter(prefix="/operador", tags=["Operador"])
require_operador = require_role(ROLE_OPERADOR)


@router.get("/ops")
def list_open_ops(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_operador),
):
    return list_op_rows(db, OP_ABERTA)


@router.get("/ops/{op_id}")
def get_op(
    op_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_operador),
):
    return op_detail(db, get_op_or_404(db, op_id))


@router.post("/ops/{op_id}/amostras", status_code=status.HTTP_201_CREATED)
def gerar_amostras(
    op_id: str,
    payload: GerarAmostrasPayload,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_operador),
):
    """
    Gera as pecas a medir (freq, 2*freq, ... ate qty) quando a OP ainda nao
    tem amostras e registra o plano declarado pelo operador.
    """
    op = get_op_or_404(db, op_id)
    try:
        amostras = generate_samples(db, op, payload.qty, payload.freq, origem=ORIGEM_OPERADOR)
    except (OPClosedError, SamplesExistError) as exc:
        raise domain_http_error(exc)
    if not amostras:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Parametros nao geram nenhuma peca. Verifique quantidade e frequencia.",
        )
    return {"amostras": [AmostraResponse.model_validate(a).model_dump() for a in amostras]}


@router.put("/ops/{op_id}/medicoes")
def salvar_medicao(
    op_id: str,
    payload: MedicaoPayload,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_operador),
):
    op = get_op_or_404(db, op_id)
    try:
        medicao, _ = upsert_medicao(
            db, op, payload.amostra_id, payload.cota_id, payload.valor, user=current_user
        )
    except (OPClosedError, MeasurementTargetError, InvalidNumberError) as exc:
        raise domain_http_error(exc)
    return medicao_to_dict(medicao, medicao.cota)


@router.delete("/ops/{op_id}/medicoes/{medicao_id}")
def remover_medicao(
    op_id: str,
    medicao_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_operador),
):
    op = get_op_or_404(db, op_id)
    try:
        removed = delete_medicao(db, op, medicao_id)
    except OPClosedError as exc:
        raise domain_http_error(exc)
    if not removed:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Medicao nao encontrada")
    return {"ok": True}


@router.post("/ops/{op_id}/concluir")
def concluir_op(
    op_id: str,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_operador),
):
    op = get_op_or_404(db, op_id)
    try:
        report = complete_op(db, op)
    except (OPClosedError, OPIncompleteError) as exc:
        raise domain_http_error(exc)
    audit_log(
        db,
        request,
        current_user,
        "OP_CONCLUIR",
        "op",
        op.id,
        {"codigo": op.codigo, "lidos": report.completeness.lidos},
    )
    return op_detail(db, op)
