import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import Response
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from cotacao.api.v1.common import OPResponse, get_op_or_404, op_detail
from cotacao.core.security import ROLE_GESTOR, require_role
from cotacao.db import models
from cotacao.db.session import get_db
from cotacao.quality.export import (
    CSV_CONTENT_TYPE,
    XLSX_CONTENT_TYPE,
    build_csv,
    build_xlsx,
    export_filename,
)
from cotacao.services.audit import audit_log
from cotacao.services.op_views import STATUS_FILTERS, list_op_rows, quality_rows
from cotacao.services.ops import create_op, load_context

logger = logging.getLogger("cotacao.ops")

router = APIRouter(prefix="/gestor", tags=["Gestor - OPs"])
require_gestor = require_role(ROLE_GESTOR)


class OPCreate(BaseModel):
    codigo: str = Field(..., min_length=1)
    desenho_id: str
    qty: Optional[int] = Field(None, gt=0)
    freq: Optional[int] = Field(None, gt=0)


def _attachment(content: bytes, media_type: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/ops")
def list_ops(
    status_filter: str = Query("todas", alias="status", pattern="^(abertas|concluidas|todas)$"),
    limit: Optional[int] = Query(None, gt=0, le=500),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_gestor),
):
    return list_op_rows(db, STATUS_FILTERS.get(status_filter), limit=limit)


@router.post("/ops", response_model=OPResponse, status_code=status.HTTP_201_CREATED)
def open_op(
    payload: OPCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_gestor),
):
    codigo = payload.codigo.strip()
    if not codigo:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Informe o codigo da OP")
    desenho = (
        db.query(models.Desenho)
        .filter(models.Desenho.id == payload.desenho_id, models.Desenho.archived == False)  # noqa: E712
        .first()
    )
    if not desenho:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Desenho ativo nao encontrado")
    op = create_op(db, codigo, desenho, payload.qty, payload.freq, user=current_user)
    audit_log(
        db,
        request,
        current_user,
        "OP_CREATE",
        "op",
        op.id,
        {"codigo": op.codigo, "desenho_id": desenho.id, "qty": op.qty, "freq": op.freq},
    )
    db.refresh(op)
    return op


@router.get("/ops/{op_id}")
def get_op(
    op_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_gestor),
):
    return op_detail(db, get_op_or_404(db, op_id))


@router.delete("/ops/{op_id}")
def delete_op(
    op_id: str,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_gestor),
):
    op = get_op_or_404(db, op_id)
    codigo = op.codigo
    db.delete(op)
    db.commit()
    audit_log(db, request, current_user, "OP_DELETE", "op", op_id, {"codigo": codigo})
    logger.info("op removida codigo=%s", codigo)
    return {"ok": True}


@router.get("/ops/{op_id}/qualidade")
def op_quality(
    op_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_gestor),
):
    op = get_op_or_404(db, op_id)
    detail = op_detail(db, op)
    return {
        **quality_rows(db, [op.id])[op.id],
        "totais": detail["totais"],
        "por_cota": detail["por_cota"],
    }


@router.get("/ops/{op_id}/export.csv")
def export_csv(
    op_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_gestor),
):
    op = get_op_or_404(db, op_id)
    cotas, amostras, medicoes = load_context(db, op)
    content = build_csv(amostras, cotas, medicoes)
    return _attachment(content, CSV_CONTENT_TYPE, export_filename(op.codigo, "csv"))


@router.get("/ops/{op_id}/export.xlsx")
def export_xlsx(
    op_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_gestor),
):
    op = get_op_or_404(db, op_id)
    cotas, amostras, medicoes = load_context(db, op)
    content, filename = build_xlsx(op.codigo, amostras, cotas, medicoes)
    return _attachment(content, XLSX_CONTENT_TYPE, filename)
