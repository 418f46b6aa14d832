import logging
from datetime import datetime
from typing import List, Optional, Union

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile, status
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cotacao.api.v1.common import CotaResponse, cota_to_response
from cotacao.core.config import settings
from cotacao.core.security import ROLE_GESTOR, require_role
from cotacao.db import models
from cotacao.db.session import get_db
from cotacao.quality.numbers import InvalidNumberError, to_optional_decimal
from cotacao.quality.tolerance import DEFAULT_UNIT
from cotacao.services.audit import audit_log
from cotacao.services.desenhos import (
    DesenhoInUseError,
    InvalidImageError,
    clamp01,
    count_references,
    create_desenho,
    delete_desenho,
    next_etiqueta,
)
from cotacao.services.ops import refresh_desenho_samples
from cotacao.services.storage import StorageClient, StorageError, get_storage

logger = logging.getLogger("cotacao.desenhos")

router = APIRouter(prefix="/gestor", tags=["Gestor - Desenhos"])
require_gestor = require_role(ROLE_GESTOR)

SpecValue = Optional[Union[str, float]]


class DesenhoResponse(BaseModel):
    id: str
    codigo: str
    nome: str
    descricao: Optional[str] = None
    imagem_url: str
    largura_px: Optional[int] = None
    altura_px: Optional[int] = None
    archived: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class DesenhoDetail(DesenhoResponse):
    cotas: List[CotaResponse] = []


class DesenhoUpdate(BaseModel):
    nome: Optional[str] = Field(None, min_length=1)
    descricao: Optional[str] = None
    archived: Optional[bool] = None


class CotaCreate(BaseModel):
    etiqueta: Optional[str] = None
    x_percent: float = 0.5
    y_percent: float = 0.5
    observacao: Optional[str] = None
    nominal: SpecValue = None
    tol_mais: SpecValue = None
    tol_menos: SpecValue = None
    unidade: Optional[str] = DEFAULT_UNIT


class CotaUpdate(BaseModel):
    etiqueta: Optional[str] = None
    x_percent: Optional[float] = None
    y_percent: Optional[float] = None
    observacao: Optional[str] = None
    nominal: SpecValue = None
    tol_mais: SpecValue = None
    tol_menos: SpecValue = None
    unidade: Optional[str] = None


def _get_desenho_or_404(db: Session, desenho_id: str) -> models.Desenho:
    desenho = db.query(models.Desenho).filter(models.Desenho.id == desenho_id).first()
    if not desenho:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Desenho nao encontrado")
    return desenho


def _get_cota_or_404(db: Session, cota_id: str) -> models.Cota:
    cota = db.query(models.Cota).filter(models.Cota.id == cota_id).first()
    if not cota:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Cota nao encontrada")
    return cota


def _detail(desenho: models.Desenho) -> DesenhoDetail:
    response = DesenhoDetail.model_validate(desenho)
    response.cotas = [cota_to_response(cota) for cota in sorted(desenho.cotas, key=lambda c: c.etiqueta)]
    return response


def _apply_cota_fields(cota: models.Cota, data: dict) -> None:
    try:
        for field in ("nominal", "tol_mais", "tol_menos"):
            if field in data:
                setattr(cota, field, to_optional_decimal(data[field]))
    except InvalidNumberError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    if data.get("etiqueta"):
        cota.etiqueta = data["etiqueta"].strip().upper()
    if "x_percent" in data and data["x_percent"] is not None:
        cota.x_percent = clamp01(data["x_percent"])
    if "y_percent" in data and data["y_percent"] is not None:
        cota.y_percent = clamp01(data["y_percent"])
    if "observacao" in data:
        cota.observacao = data["observacao"] or None
    if "unidade" in data:
        cota.unidade = (data["unidade"] or "").strip() or DEFAULT_UNIT


def _commit_cota(db: Session, cota: models.Cota) -> None:
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Ja existe uma cota com a etiqueta {cota.etiqueta} neste desenho",
        )


@router.get("/desenhos", response_model=List[DesenhoResponse])
def list_desenhos(
    archived: Optional[bool] = Query(None, description="true/false; omitido = todos"),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_gestor),
):
    query = db.query(models.Desenho)
    if archived is not None:
        query = query.filter(models.Desenho.archived == archived)
    return query.order_by(models.Desenho.updated_at.desc()).all()


@router.post("/desenhos", response_model=DesenhoResponse, status_code=status.HTTP_201_CREATED)
async def upload_desenho(
    codigo: str = Form(...),
    nome: str = Form(...),
    descricao: Optional[str] = Form(None),
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    storage: StorageClient = Depends(get_storage),
    current_user: models.User = Depends(require_gestor),
):
    codigo = codigo.strip()
    nome = nome.strip()
    if not codigo or not nome:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Informe codigo e nome")
    data = await file.read()
    try:
        desenho = create_desenho(
            db,
            storage,
            codigo=codigo,
            nome=nome,
            descricao=descricao,
            filename=file.filename,
            data=data,
            max_bytes=settings.MAX_IMAGE_BYTES,
        )
    except InvalidImageError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except StorageError as exc:
        logger.warning("falha no upload do desenho codigo=%s erro=%s", codigo, exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Falha no storage: {exc}")
    logger.info("desenho criado codigo=%s %sx%s", desenho.codigo, desenho.largura_px, desenho.altura_px)
    return desenho


@router.get("/desenhos/{desenho_id}", response_model=DesenhoDetail)
def get_desenho(
    desenho_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_gestor),
):
    return _detail(_get_desenho_or_404(db, desenho_id))


@router.patch("/desenhos/{desenho_id}", response_model=DesenhoResponse)
def update_desenho(
    desenho_id: str,
    payload: DesenhoUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_gestor),
):
    desenho = _get_desenho_or_404(db, desenho_id)
    data = payload.model_dump(exclude_unset=True)
    if data.get("nome"):
        desenho.nome = data["nome"].strip()
    if "descricao" in data:
        desenho.descricao = data["descricao"] or None
    if data.get("archived") is not None:
        desenho.archived = data["archived"]
    desenho.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(desenho)
    return desenho


@router.get("/desenhos/{desenho_id}/referencias")
def desenho_referencias(
    desenho_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_gestor),
):
    desenho = _get_desenho_or_404(db, desenho_id)
    return {"desenho_id": desenho.id, "ops": count_references(db, desenho.id)}


@router.delete("/desenhos/{desenho_id}")
def remove_desenho(
    desenho_id: str,
    request: Request,
    confirmar: bool = Query(False),
    db: Session = Depends(get_db),
    storage: StorageClient = Depends(get_storage),
    current_user: models.User = Depends(require_gestor),
):
    desenho = _get_desenho_or_404(db, desenho_id)
    codigo = desenho.codigo
    try:
        result = delete_desenho(db, storage, desenho, confirmar=confirmar)
    except DesenhoInUseError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "code": "desenho_em_uso",
                "message": f"{exc} Confirme para desvincular e excluir.",
                "referencias": exc.referencias,
            },
        )
    audit_log(db, request, current_user, "DESENHO_DELETE", "desenho", desenho_id, {"codigo": codigo, **result})
    return {"ok": True, **result}


@router.get("/desenhos/{desenho_id}/cotas/proxima-etiqueta")
def suggest_etiqueta(
    desenho_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_gestor),
):
    desenho = _get_desenho_or_404(db, desenho_id)
    return {"etiqueta": next_etiqueta(desenho.cotas)}


@router.post(
    "/desenhos/{desenho_id}/cotas",
    response_model=CotaResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_cota(
    desenho_id: str,
    payload: CotaCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_gestor),
):
    desenho = _get_desenho_or_404(db, desenho_id)
    data = payload.model_dump()
    if not (data.get("etiqueta") or "").strip():
        data["etiqueta"] = next_etiqueta(desenho.cotas)
    cota = models.Cota(desenho_id=desenho.id)
    _apply_cota_fields(cota, data)
    db.add(cota)
    _commit_cota(db, cota)
    refresh_desenho_samples(db, desenho.id)
    db.commit()
    db.refresh(cota)
    return cota_to_response(cota)


@router.patch("/cotas/{cota_id}", response_model=CotaResponse)
def update_cota(
    cota_id: str,
    payload: CotaUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_gestor),
):
    cota = _get_cota_or_404(db, cota_id)
    _apply_cota_fields(cota, payload.model_dump(exclude_unset=True))
    _commit_cota(db, cota)
    db.refresh(cota)
    return cota_to_response(cota)


@router.delete("/cotas/{cota_id}")
def delete_cota(
    cota_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_gestor),
):
    cota = _get_cota_or_404(db, cota_id)
    desenho_id = cota.desenho_id
    db.delete(cota)
    db.commit()
    refresh_desenho_samples(db, desenho_id)
    db.commit()
    return {"ok": True}
