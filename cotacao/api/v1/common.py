from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Union

from fastapi import HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from cotacao.db import models
from cotacao.quality.numbers import InvalidNumberError, format_decimal_br
from cotacao.quality.progress import OPIncompleteError, build_matrix, build_report
from cotacao.quality.sampling import resolve_plan
from cotacao.quality.tolerance import ToleranceSpec, describe_spec, evaluate
from cotacao.services.ops import (
    OP_ABERTA,
    MeasurementTargetError,
    OPClosedError,
    SamplesExistError,
    load_context,
)


class GerarAmostrasPayload(BaseModel):
    qty: int = Field(..., gt=0)
    freq: int = Field(..., gt=0)


class MedicaoPayload(BaseModel):
    amostra_id: str
    cota_id: str
    # "12,34" (teclado pt-BR) ou numero JSON
    valor: Union[str, float]


class OPResponse(BaseModel):
    id: str
    codigo: str
    status: str
    desenho_id: Optional[str] = None
    qty: Optional[int] = None
    freq: Optional[int] = None
    params_origem: Optional[str] = None
    created_at: Optional[datetime] = None
    concluida_em: Optional[datetime] = None

    class Config:
        from_attributes = True


class CotaResponse(BaseModel):
    id: str
    desenho_id: str
    etiqueta: str
    x_percent: float
    y_percent: float
    observacao: Optional[str] = None
    nominal: Optional[Decimal] = None
    tol_mais: Optional[Decimal] = None
    tol_menos: Optional[Decimal] = None
    unidade: Optional[str] = None
    spec: str = ""

    class Config:
        from_attributes = True


class AmostraResponse(BaseModel):
    id: str
    indice: int
    status: str

    class Config:
        from_attributes = True


class DesenhoResumo(BaseModel):
    id: str
    codigo: str
    nome: str
    imagem_url: str
    largura_px: Optional[int] = None
    altura_px: Optional[int] = None

    class Config:
        from_attributes = True


def cota_to_response(cota: models.Cota) -> CotaResponse:
    response = CotaResponse.model_validate(cota)
    response.spec = describe_spec(ToleranceSpec.of(cota))
    return response


def get_op_or_404(db: Session, op_id: str) -> models.OP:
    op = db.query(models.OP).filter(models.OP.id == op_id).first()
    if not op:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="OP nao encontrada")
    return op


def domain_http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, OPIncompleteError):
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={
                "code": "op_incompleta",
                "message": "Faltam valores. Complete todas as cotas de todas as pecas.",
                "faltando": exc.faltando,
            },
        )
    if isinstance(exc, OPClosedError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, SamplesExistError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, MeasurementTargetError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, InvalidNumberError):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def medicao_to_dict(medicao: models.Medicao, cota: Optional[models.Cota]) -> dict:
    result = evaluate(ToleranceSpec.of(cota), medicao.valor) if cota is not None else None
    return {
        "id": medicao.id,
        "amostra_id": medicao.amostra_id,
        "cota_id": medicao.cota_id,
        "valor": medicao.valor,
        "valor_fmt": format_decimal_br(medicao.valor, grouped=False),
        "avaliacao": result.value if result else None,
    }


def op_detail(db: Session, op: models.OP) -> dict:
    cotas, amostras, medicoes = load_context(db, op)
    report = build_report(amostras, cotas, medicoes)
    matrix = build_matrix(amostras, cotas, medicoes)
    cotas_by_id = {cota.id: cota for cota in cotas}
    validas = [m for m in medicoes if m.cota_id in cotas_by_id]
    plano = resolve_plan(op.qty, op.freq, op.params_origem, [a.indice for a in amostras])
    desenho = DesenhoResumo.model_validate(op.desenho).model_dump() if op.desenho else None
    amostras_out: List[dict] = [
        {**AmostraResponse.model_validate(a).model_dump(), "lidos": len(matrix.get(a.id, {}))}
        for a in amostras
    ]
    return {
        "op": OPResponse.model_validate(op).model_dump(),
        "desenho": desenho,
        "plano": plano.as_dict(),
        "cotas": [cota_to_response(cota).model_dump() for cota in cotas],
        "amostras": amostras_out,
        "medicoes": [medicao_to_dict(m, cotas_by_id[m.cota_id]) for m in validas],
        "totais": {
            "lidos": report.completeness.lidos,
            "esperado": report.completeness.esperado,
            "pct": report.completeness.pct,
        },
        "por_cota": [summary.as_dict() for summary in report.por_cota],
        "pronta_para_concluir": op.status == OP_ABERTA and report.pronta_para_concluir,
        "faltando": report.faltando,
    }
