from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Sequence

from cotacao.quality.numbers import percent, to_decimal
from cotacao.quality.tolerance import ToleranceResult, ToleranceSpec, describe_spec, evaluate

STATUS_PENDENTE = "pendente"
STATUS_CONCLUIDA = "concluida"

Matrix = dict[str, dict[str, Decimal]]


class OPIncompleteError(Exception):
    def __init__(self, faltando: list[dict]):
        super().__init__("OP incompleta: existem pecas sem todas as cotas medidas.")
        self.faltando = faltando


@dataclass(frozen=True)
class Completeness:
    lidos: int
    esperado: int
    pct: int


@dataclass
class CotaSummary:
    cota_id: str
    etiqueta: str
    lidos: int = 0
    ok: int = 0
    fora: int = 0
    nao_aplicavel: int = 0
    spec: str = ""

    @property
    def pct_fora(self) -> int:
        return percent(self.fora, self.lidos)

    def as_dict(self) -> dict:
        return {
            "cota_id": self.cota_id,
            "etiqueta": self.etiqueta,
            "lidos": self.lidos,
            "ok": self.ok,
            "fora": self.fora,
            "nao_aplicavel": self.nao_aplicavel,
            "pct_fora": self.pct_fora,
            "spec": self.spec,
        }


@dataclass(frozen=True)
class QualityTotals:
    lidos: int
    fora: int
    pct_fora: int


@dataclass
class OPReport:
    completeness: Completeness
    por_cota: list[CotaSummary] = field(default_factory=list)
    faltando: list[dict] = field(default_factory=list)

    @property
    def pronta_para_concluir(self) -> bool:
        return self.completeness.esperado > 0 and not self.faltando


def sort_cotas(cotas: Iterable) -> list:
    return sorted(cotas, key=lambda cota: cota.etiqueta)


def build_matrix(amostras: Sequence, cotas: Sequence, medicoes: Iterable) -> Matrix:
    """
    amostra_id -> {cota_id -> valor}. Medicoes de amostras ou cotas que nao
    existem mais sao descartadas.
    """
    amostra_ids = {amostra.id for amostra in amostras}
    cota_ids = {cota.id for cota in cotas}
    matrix: Matrix = {amostra_id: {} for amostra_id in amostra_ids}
    for medicao in medicoes:
        if medicao.amostra_id not in amostra_ids or medicao.cota_id not in cota_ids:
            continue
        matrix[medicao.amostra_id][medicao.cota_id] = to_decimal(medicao.valor)
    return matrix


def completeness(amostras: Sequence, cotas: Sequence, matrix: Matrix) -> Completeness:
    esperado = len(amostras) * len(cotas)
    lidos = sum(len(row) for row in matrix.values())
    return Completeness(lidos=lidos, esperado=esperado, pct=percent(lidos, esperado))


def summarize_by_cota(amostras: Sequence, cotas: Sequence, matrix: Matrix) -> list[CotaSummary]:
    summaries = []
    for cota in sort_cotas(cotas):
        spec = ToleranceSpec.of(cota)
        summary = CotaSummary(cota_id=cota.id, etiqueta=cota.etiqueta, spec=describe_spec(spec))
        for amostra in amostras:
            valor = matrix.get(amostra.id, {}).get(cota.id)
            if valor is None:
                continue
            summary.lidos += 1
            result = evaluate(spec, valor)
            if result is ToleranceResult.WITHIN:
                summary.ok += 1
            elif result is ToleranceResult.OUT:
                summary.fora += 1
            else:
                summary.nao_aplicavel += 1
        summaries.append(summary)
    return summaries


def quality_totals(summaries: Iterable[CotaSummary]) -> QualityTotals:
    lidos = 0
    fora = 0
    for summary in summaries:
        lidos += summary.lidos
        fora += summary.fora
    return QualityTotals(lidos=lidos, fora=fora, pct_fora=percent(fora, lidos))


def sample_status(amostra, cotas: Sequence, matrix: Matrix) -> str:
    if cotas and len(matrix.get(amostra.id, {})) >= len(cotas):
        return STATUS_CONCLUIDA
    return STATUS_PENDENTE


def missing_measurements(amostras: Sequence, cotas: Sequence, matrix: Matrix) -> list[dict]:
    faltando = []
    for amostra in sorted(amostras, key=lambda a: a.indice):
        row = matrix.get(amostra.id, {})
        etiquetas = [cota.etiqueta for cota in sort_cotas(cotas) if cota.id not in row]
        if etiquetas:
            faltando.append({"indice": amostra.indice, "cotas": etiquetas})
    return faltando


def build_report(amostras: Sequence, cotas: Sequence, medicoes: Iterable) -> OPReport:
    matrix = build_matrix(amostras, cotas, medicoes)
    return OPReport(
        completeness=completeness(amostras, cotas, matrix),
        por_cota=summarize_by_cota(amostras, cotas, matrix),
        faltando=missing_measurements(amostras, cotas, matrix),
    )


def ensure_can_complete(amostras: Sequence, cotas: Sequence, medicoes: Iterable) -> OPReport:
    """Uma OP so pode ser concluida com todas as cotas de todas as pecas medidas."""
    report = build_report(amostras, cotas, medicoes)
    if not report.pronta_para_concluir:
        raise OPIncompleteError(report.faltando)
    return report
