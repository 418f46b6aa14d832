from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional

from cotacao.quality.numbers import Number, format_decimal_br, to_decimal

DEFAULT_UNIT = "mm"


class ToleranceResult(str, Enum):
    WITHIN = "dentro"
    OUT = "fora"
    NOT_APPLICABLE = "nao_aplicavel"


@dataclass(frozen=True)
class ToleranceSpec:
    nominal: Optional[Decimal] = None
    tol_mais: Optional[Decimal] = None
    tol_menos: Optional[Decimal] = None
    unidade: Optional[str] = None

    @classmethod
    def of(cls, cota) -> "ToleranceSpec":
        return cls(
            nominal=to_decimal(cota.nominal),
            tol_mais=to_decimal(cota.tol_mais),
            tol_menos=to_decimal(cota.tol_menos),
            unidade=cota.unidade,
        )

    @property
    def complete(self) -> bool:
        return None not in (self.nominal, self.tol_mais, self.tol_menos)

    def band(self) -> Optional[tuple[Decimal, Decimal]]:
        # Tolerancias negativas sao aceitas como vieram; a faixa pode ficar invertida.
        if not self.complete:
            return None
        return self.nominal - self.tol_menos, self.nominal + self.tol_mais


def evaluate(spec: ToleranceSpec, valor: Number) -> ToleranceResult:
    band = spec.band()
    if band is None:
        return ToleranceResult.NOT_APPLICABLE
    minimo, maximo = band
    value = to_decimal(valor)
    if minimo <= value <= maximo:
        return ToleranceResult.WITHIN
    return ToleranceResult.OUT


def evaluate_cota(cota, valor: Number) -> ToleranceResult:
    return evaluate(ToleranceSpec.of(cota), valor)


def describe_spec(spec: ToleranceSpec) -> str:
    if spec.nominal is None:
        return ""
    unidade = spec.unidade or DEFAULT_UNIT
    mais = f" +{format_decimal_br(spec.tol_mais)}" if spec.tol_mais is not None else ""
    menos = f" / -{format_decimal_br(spec.tol_menos)}" if spec.tol_menos is not None else ""
    return f"{format_decimal_br(spec.nominal)}{unidade}{mais}{menos}"
