from dataclasses import dataclass
from functools import reduce
from math import gcd
from typing import Iterable, Optional

ORIGEM_GESTOR = "gestor"
ORIGEM_OPERADOR = "operador"
ORIGEM_INFERIDA = "inferida"

DECLARED_ORIGINS = {ORIGEM_GESTOR, ORIGEM_OPERADOR}


@dataclass(frozen=True)
class SamplingPlan:
    qty: Optional[int]
    freq: Optional[int]
    origem: str
    qty_inferida: bool = False
    freq_inferida: bool = False

    @property
    def declarado(self) -> bool:
        return self.origem in DECLARED_ORIGINS

    def as_dict(self) -> dict:
        return {
            "qty": self.qty,
            "freq": self.freq,
            "origem": self.origem,
            "qty_inferida": self.qty_inferida,
            "freq_inferida": self.freq_inferida,
        }


def generate_indices(qty: Optional[int], freq: Optional[int]) -> list[int]:
    """Pecas freq, 2*freq, ... ate o maior multiplo de freq que nao passa de qty."""
    if not qty or not freq or qty <= 0 or freq <= 0:
        return []
    return list(range(freq, qty + 1, freq))


def infer_qty(indices: Iterable[int]) -> Optional[int]:
    values = list(indices)
    if not values:
        return None
    return max(values)


def infer_freq(indices: Iterable[int]) -> Optional[int]:
    divisor = reduce(gcd, (int(value) for value in indices), 0)
    return divisor or None


def infer_plan(indices: Iterable[int]) -> tuple[Optional[int], Optional[int]]:
    values = list(indices)
    return infer_qty(values), infer_freq(values)


def resolve_plan(
    declared_qty: Optional[int],
    declared_freq: Optional[int],
    origem: Optional[str],
    indices: Iterable[int],
) -> SamplingPlan:
    """
    Plano exibido para uma OP. Valores declarados prevalecem; o que faltar
    e inferido das amostras existentes e marcado como inferido. Nunca
    altera os campos declarados da OP.
    """
    qty_inferida, freq_inferida = infer_plan(indices)
    qty = declared_qty if declared_qty is not None else qty_inferida
    freq = declared_freq if declared_freq is not None else freq_inferida
    return SamplingPlan(
        qty=qty,
        freq=freq,
        origem=origem if origem in DECLARED_ORIGINS else ORIGEM_INFERIDA,
        qty_inferida=declared_qty is None and qty is not None,
        freq_inferida=declared_freq is None and freq is not None,
    )
