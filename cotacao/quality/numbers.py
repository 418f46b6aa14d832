import math
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional, Union

Number = Union[Decimal, int, float, str]

TWO_PLACES = Decimal("0.01")
_BR_SEPARATORS = str.maketrans({",": ".", ".": ","})


class InvalidNumberError(ValueError):
    pass


def parse_decimal_br(raw: str) -> Decimal:
    """
    Converte texto digitado no padrao pt-BR para Decimal.
    - "12,34" -> 12.34
    - "1.234,50" -> 1234.50 (pontos sao separadores de milhar)
    """
    text = (raw or "").strip().replace(" ", "").replace("\u00a0", "")
    if not text:
        raise InvalidNumberError("Valor vazio.")
    canonical = text.replace(".", "").replace(",", ".")
    try:
        value = Decimal(canonical)
    except InvalidOperation:
        raise InvalidNumberError(f"Valor numerico invalido: {raw!r}")
    if not value.is_finite():
        raise InvalidNumberError(f"Valor numerico invalido: {raw!r}")
    return value


def to_decimal(value: Optional[Number]) -> Optional[Decimal]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise InvalidNumberError("Valor booleano nao e numerico.")
    if isinstance(value, Decimal):
        if not value.is_finite():
            raise InvalidNumberError("Valor numerico invalido.")
        return value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise InvalidNumberError("Valor numerico invalido.")
        return Decimal(repr(value))
    if isinstance(value, str):
        return parse_decimal_br(value)
    raise InvalidNumberError(f"Tipo nao suportado: {type(value).__name__}")


def to_optional_decimal(value: Optional[Number]) -> Optional[Decimal]:
    if isinstance(value, str) and not value.strip():
        return None
    return to_decimal(value)


def format_decimal_br(value: Number, grouped: bool = True) -> str:
    """Duas casas decimais com virgula; milhar com ponto apenas quando grouped."""
    number = to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    text = f"{number:,.2f}" if grouped else f"{number:.2f}"
    return text.translate(_BR_SEPARATORS)


def percent(part: int, total: int) -> int:
    if not total:
        return 0
    ratio = Decimal(part) * 100 / Decimal(total)
    return int(ratio.quantize(Decimal(1), rounding=ROUND_HALF_UP))
