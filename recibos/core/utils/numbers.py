"""
numbers.py
----------
Importes en punto fijo con 2 decimales.

Nunca se usa float: los valores viajan como str "1234.56" y se operan
como Decimal.

El separador decimal se decide por posición: el que aparece más a la
derecha entre '.' y ',' es el decimal; el otro es separador de miles.

    "1.234,56"   -> Decimal("1234.56")
    "27,640.12"  -> Decimal("27640.12")
    "$ -500,00"  -> Decimal("-500.00")
    "abc"        -> None
"""

from __future__ import annotations

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

_CODE_RE = re.compile(r"^\d{5}$")
_NON_NUMERIC_RE = re.compile(r"[^0-9.\-]")


def parse_decimal(raw: Any) -> Optional[Decimal]:
    """
    Convierte un importe (formato argentino o anglosajón) a Decimal.
    Retorna None si no hay un número válido; nunca NaN ni infinito.
    """
    if raw is None:
        return None
    if isinstance(raw, Decimal):
        return raw if raw.is_finite() else None
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return Decimal(raw)
    if isinstance(raw, float):
        # Celdas numéricas de Excel: repr() evita arrastrar el error binario
        if raw != raw or raw in (float("inf"), float("-inf")):
            return None
        return Decimal(repr(raw))

    t = re.sub(r"\s+", "", str(raw))
    if not t or t in ("-", "—", "$", "$-"):
        return None

    last_dot = t.rfind(".")
    last_comma = t.rfind(",")
    if last_comma > last_dot:
        t = t.replace(".", "").replace(",", ".")
    else:
        t = t.replace(",", "")

    t = _NON_NUMERIC_RE.sub("", t)
    if not t or t in ("-", ".", "-."):
        return None

    try:
        value = Decimal(t)
    except InvalidOperation:
        return None
    return value if value.is_finite() else None


def quantize(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def format_decimal(value: Decimal) -> str:
    """Decimal -> "1234.56" (siempre 2 decimales, signo preservado)."""
    return f"{quantize(value):f}"


def to_decimal_str(raw: Any) -> Optional[str]:
    """parse_decimal + format_decimal; None si no es un número."""
    value = parse_decimal(raw)
    return None if value is None else format_decimal(value)


def is_code(key: Any) -> bool:
    """Los códigos de concepto de liquidación son de 5 dígitos."""
    return bool(_CODE_RE.match(str(key).strip()))
