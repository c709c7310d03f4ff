"""
tests/test_numbers.py
---------------------
Importes en punto fijo y períodos.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from recibos.core.utils.numbers import format_decimal, is_code, parse_decimal, to_decimal_str
from recibos.core.utils.periodos import extract_periodo_from_filename, normalizar_periodo


# ---------------------------------------------------------------------------
# parse_decimal
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("raw, expected", [
    ("27.380.973,46", Decimal("27380973.46")),
    ("$ 642.515,41", Decimal("642515.41")),
    ("27,640.12", Decimal("27640.12")),
    ("1234,56", Decimal("1234.56")),
    ("-500,00", Decimal("-500.00")),
    ("0,00", Decimal("0.00")),
    ("$ -", None),
    ("-", None),
    ("", None),
    ("abc", None),
    (None, None),
    (1500, Decimal("1500")),
    (1234.56, Decimal("1234.56")),
    (float("nan"), None),
    (True, None),
])
def test_parse_decimal(raw, expected):
    assert parse_decimal(raw) == expected


@pytest.mark.parametrize("value", [
    "0.00", "0.01", "1.10", "50.00", "1234.56", "-0.01", "-450.00", "99999999.99",
])
def test_decimal_round_trip(value):
    """format(parse(d)) == d para strings con 2 decimales."""
    assert format_decimal(parse_decimal(value)) == value


def test_format_decimal_rounds_half_up():
    assert format_decimal(Decimal("0.005")) == "0.01"
    assert format_decimal(Decimal("2")) == "2.00"


def test_to_decimal_str():
    assert to_decimal_str("1.234,56") == "1234.56"
    assert to_decimal_str("") is None


@pytest.mark.parametrize("raw, expected", [
    ("20540", True),
    (20540, True),
    ("2054", False),
    ("LEGAJO", False),
])
def test_is_code(raw, expected):
    assert is_code(raw) is expected


# ---------------------------------------------------------------------------
# Períodos
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("raw, expected", [
    ("09/2025", "09/2025"),
    ("9/2025", "09/2025"),
    ("6-25", "06/2025"),
    ("2025-06", "06/2025"),
    ("04/07/2025", "07/2025"),
    ("jun-25", "06/2025"),
    ("Junio 2025", "06/2025"),
    ("setiembre 2025", "09/2025"),
    ("2025 junio", "06/2025"),
    ("202506", "06/2025"),
    ("062025", "06/2025"),
    (datetime(2025, 10, 1), "10/2025"),
    (45901, "09/2025"),          # serial de Excel: 2025-09-01
    ("13/2025", ""),
    ("cualquier cosa", ""),
    (None, ""),
])
def test_normalizar_periodo(raw, expected):
    assert normalizar_periodo(raw) == expected


@pytest.mark.parametrize("filename, expected", [
    ("SUMAR_recibos sueldos 09.2025.pdf", "09/2025"),
    ("recibos SETIEMBRE 2025.pdf", "09/2025"),
    ("recibos_092025.pdf", "09/2025"),
    ("recibo.pdf", None),
])
def test_extract_periodo_from_filename(filename, expected):
    assert extract_periodo_from_filename(filename) == expected
