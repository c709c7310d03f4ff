"""
tests/test_normalizer.py
------------------------
Normalización de texto y carga de la tabla de códigos.
"""

import pytest

from recibos.core.errors import ConfigError
from recibos.core.models import LedgerEntry
from recibos.core.normalizer.dictionary_loader import load_code_table
from recibos.core.normalizer.text import (
    normalize_lines,
    normalize_name,
    normalize_text,
    strip_accents,
    strip_separators,
)


# ---------------------------------------------------------------------------
# Texto
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("raw, expected", [
    ("  Contribución   Solidaria ", "Contribucion Solidaria"),
    ("PÉREZ, JOSÉ", "PEREZ, JOSE"),
    ("Año\tliquidación", "Ano liquidacion"),
    ("", ""),
    (None, ""),
])
def test_normalize_text(raw, expected):
    assert normalize_text(raw) == expected


def test_strip_accents_keeps_base_letters():
    assert strip_accents("ñandú ü") == "nandu u"


def test_normalize_name_lowercases():
    assert normalize_name("SUMAR_Recibos Sueldos 09.2025.PDF") == "sumar_recibos sueldos 09.2025.pdf"


@pytest.mark.parametrize("raw, expected", [
    ("t.y.s.a", "tysa"),
    ("t_y_s_a", "tysa"),
    ("t-y-s-a", "tysa"),
    ("sumar recibos", "sumarrecibos"),
])
def test_strip_separators(raw, expected):
    assert strip_separators(raw) == expected


def test_normalize_lines_drops_blank_lines():
    text = "Legajo: 123\n\n   \nCUOTA   MUTUAL\n"
    assert normalize_lines(text) == ["Legajo: 123", "CUOTA MUTUAL"]


# ---------------------------------------------------------------------------
# Tabla de códigos
# ---------------------------------------------------------------------------

def test_code_table_order_and_labels(code_table):
    assert code_table.order == ["20540", "20590", "20595", "20610", "20620"]
    assert code_table.label_for("20540") == "CONTRIBUCION SOLIDARIA"
    # Código no mapeado: se muestra tal cual
    assert code_table.label_for("99999") == "99999"


def test_code_table_synonyms_keep_yaml_order(code_table):
    assert code_table.codes["20540"].sinonimos[0] == "Contrib.Solidaria"
    assert "0324" in code_table.codes["20590"].sinonimos


def test_code_table_split_unknown_bucket(code_table):
    known, unknown = code_table.split({"20540": "10.00", "30000": "5.00"})
    assert known == {"20540": "10.00"}
    assert unknown == {"30000": "5.00"}


def test_ledger_entry_field_buckets(code_table):
    entry = LedgerEntry(key="1||09/2025", legajo="1", periodo="09/2025",
                        fields={"20540": "10.00", "30000": "5.00"})
    assert entry.known_fields(code_table) == {"20540": "10.00"}
    assert entry.unknown_fields(code_table) == {"30000": "5.00"}


def test_code_table_rejects_invalid_code(tmp_path):
    path = tmp_path / "codes.yaml"
    path.write_text('codigos:\n  "123":\n    label: X\n    sinonimos: [x]\n', encoding="utf-8")
    with pytest.raises(ConfigError):
        load_code_table(path)


def test_code_table_rejects_missing_synonyms(tmp_path):
    path = tmp_path / "codes.yaml"
    path.write_text('codigos:\n  "20540":\n    label: X\n', encoding="utf-8")
    with pytest.raises(ConfigError):
        load_code_table(path)
