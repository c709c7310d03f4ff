"""
tests/test_classifier.py
------------------------
Detección de empresa por nombre de archivo y por contenido.
"""

import pytest

from recibos.core.models import CompanyId
from recibos.core.parsers.company_classifier import classify, classify_content, classify_filename


@pytest.mark.parametrize("filename, empresa", [
    ("SUMAR_recibos sueldos 09.2025.pdf", CompanyId.SUMAR),
    ("Recibos LIMPAR septiembre.pdf", CompanyId.LIMPAR),
    ("lime-recibos-2025-09.PDF", CompanyId.LIME),
    ("T.Y.S.A recibos.pdf", CompanyId.TYSA),
    ("t_y_s_a_092025.pdf", CompanyId.TYSA),
])
def test_classify_by_filename(filename, empresa):
    det = classify_filename(filename)
    assert det.empresa is empresa
    assert det.method == "filename"
    assert det.confidence >= 0.8


def test_sumar_filename_scenario():
    det = classify("SUMAR_recibos sueldos 09.2025.pdf")
    assert det.empresa.value == "sumar"
    assert det.confidence >= 0.8
    assert "sumar" in det.tokens_hit


def test_unknown_filename_without_text():
    det = classify("recibo.pdf")
    assert det.is_unknown
    assert det.confidence == 0.0
    assert det.method == "none"


def test_filename_wins_over_content():
    det = classify("SUMAR_recibos.pdf", "LIMPAR S.R.L.\nContrib.Solidaria 100,00")
    assert det.empresa is CompanyId.SUMAR
    assert det.method == "filename"


@pytest.mark.parametrize("text, empresa", [
    ("LIMPAR S.R.L.\nRecibo de haberes", CompanyId.LIMPAR),
    ("Sumar S.A.\nRecibo", CompanyId.SUMAR),
    ("0323 Contribucion 1.200,00\n0324 Sepelio 300,00", CompanyId.SUMAR),
    ("Contrib.Solidaria 1.234,56", CompanyId.LIME),
    ("T.Y.S.A. Servicios", CompanyId.TYSA),
])
def test_classify_by_content(text, empresa):
    det = classify("recibo.pdf", text)
    assert det.empresa is empresa
    assert det.method == "content"
    assert 0 < det.confidence < 0.8


def test_contrib_solidaria_with_cuota_gremial_is_not_lime():
    det = classify_content("Contrib.Solidaria 1.234,56\nCuota Gremial 900,00")
    assert det.is_unknown


def test_content_without_signals_is_unknown():
    assert classify("recibo.pdf", "Recibo de haberes\nSueldo basico 100,00").is_unknown
    assert classify_content("").is_unknown


def test_classify_is_deterministic():
    args = ("SUMAR_recibos sueldos 09.2025.pdf", "LIMPAR")
    results = {(classify(*args).empresa, classify(*args).confidence) for _ in range(20)}
    assert len(results) == 1
