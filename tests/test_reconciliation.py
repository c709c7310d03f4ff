"""
tests/test_reconciliation.py
----------------------------
Diferencias oficial vs. recibo y control por período.
"""

from decimal import Decimal

import pytest

from recibos.core.control.reconciliation import (
    A_FAVOR,
    EN_CONTRA,
    ESTADO_DIF,
    ESTADO_OK,
    ESTADO_SIN_OFICIAL,
    ESTADO_SIN_RECIBO,
    control_period,
    reconcile,
)
from recibos.core.models import LedgerEntry, OfficialRow


def test_official_exceeds_calculated_scenario():
    diffs = reconcile({"20530": "500.00"}, {"20530": "450.00"}, "1.00")
    assert len(diffs) == 1
    assert diffs[0].codigo == "20530"
    assert diffs[0].delta == "50.00"
    assert diffs[0].direccion == A_FAVOR
    assert diffs[0].oficial == "500.00"
    assert diffs[0].calculado == "450.00"


def test_calculated_exceeds_official_is_en_contra():
    [diff] = reconcile({"20540": "100.00"}, {"20540": "130.50"}, "0.01")
    assert diff.delta == "-30.50"
    assert diff.direccion == EN_CONTRA


@pytest.mark.parametrize("tolerance", ["0.01", "1.00", "50.00"])
def test_threshold_is_strict(tolerance):
    tol = Decimal(tolerance)
    official = {"20540": "100.00"}

    at_limit = {"20540": str(Decimal("100.00") - tol)}
    above = {"20540": str(Decimal("100.00") - tol - Decimal("0.01"))}

    assert reconcile(official, at_limit, tolerance) == []
    assert len(reconcile(official, above, tolerance)) == 1


def test_missing_side_counts_as_zero():
    diffs = reconcile({"20540": "10.00"}, {"20590": "20.00"}, "0.01")
    by_code = {d.codigo: d for d in diffs}
    assert by_code["20540"].calculado == "0.00"
    assert by_code["20540"].direccion == A_FAVOR
    assert by_code["20590"].oficial == "0.00"
    assert by_code["20590"].direccion == EN_CONTRA


def test_values_in_local_format_are_accepted():
    [diff] = reconcile({"20540": "1.234,56"}, {"20540": "1000.00"}, "0,01")
    assert diff.delta == "234.56"


def test_no_float_artifacts():
    # 0.1 + 0.2 en float no da 0.3
    assert reconcile({"20540": "0.30"}, {"20540": "0.30"}, "0.00") == []
    assert reconcile({"20540": "1000000.10"}, {"20540": "1000000.09"}, "0.01") == []


def test_ordering_code_ascending_by_default():
    official = {"20620": "9.00", "20540": "9.00", "20590": "9.00"}
    assert [d.codigo for d in reconcile(official, {}, "0.01")] == ["20540", "20590", "20620"]


def test_ordering_follows_caller_order_then_code():
    official = {"20620": "9.00", "20540": "9.00", "99999": "9.00", "10000": "9.00"}
    codes = [d.codigo for d in reconcile(official, {}, "0.01", order=["20620", "20540"])]
    assert codes == ["20620", "20540", "10000", "99999"]


def test_labels_callback(code_table):
    [diff] = reconcile({"20590": "300.00"}, {}, "0.01", labels=code_table.label_for)
    assert diff.label == "SEGURO DE SEPELIO"


def test_invalid_tolerance():
    with pytest.raises(ValueError):
        reconcile({}, {}, "mucho")


def test_reconcile_is_pure():
    official = {"20540": "10.00"}
    calculated = {"20540": "5.00"}
    first = reconcile(official, calculated, "0.01")
    assert reconcile(official, calculated, "0.01") == first
    assert official == {"20540": "10.00"} and calculated == {"20540": "5.00"}


# ---------------------------------------------------------------------------
# control_period
# ---------------------------------------------------------------------------

def _official(legajo, valores, periodo="09/2025", nombre="OFICIAL"):
    return OfficialRow(key=f"{legajo}||{periodo}", legajo=legajo, periodo=periodo, nombre=nombre, valores=valores)


def _entry(legajo, fields, periodo="09/2025", empresa=None, files=("r.pdf",)):
    key = f"{legajo}||{periodo}" + (f"||{empresa}" if empresa else "")
    return LedgerEntry(key=key, legajo=legajo, periodo=periodo, nombre="RECIBO", empresa=empresa,
                       source_files=list(files), fields=fields)


def test_control_period_states():
    rows = [
        _official("1", {"20540": "100.00"}),
        _official("2", {"20540": "100.00"}),
        _official("3", {"20540": "100.00"}),
    ]
    entries = [
        _entry("1", {"20540": "100.00"}),
        _entry("2", {"20540": "80.00"}),
        _entry("4", {"20540": "50.00"}),
    ]

    results = {r.legajo: r for r in control_period(rows, entries, "1.00")}

    assert results["1"].estado == ESTADO_OK
    assert results["2"].estado == ESTADO_DIF
    assert results["2"].diffs[0].delta == "20.00"
    assert results["3"].estado == ESTADO_SIN_RECIBO
    assert results["4"].estado == ESTADO_SIN_OFICIAL
    assert results["4"].archivos == ["r.pdf"]
    assert results["1"].nombre == "OFICIAL"


def test_control_period_merges_entries_keyed_by_company():
    rows = [_official("1", {"20540": "100.00", "20590": "50.00"})]
    entries = [
        _entry("1", {"20540": "100.00"}, empresa="sumar", files=["a.pdf"]),
        _entry("1", {"20590": "50.00"}, empresa="lime", files=["b.pdf"]),
    ]
    [result] = control_period(rows, entries, "0.01")
    assert result.estado == ESTADO_OK
    assert result.archivos == ["a.pdf", "b.pdf"]


def test_control_period_sorted_by_key():
    rows = [_official("2", {}), _official("1", {}), _official("1", {}, periodo="10/2025")]
    keys = [r.key for r in control_period(rows, [], "0.01")]
    assert keys == ["1||09/2025", "1||10/2025", "2||09/2025"]


def test_control_result_to_dict():
    [result] = control_period([_official("1", {"20540": "10.00"})], [_entry("1", {})], "0.01")
    d = result.to_dict()
    assert d["estado"] == ESTADO_DIF
    assert d["diferencias"][0]["direccion"] == A_FAVOR
