"""
tests/test_storage.py
---------------------
CSV de auditoría y almacenamiento de PDFs en disco.
"""

import pytest

from recibos.core.errors import StorageError
from recibos.core.ledger.audit_csv import CSV_COLUMNS, CsvAuditLedger
from recibos.core.ledger.blob_store import DiskBlobStore, sanitize_filename
from recibos.core.models import AuditRow


def _row(archivo="recibo.pdf", legajo="123", periodo="09/2025", codigos=None):
    return AuditRow(
        fecha="2025-10-01T12:00:00+00:00",
        archivo=archivo,
        legajo=legajo,
        periodo=periodo,
        codigos=codigos if codigos is not None else {"20540": "1234.56"},
    )


# ---------------------------------------------------------------------------
# CSV de auditoría
# ---------------------------------------------------------------------------

def test_csv_header_and_quoting(tmp_path):
    path = tmp_path / "auditoria" / "recibos.csv"
    ledger = CsvAuditLedger(path)
    assert ledger.append(_row(archivo='recibo "final", v2.pdf'))

    lines = path.read_text(encoding="utf-8").splitlines()
    assert lines[0] == ",".join(CSV_COLUMNS)
    assert lines[1] == (
        '2025-10-01T12:00:00+00:00,'
        '"recibo ""final"", v2.pdf",'
        '123,09/2025,'
        '"{""20540"": ""1234.56""}"'
    )


def test_csv_plain_values_are_not_quoted(tmp_path):
    path = tmp_path / "recibos.csv"
    CsvAuditLedger(path).append(_row(codigos={}))
    assert path.read_text(encoding="utf-8").splitlines()[1] == "2025-10-01T12:00:00+00:00,recibo.pdf,123,09/2025,{}"


def test_csv_one_row_per_key(tmp_path):
    path = tmp_path / "recibos.csv"
    ledger = CsvAuditLedger(path)
    assert ledger.append(_row())
    assert not ledger.append(_row(archivo="otro.pdf"))
    assert ledger.append(_row(periodo="10/2025"))

    assert len(path.read_text(encoding="utf-8").splitlines()) == 3


def test_csv_dedup_survives_reload(tmp_path):
    path = tmp_path / "recibos.csv"
    CsvAuditLedger(path).append(_row())

    reloaded = CsvAuditLedger(path)
    assert "123||09/2025" in reloaded
    assert not reloaded.append(_row(archivo="otro.pdf"))
    rows = reloaded.read_rows()
    assert len(rows) == 1
    assert rows[0].codigos == {"20540": "1234.56"}


# ---------------------------------------------------------------------------
# Blob store
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("raw, expected", [
    ("Recibo Pérez (1).pdf", "Recibo_Perez_1_.pdf"),
    ("../../etc/passwd", "passwd"),
    ("SUMAR_recibos sueldos 09.2025.pdf", "SUMAR_recibos_sueldos_09.2025.pdf"),
])
def test_sanitize_filename(raw, expected):
    assert sanitize_filename(raw) == expected


def test_store_and_read(tmp_path):
    blobs = DiskBlobStore(tmp_path / "uploads")
    ref = blobs.store(b"%PDF-1.4", "recibo.pdf")
    assert ref == "recibo.pdf"
    assert blobs.read(ref) == b"%PDF-1.4"
    assert blobs.url_for(ref) == "/recibos/recibo.pdf"


def test_store_collision_adds_suffix(tmp_path):
    blobs = DiskBlobStore(tmp_path)
    assert blobs.store(b"1", "recibo.pdf") == "recibo.pdf"
    assert blobs.store(b"2", "recibo.pdf") == "recibo-1.pdf"
    assert blobs.store(b"3", "recibo.pdf") == "recibo-2.pdf"
    assert blobs.read("recibo-1.pdf") == b"2"


def test_store_with_key_prefix(tmp_path):
    blobs = DiskBlobStore(tmp_path)
    assert blobs.store(b"x", "recibo.pdf", key="123||09/2025") == "123_09-2025__recibo.pdf"


def test_store_caps_name_length(tmp_path):
    blobs = DiskBlobStore(tmp_path)
    ref = blobs.store(b"x", "a" * 300 + ".pdf")
    assert len(ref) == 180
    assert ref.endswith(".pdf")


def test_url_is_quoted(tmp_path):
    assert DiskBlobStore(tmp_path, url_prefix="/api/v1/recibos/").url_for("a b.pdf") == "/api/v1/recibos/a%20b.pdf"


def test_read_missing_and_invalid_reference(tmp_path):
    blobs = DiskBlobStore(tmp_path)
    with pytest.raises(FileNotFoundError):
        blobs.read("no_existe.pdf")
    with pytest.raises(StorageError):
        blobs.read("../fuera.pdf")


def test_delete(tmp_path):
    blobs = DiskBlobStore(tmp_path)
    ref = blobs.store(b"x", "recibo.pdf")
    blobs.delete(ref)
    assert not (tmp_path / ref).exists()
    blobs.delete(ref)


def test_collision_suffix_keeps_name_cap(tmp_path):
    blobs = DiskBlobStore(tmp_path)
    first = blobs.store(b"1", "a" * 300 + ".pdf")
    second = blobs.store(b"2", "a" * 300 + ".pdf")

    assert len(first) == 180
    assert len(second) == 180
    assert second.endswith("-1.pdf")
    assert blobs.read(second) == b"2"
