"""Fixtures compartidas: tabla de códigos, stores, pipeline con PDF simulado."""

from decimal import Decimal
from pathlib import Path

import pytest

from recibos.core.config import Settings
from recibos.core.ledger.audit_csv import CsvAuditLedger
from recibos.core.ledger.blob_store import DiskBlobStore
from recibos.core.ledger.store import MemoryLedgerStore, SqliteLedgerStore
from recibos.core.normalizer.dictionary_loader import load_code_table
from recibos.core.pipeline import API_RECIBOS_PREFIX, ReceiptPipeline

from tests.samples import FakePdf


@pytest.fixture
def code_table():
    return load_code_table()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        data_dir=tmp_path,
        storage_backend="memory",
        tolerancia=Decimal("0.01"),
        max_workers=2,
        parse_timeout_s=2.0,
    )


@pytest.fixture
def memory_store():
    return MemoryLedgerStore()


@pytest.fixture
def sqlite_store(tmp_path: Path):
    store = SqliteLedgerStore(tmp_path / "ledger.db")
    yield store
    store.close()


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path: Path):
    """Los tests de ledger corren contra los dos adaptadores."""
    if request.param == "memory":
        return MemoryLedgerStore()
    return SqliteLedgerStore(tmp_path / "ledger.db")


@pytest.fixture
def fake_pdf():
    fake = FakePdf()
    yield fake
    fake.release.set()


@pytest.fixture
def pipeline(settings, memory_store, code_table, fake_pdf, tmp_path):
    p = ReceiptPipeline(
        settings=settings,
        store=memory_store,
        blob_store=DiskBlobStore(tmp_path / "uploads", url_prefix=API_RECIBOS_PREFIX),
        code_table=code_table,
        audit_ledger=CsvAuditLedger(tmp_path / "auditoria" / "recibos.csv"),
        pdf_text=fake_pdf,
    )
    yield p
    p.close()
