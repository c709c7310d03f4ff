from .store import LedgerStore, MemoryLedgerStore, SqliteLedgerStore
from .audit_csv import CsvAuditLedger, CSV_COLUMNS
from .blob_store import DiskBlobStore, sanitize_filename
from .engine import LedgerUpsertEngine

__all__ = [
    "LedgerStore",
    "MemoryLedgerStore",
    "SqliteLedgerStore",
    "CsvAuditLedger",
    "CSV_COLUMNS",
    "DiskBlobStore",
    "sanitize_filename",
    "LedgerUpsertEngine",
]
