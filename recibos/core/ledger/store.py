"""
Almacenamiento del ledger consolidado.

Los llamadores dependen de `LedgerStore`; la implementación concreta se
elige por configuración al construir el pipeline:

- SqliteLedgerStore: persistente, un archivo .db
- MemoryLedgerStore: en proceso (tests, ejecuciones efímeras)

Control de concurrencia optimista: cada LedgerEntry lleva `version`.
`put_ledger_entry(entry, expected_version)` solo escribe si la versión
almacenada coincide; si no, lanza StorageConflict y el llamador vuelve
a leer y reaplicar el merge.

Tablas (sqlite):
- ledger: una fila por clave
- audit:  una fila por (legajo, periodo), primera escritura gana
"""

from __future__ import annotations

import copy
import json
import sqlite3
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from ..errors import StorageConflict, StorageError
from ..models import AuditRow, LedgerEntry, LedgerFilter


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def _matches(entry: LedgerEntry, filt: Optional[LedgerFilter]) -> bool:
    if filt is None:
        return True
    if filt.legajo and entry.legajo != filt.legajo:
        return False
    if filt.periodo and entry.periodo != filt.periodo:
        return False
    if filt.empresa and (entry.empresa or "") != filt.empresa:
        return False
    return True


class LedgerStore(ABC):

    @abstractmethod
    def get_ledger_entry(self, key: str) -> Optional[LedgerEntry]:
        ...

    @abstractmethod
    def put_ledger_entry(self, entry: LedgerEntry, expected_version: Optional[int]) -> LedgerEntry:
        """
        Inserta (expected_version=None) o actualiza condicionalmente.
        Retorna la entrada con la versión nueva.
        """

    @abstractmethod
    def delete_ledger_entry(self, key: str) -> bool:
        ...

    @abstractmethod
    def append_audit_row(self, row: AuditRow) -> bool:
        """True si se insertó; False si ya existía la clave (legajo, periodo)."""

    @abstractmethod
    def get_audit_row(self, legajo: str, periodo: str) -> Optional[AuditRow]:
        ...

    @abstractmethod
    def query_ledger(self, filt: Optional[LedgerFilter] = None) -> List[LedgerEntry]:
        ...

    def close(self) -> None:
        pass


# ---------------------------------------------------------------------
# Memoria
# ---------------------------------------------------------------------

class MemoryLedgerStore(LedgerStore):

    def __init__(self) -> None:
        self._entries: Dict[str, LedgerEntry] = {}
        self._audit: Dict[str, AuditRow] = {}
        self._lock = threading.Lock()

    def get_ledger_entry(self, key: str) -> Optional[LedgerEntry]:
        with self._lock:
            entry = self._entries.get(key)
            return copy.deepcopy(entry) if entry else None

    def put_ledger_entry(self, entry: LedgerEntry, expected_version: Optional[int]) -> LedgerEntry:
        with self._lock:
            current = self._entries.get(entry.key)
            if expected_version is None:
                if current is not None:
                    raise StorageConflict(f"La clave {entry.key} ya existe")
            elif current is None or current.version != expected_version:
                raise StorageConflict(f"Versión desactualizada para {entry.key}")

            stored = copy.deepcopy(entry)
            stored.version = (expected_version or 0) + 1
            now = utcnow_iso()
            stored.created_at = current.created_at if current else now
            stored.updated_at = now
            self._entries[entry.key] = stored
            return copy.deepcopy(stored)

    def delete_ledger_entry(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def append_audit_row(self, row: AuditRow) -> bool:
        with self._lock:
            if row.audit_key in self._audit:
                return False
            self._audit[row.audit_key] = row
            return True

    def get_audit_row(self, legajo: str, periodo: str) -> Optional[AuditRow]:
        with self._lock:
            return self._audit.get(f"{legajo}||{periodo}")

    def audit_rows(self) -> List[AuditRow]:
        with self._lock:
            return list(self._audit.values())

    def query_ledger(self, filt: Optional[LedgerFilter] = None) -> List[LedgerEntry]:
        with self._lock:
            out = [copy.deepcopy(e) for e in self._entries.values() if _matches(e, filt)]
        return sorted(out, key=lambda e: e.key)


# ---------------------------------------------------------------------
# SQLite
# ---------------------------------------------------------------------

class SqliteLedgerStore(LedgerStore):
    """
    Una conexión por operación. Las escrituras usan BEGIN IMMEDIATE, que
    toma el lock de escritura de la base antes de leer la versión.
    """

    def __init__(self, db_path: Path | str, timeout: float = 30.0):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._timeout = timeout
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), timeout=self._timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = self._get_connection()
        except sqlite3.Error as e:
            raise StorageError(f"No se pudo abrir {self.db_path}: {e}") from e
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise StorageError(str(e)) from e
        except Exception:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS ledger (
                    key TEXT PRIMARY KEY,
                    legajo TEXT NOT NULL,
                    periodo TEXT NOT NULL,
                    nombre TEXT,
                    empresa TEXT,
                    source_files TEXT NOT NULL,  -- JSON array
                    hashes TEXT NOT NULL DEFAULT '[]',  -- JSON array sha256
                    fields TEXT NOT NULL,        -- JSON object codigo -> importe
                    version INTEGER NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS audit (
                    legajo TEXT NOT NULL,
                    periodo TEXT NOT NULL,
                    fecha TEXT NOT NULL,
                    archivo TEXT NOT NULL,
                    codigos TEXT NOT NULL,       -- JSON object
                    PRIMARY KEY (legajo, periodo)
                )
            """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_ledger_periodo ON ledger(periodo)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_ledger_legajo ON ledger(legajo)")

            columns = {r["name"] for r in conn.execute("PRAGMA table_info(ledger)")}
            if "hashes" not in columns:
                conn.execute("ALTER TABLE ledger ADD COLUMN hashes TEXT NOT NULL DEFAULT '[]'")

    @staticmethod
    def _from_row(row: sqlite3.Row) -> LedgerEntry:
        return LedgerEntry(
            key=row["key"],
            legajo=row["legajo"],
            periodo=row["periodo"],
            nombre=row["nombre"],
            empresa=row["empresa"],
            source_files=json.loads(row["source_files"]),
            hashes=json.loads(row["hashes"] or "[]"),
            fields=json.loads(row["fields"]),
            version=row["version"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _audit_from_row(r: sqlite3.Row) -> AuditRow:
        return AuditRow(
            fecha=r["fecha"], archivo=r["archivo"], legajo=r["legajo"],
            periodo=r["periodo"], codigos=json.loads(r["codigos"]),
        )

    def get_ledger_entry(self, key: str) -> Optional[LedgerEntry]:
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM ledger WHERE key = ?", (key,)).fetchone()
        return self._from_row(row) if row else None

    def put_ledger_entry(self, entry: LedgerEntry, expected_version: Optional[int]) -> LedgerEntry:
        now = utcnow_iso()
        files_json = json.dumps(entry.source_files, ensure_ascii=False)
        hashes_json = json.dumps(entry.hashes)
        fields_json = json.dumps(entry.fields, ensure_ascii=False, sort_keys=True)

        with self._transaction() as conn:
            if expected_version is None:
                cur = conn.execute(
                    """
                    INSERT OR IGNORE INTO ledger
                        (key, legajo, periodo, nombre, empresa, source_files, hashes, fields,
                         version, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, 1, ?, ?)
                """,
                    (entry.key, entry.legajo, entry.periodo, entry.nombre, entry.empresa,
                     files_json, hashes_json, fields_json, now, now),
                )
                if cur.rowcount == 0:
                    raise StorageConflict(f"La clave {entry.key} ya existe")
            else:
                cur = conn.execute(
                    """
                    UPDATE ledger
                       SET nombre = ?, empresa = ?, source_files = ?, hashes = ?, fields = ?,
                           version = version + 1, updated_at = ?
                     WHERE key = ? AND version = ?
                """,
                    (entry.nombre, entry.empresa, files_json, hashes_json, fields_json, now,
                     entry.key, expected_version),
                )
                if cur.rowcount == 0:
                    raise StorageConflict(f"Versión desactualizada para {entry.key}")

            row = conn.execute("SELECT * FROM ledger WHERE key = ?", (entry.key,)).fetchone()
        return self._from_row(row)

    def delete_ledger_entry(self, key: str) -> bool:
        with self._transaction() as conn:
            cur = conn.execute("DELETE FROM ledger WHERE key = ?", (key,))
        return cur.rowcount > 0

    def append_audit_row(self, row: AuditRow) -> bool:
        with self._transaction() as conn:
            cur = conn.execute(
                """
                INSERT OR IGNORE INTO audit (legajo, periodo, fecha, archivo, codigos)
                VALUES (?, ?, ?, ?, ?)
            """,
                (row.legajo, row.periodo, row.fecha, row.archivo,
                 json.dumps(row.codigos, ensure_ascii=False, sort_keys=True)),
            )
        return cur.rowcount > 0

    def get_audit_row(self, legajo: str, periodo: str) -> Optional[AuditRow]:
        with self._transaction() as conn:
            r = conn.execute(
                "SELECT * FROM audit WHERE legajo = ? AND periodo = ?", (legajo, periodo)
            ).fetchone()
        return self._audit_from_row(r) if r else None

    def audit_rows(self) -> List[AuditRow]:
        with self._transaction() as conn:
            rows = conn.execute("SELECT * FROM audit ORDER BY fecha, legajo, periodo").fetchall()
        return [self._audit_from_row(r) for r in rows]

    def query_ledger(self, filt: Optional[LedgerFilter] = None) -> List[LedgerEntry]:
        clauses = []
        params: list = []
        if filt is not None:
            for column, value in (("legajo", filt.legajo), ("periodo", filt.periodo), ("empresa", filt.empresa)):
                if value:
                    clauses.append(f"{column} = ?")
                    params.append(value)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        with self._transaction() as conn:
            rows = conn.execute(f"SELECT * FROM ledger {where} ORDER BY key", params).fetchall()
        return [self._from_row(r) for r in rows]
