"""
Ledger CSV de auditoría (solo agregar).

Una fila por (legajo, periodo); la primera escritura gana. Columnas en
orden fijo:

    fecha,archivo,legajo,periodo,codigos_json

Se comilla un valor solo si contiene coma, comillas o salto de línea;
las comillas internas se duplican (csv.QUOTE_MINIMAL).
"""

from __future__ import annotations

import csv
import json
import logging
import threading
from pathlib import Path
from typing import List, Set

from ..errors import StorageError
from ..models import AuditRow

logger = logging.getLogger(__name__)

CSV_COLUMNS = ["fecha", "archivo", "legajo", "periodo", "codigos_json"]


def _audit_key(legajo: str, periodo: str) -> str:
    return f"{legajo}||{periodo}"


class CsvAuditLedger:

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._keys: Set[str] = set()
        self._load_keys()

    def _load_keys(self) -> None:
        if not self.path.exists():
            return
        for row in self.read_rows():
            self._keys.add(row.audit_key)
        logger.debug("[auditoria] %d claves existentes en %s", len(self._keys), self.path)

    def __contains__(self, key: str) -> bool:
        return key in self._keys

    def append(self, row: AuditRow) -> bool:
        """Agrega la fila si la clave no existe. Retorna True si se escribió."""
        with self._lock:
            if row.audit_key in self._keys:
                return False

            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                new_file = not self.path.exists() or self.path.stat().st_size == 0
                with open(self.path, "a", encoding="utf-8", newline="") as f:
                    writer = csv.writer(f, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
                    if new_file:
                        writer.writerow(CSV_COLUMNS)
                    writer.writerow([
                        row.fecha,
                        row.archivo,
                        row.legajo,
                        row.periodo,
                        json.dumps(row.codigos, ensure_ascii=False, sort_keys=True),
                    ])
            except OSError as e:
                raise StorageError(f"No se pudo escribir {self.path}: {e}") from e

            self._keys.add(row.audit_key)
            return True

    def read_rows(self) -> List[AuditRow]:
        if not self.path.exists():
            return []
        rows = []
        with open(self.path, "r", encoding="utf-8", newline="") as f:
            for rec in csv.DictReader(f):
                try:
                    codigos = json.loads(rec.get("codigos_json") or "{}")
                except json.JSONDecodeError:
                    logger.warning("[auditoria] codigos_json ilegible para %s", _audit_key(rec["legajo"], rec["periodo"]))
                    codigos = {}
                rows.append(AuditRow(
                    fecha=rec["fecha"],
                    archivo=rec["archivo"],
                    legajo=rec["legajo"],
                    periodo=rec["periodo"],
                    codigos=codigos,
                ))
        return rows
