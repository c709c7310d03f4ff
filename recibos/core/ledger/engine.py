"""
Motor de upsert del ledger consolidado.

Reglas:
- Clave: legajo||periodo (||empresa si la configuración lo pide).
- Primera extracción de una clave -> crea la entrada.
- Siguientes -> agrega el archivo si no estaba y mergea los códigos: el
  último valor gana.
- Duplicados: si llega el hash del contenido, un PDF con el mismo sha256
  ya registrado en la clave no se vuelve a aplicar (aunque tenga otro
  nombre). Sin hash, el criterio es el nombre de archivo.
- Auditoría: una fila por (legajo, periodo), la primera gana, aunque la
  entrada del ledger siga mergeando. El CSV se completa desde la fila del
  store en cada upsert mientras no tenga la clave.

Concurrencia:
- Lock por clave dentro del proceso (tabla fija de locks, la clave elige
  uno por hash).
- Versión optimista en el store para escrituras de otros procesos; ante
  StorageConflict se relee y se reaplica el merge (max_attempts veces).
"""

from __future__ import annotations

import logging
import threading
import zlib
from contextlib import contextmanager
from typing import Dict, Iterator, Optional

from ..errors import StorageConflict, ValidationError
from ..models import AuditRow, ExtractionResult, LedgerEntry, LedgerKey, UpsertResult
from .audit_csv import CsvAuditLedger
from .store import LedgerStore, utcnow_iso

logger = logging.getLogger(__name__)

LOCK_STRIPES = 64


def merge_source_files(existing: list[str], source_file: str) -> tuple[list[str], bool]:
    """Agrega manteniendo orden de inserción y sin duplicados."""
    if source_file in existing:
        return list(existing), False
    return [*existing, source_file], True


def merge_fields(existing: Dict[str, str], incoming: Dict[str, str]) -> Dict[str, str]:
    merged = dict(existing)
    merged.update(incoming)
    return merged


class LedgerUpsertEngine:

    def __init__(
        self,
        store: LedgerStore,
        audit_ledger: Optional[CsvAuditLedger] = None,
        max_attempts: int = 3,
        lock_stripes: int = LOCK_STRIPES,
    ) -> None:
        self._store = store
        self._audit_ledger = audit_ledger
        self._max_attempts = max(1, max_attempts)
        self._locks = [threading.Lock() for _ in range(max(1, lock_stripes))]

    def lock_for(self, key: str) -> threading.Lock:
        return self._locks[zlib.crc32(key.encode("utf-8")) % len(self._locks)]

    @contextmanager
    def _key_lock(self, key: str) -> Iterator[None]:
        with self.lock_for(key):
            yield

    @staticmethod
    def build_key(extraction: ExtractionResult, empresa: Optional[str] = None) -> LedgerKey:
        if not extraction.legajo and not extraction.periodo:
            raise ValidationError("No se encontró legajo ni período en el recibo")
        if not extraction.legajo:
            raise ValidationError("No se encontró el legajo en el recibo")
        if not extraction.periodo:
            raise ValidationError("No se encontró el período en el recibo")
        return LedgerKey(legajo=extraction.legajo, periodo=extraction.periodo, empresa=empresa or None)

    def upsert(
        self,
        key: LedgerKey,
        extraction: ExtractionResult,
        source_file: str,
        content_hash: Optional[str] = None,
    ) -> UpsertResult:
        if not source_file:
            raise ValidationError("Falta el nombre del archivo de origen")

        with self._key_lock(key.value):
            created, source_added, duplicate = self._upsert_entry(key, extraction, source_file, content_hash)

        audit_inserted = self._append_audit(key, extraction, source_file)

        if duplicate:
            logger.info("[ledger] %s: %s ya registrado, sin cambios", key.value, source_file)
        else:
            logger.info(
                "[ledger] %s %s (archivo %s%s)",
                "Creado" if created else "Actualizado",
                key.value, source_file, "" if source_added else ", ya registrado",
            )
        return UpsertResult(
            key=key.value,
            created=created,
            source_added=source_added,
            audit_inserted=audit_inserted,
            duplicate=duplicate,
        )

    def _upsert_entry(
        self,
        key: LedgerKey,
        extraction: ExtractionResult,
        source_file: str,
        content_hash: Optional[str],
    ) -> tuple[bool, bool, bool]:
        """Retorna (created, source_added, duplicate)."""
        empresa = None if extraction.detection.is_unknown else extraction.empresa.value

        for attempt in range(1, self._max_attempts + 1):
            current = self._store.get_ledger_entry(key.value)
            try:
                if current is None:
                    entry = LedgerEntry(
                        key=key.value,
                        legajo=key.legajo,
                        periodo=key.periodo,
                        nombre=extraction.nombre,
                        empresa=empresa,
                        source_files=[source_file],
                        hashes=[content_hash] if content_hash else [],
                        fields=dict(extraction.codes),
                    )
                    self._store.put_ledger_entry(entry, expected_version=None)
                    return True, True, False

                if content_hash and content_hash in current.hashes:
                    return False, False, True

                files, added = merge_source_files(current.source_files, source_file)
                current.source_files = files
                if content_hash:
                    current.hashes = [*current.hashes, content_hash]
                current.fields = merge_fields(current.fields, extraction.codes)
                current.nombre = extraction.nombre or current.nombre
                current.empresa = empresa or current.empresa
                self._store.put_ledger_entry(current, expected_version=current.version)
                return False, added, content_hash is None and not added

            except StorageConflict:
                logger.warning(
                    "[ledger] Conflicto de escritura en %s (intento %d/%d)",
                    key.value, attempt, self._max_attempts,
                )
                if attempt == self._max_attempts:
                    raise

        raise StorageConflict(f"No se pudo escribir {key.value}")

    def _append_audit(self, key: LedgerKey, extraction: ExtractionResult, source_file: str) -> bool:
        row = AuditRow(
            fecha=utcnow_iso(),
            archivo=source_file,
            legajo=key.legajo,
            periodo=key.periodo,
            codigos=dict(extraction.codes),
        )
        inserted = self._store.append_audit_row(row)

        if self._audit_ledger is not None and row.audit_key not in self._audit_ledger:
            # Si una escritura anterior al CSV falló, se repone la fila original
            stored = row if inserted else self._store.get_audit_row(row.legajo, row.periodo)
            self._audit_ledger.append(stored or row)
        return inserted
