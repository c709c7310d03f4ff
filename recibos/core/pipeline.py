"""
pipeline.py — Pipeline central de recibos.

API pública (ReceiptPipeline):
    classify_and_extract(filename, data) -> ExtractionResult
    upsert_extraction(extraction, filename, content_hash) -> UpsertResult
    reconcile(legajo, periodo, official_map, ...) -> ReconciliationResult
    process_file(filename, data) -> FileOutcome
    process_batch(files, cancel_event) -> BatchReport
    control(official_rows, periodo, tolerance) -> List[ControlResult]

Por archivo se ejecuta en el mismo proceso:
    1. PDF -> texto (con timeout)
    2. Clasificar empresa (nombre de archivo + contenido)
    3. Extraer legajo / período / nombre / códigos
    4. Guardar el PDF
    5. Upsert en el ledger + fila de auditoría (si el sha256 ya estaba
       registrado para la clave, el PDF guardado se descarta)

Los colaboradores se inyectan al construir; build_pipeline() arma el
pipeline a partir de Settings.
"""

from __future__ import annotations

import hashlib
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeout, as_completed
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from .config import Settings
from .control.reconciliation import control_period, reconcile as reconcile_maps
from .errors import ExtractionError, ExtractionTimeout, RecibosError
from .ledger.audit_csv import CsvAuditLedger
from .ledger.blob_store import DiskBlobStore
from .ledger.engine import LedgerUpsertEngine
from .ledger.store import LedgerStore, MemoryLedgerStore, SqliteLedgerStore
from .models import (
    OUTCOME_CANCELADO,
    OUTCOME_ERROR,
    OUTCOME_OK,
    OUTCOME_OMITIDO,
    BatchReport,
    ControlResult,
    ExtractionResult,
    FileOutcome,
    LedgerEntry,
    LedgerFilter,
    LedgerKey,
    OfficialRow,
    ReconciliationResult,
    UpsertResult,
)
from .normalizer.dictionary_loader import CodeTable, load_code_table
from .parsers.company_classifier import classify
from .parsers.receipt_parser import extract
from .utils.pdf_text import pdf_to_text
from .utils.periodos import extract_periodo_from_filename, normalizar_periodo

logger = logging.getLogger(__name__)

PdfToText = Callable[[bytes], str]
BatchSource = Union[bytes, Path]

# Ruta HTTP desde la que se sirven los PDFs guardados
API_RECIBOS_PREFIX = "/api/v1/recibos"


class ReceiptPipeline:

    def __init__(
        self,
        settings: Settings,
        store: LedgerStore,
        blob_store: DiskBlobStore,
        code_table: CodeTable,
        audit_ledger: Optional[CsvAuditLedger] = None,
        pdf_text: PdfToText = pdf_to_text,
    ):
        self.settings = settings
        self.store = store
        self.blob_store = blob_store
        self.code_table = code_table
        self.audit_ledger = audit_ledger
        self.engine = LedgerUpsertEngine(store, audit_ledger, max_attempts=settings.upsert_max_intentos)
        self._pdf_text = pdf_text

    # ─────────────────────────────────────────────────────
    # Step 1-3: texto, clasificación, extracción
    # ─────────────────────────────────────────────────────

    def _start_parse(self, filename: str, data: bytes) -> Future:
        """
        Un hilo daemon por lectura. Un PDF colgado retiene solo su propio
        hilo; las lecturas siguientes arrancan igual.
        """
        future: Future = Future()

        def run() -> None:
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(self._pdf_text(data))
            except Exception as e:
                future.set_exception(e)

        threading.Thread(target=run, name=f"recibos-pdf:{filename}", daemon=True).start()
        return future

    def _text(self, filename: str, data: bytes) -> str:
        future = self._start_parse(filename, data)
        try:
            return future.result(timeout=self.settings.parse_timeout_s)
        except FutureTimeout:
            # El hilo colgado no se puede interrumpir; se abandona su resultado
            logger.warning("[pipeline] %s: lectura abandonada tras %gs", filename, self.settings.parse_timeout_s)
            raise ExtractionTimeout(
                f"{filename}: la lectura del PDF superó {self.settings.parse_timeout_s:g}s"
            )
        except RecibosError:
            raise
        except Exception as e:
            raise ExtractionError(f"{filename}: no se pudo leer el PDF ({e})") from e

    def classify_and_extract(self, filename: str, data: bytes) -> ExtractionResult:
        if not data:
            raise ExtractionError(f"{filename}: archivo vacío")

        text = self._text(filename, data)
        detection = classify(filename, text)
        result = extract(text, self.code_table)
        result.empresa = detection.empresa
        result.detection = detection

        if result.periodo is None:
            periodo = extract_periodo_from_filename(filename)
            if periodo:
                logger.info("[pipeline] %s: período %s tomado del nombre de archivo", filename, periodo)
                result.periodo = periodo
                result.missing = [m for m in result.missing if m != "periodo"]

        if detection.is_unknown:
            logger.warning("[pipeline] %s: empresa no detectada", filename)
        if result.missing:
            logger.warning("[pipeline] %s: faltan %s", filename, ", ".join(result.missing))

        logger.info(
            "[pipeline] %s -> empresa=%s (%.2f, %s) legajo=%s periodo=%s codigos=%d",
            filename, detection.empresa.value, detection.confidence, detection.method,
            result.legajo, result.periodo, len(result.codes),
        )
        return result

    # ─────────────────────────────────────────────────────
    # Step 4: ledger
    # ─────────────────────────────────────────────────────

    def _key_for(self, extraction: ExtractionResult) -> LedgerKey:
        empresa = None
        if self.settings.key_por_empresa and not extraction.detection.is_unknown:
            empresa = extraction.empresa.value
        return LedgerUpsertEngine.build_key(extraction, empresa)

    def upsert_extraction(
        self, extraction: ExtractionResult, filename: str, content_hash: Optional[str] = None
    ) -> UpsertResult:
        key = self._key_for(extraction)
        return self.engine.upsert(key, extraction, filename, content_hash=content_hash)

    # ─────────────────────────────────────────────────────
    # Control
    # ─────────────────────────────────────────────────────

    def _tolerance(self, tolerance: Optional[Decimal | str]) -> Decimal | str:
        return self.settings.tolerancia if tolerance is None else tolerance

    def reconcile(
        self,
        legajo: str,
        periodo: str,
        official_map: Optional[Mapping[str, str]],
        tolerance: Optional[Decimal | str] = None,
        empresa: Optional[str] = None,
    ) -> ReconciliationResult:
        """
        Compara los valores oficiales de una clave contra el ledger.
        Sin datos oficiales o sin recibos no hay diferencias; el motivo
        queda en tiene_oficial / tiene_calculado.
        """
        periodo = normalizar_periodo(periodo) or periodo
        key = LedgerKey(legajo=legajo, periodo=periodo, empresa=empresa).value
        entry = self.store.get_ledger_entry(key)

        if official_map is None:
            logger.info("[control] %s: sin datos oficiales", key)
            return ReconciliationResult(key=key, diffs=[], tiene_oficial=False, tiene_calculado=entry is not None)
        if entry is None:
            logger.info("[control] %s: sin recibos cargados", key)
            return ReconciliationResult(key=key, diffs=[], tiene_oficial=True, tiene_calculado=False)

        diffs = reconcile_maps(
            official_map,
            entry.fields,
            self._tolerance(tolerance),
            order=self.code_table.order,
            labels=self.code_table.label_for,
        )
        return ReconciliationResult(key=key, diffs=diffs, tiene_oficial=True, tiene_calculado=True)

    def control(
        self,
        official_rows: Sequence[OfficialRow],
        periodo: Optional[str] = None,
        tolerance: Optional[Decimal | str] = None,
    ) -> List[ControlResult]:
        periodo = normalizar_periodo(periodo) if periodo else None
        rows = [r for r in official_rows if periodo is None or r.periodo == periodo]
        entries = self.store.query_ledger(LedgerFilter(periodo=periodo))
        return control_period(
            rows,
            entries,
            self._tolerance(tolerance),
            order=self.code_table.order,
            labels=self.code_table.label_for,
        )

    def ledger(self, filt: Optional[LedgerFilter] = None) -> List[LedgerEntry]:
        return self.store.query_ledger(filt)

    # ─────────────────────────────────────────────────────
    # Archivo completo
    # ─────────────────────────────────────────────────────

    def process_file(self, filename: str, data: bytes) -> FileOutcome:
        """
        Un archivo de punta a punta. Los errores (ExtractionError,
        ValidationError, StorageError) se propagan al llamador.

        El PDF se guarda antes del upsert: si el upsert falla sin dejar el
        hash en el ledger, el PDF se borra y el archivo se puede re-enviar.
        Un contenido ya registrado para la clave (sha256) queda "omitido".
        """
        extraction = self.classify_and_extract(filename, data)
        key = self._key_for(extraction)
        digest = hashlib.sha256(data).hexdigest()
        empresa = None if extraction.detection.is_unknown else extraction.empresa.value

        referencia = self.blob_store.store(data, filename, key=key.value)
        try:
            result = self.engine.upsert(key, extraction, filename, content_hash=digest)
        except RecibosError:
            if not self._hash_registered(key.value, digest):
                self.blob_store.delete(referencia)
            raise

        if result.duplicate:
            self.blob_store.delete(referencia)
            return FileOutcome(
                archivo=filename,
                resultado=OUTCOME_OMITIDO,
                motivo="contenido ya registrado para la clave",
                key=result.key,
                empresa=empresa,
            )

        return FileOutcome(
            archivo=filename,
            resultado=OUTCOME_OK,
            key=result.key,
            created=result.created,
            empresa=empresa,
            referencia=referencia,
        )

    def _hash_registered(self, key: str, digest: str) -> bool:
        entry = self.store.get_ledger_entry(key)
        return entry is not None and digest in entry.hashes

    # ─────────────────────────────────────────────────────
    # Lote
    # ─────────────────────────────────────────────────────

    def _process_one(self, filename: str, source: BatchSource, cancel_event: threading.Event) -> FileOutcome:
        if cancel_event.is_set():
            return FileOutcome(archivo=filename, resultado=OUTCOME_CANCELADO, motivo="lote cancelado")

        try:
            data = source.read_bytes() if isinstance(source, Path) else source
            return self.process_file(filename, data)
        except RecibosError as e:
            logger.warning("[lote] %s: %s", filename, e)
            return FileOutcome(archivo=filename, resultado=OUTCOME_ERROR, motivo=str(e))
        except OSError as e:
            logger.warning("[lote] %s: no se pudo leer el archivo (%s)", filename, e)
            return FileOutcome(archivo=filename, resultado=OUTCOME_ERROR, motivo=f"no se pudo leer el archivo: {e}")
        except Exception as e:
            logger.exception("[lote] %s: error inesperado", filename)
            return FileOutcome(archivo=filename, resultado=OUTCOME_ERROR, motivo=f"error inesperado: {e}")

    def process_batch(
        self,
        files: Iterable[Tuple[str, BatchSource]],
        cancel_event: Optional[threading.Event] = None,
    ) -> BatchReport:
        """
        Procesa archivos con un pool acotado (settings.max_workers). Cada
        archivo es independiente: un error no corta el lote. La cancelación
        se revisa antes de empezar cada archivo; lo ya escrito queda.
        El reporte respeta el orden de entrada.
        """
        cancel_event = cancel_event or threading.Event()
        files = list(files)
        outcomes: List[Optional[FileOutcome]] = [None] * len(files)

        logger.info("[lote] %d archivo(s), %d worker(s)", len(files), self.settings.max_workers)

        with ThreadPoolExecutor(max_workers=self.settings.max_workers, thread_name_prefix="recibos-lote") as pool:
            futures = {
                pool.submit(self._process_one, name, source, cancel_event): i
                for i, (name, source) in enumerate(files)
            }
            for future in as_completed(futures):
                outcomes[futures[future]] = future.result()

        report = BatchReport(items=[o for o in outcomes if o is not None], cancelado=cancel_event.is_set())
        logger.info(
            "[lote] ok=%d omitidos=%d errores=%d cancelados=%d",
            report.count(OUTCOME_OK), report.count(OUTCOME_OMITIDO),
            report.count(OUTCOME_ERROR), report.count(OUTCOME_CANCELADO),
        )
        return report

    def close(self) -> None:
        self.store.close()


# ─────────────────────────────────────────────────────────
# Construcción desde Settings
# ─────────────────────────────────────────────────────────

def build_store(settings: Settings) -> LedgerStore:
    if settings.storage_backend == "memory":
        return MemoryLedgerStore()
    return SqliteLedgerStore(settings.resolve(settings.sqlite_path))


def build_pipeline(
    settings: Settings,
    pdf_text: PdfToText = pdf_to_text,
    code_table: Optional[CodeTable] = None,
) -> ReceiptPipeline:
    logger.info(
        "[pipeline] storage=%s data_dir=%s tolerancia=%s",
        settings.storage_backend, settings.data_dir, settings.tolerancia,
    )
    return ReceiptPipeline(
        settings=settings,
        store=build_store(settings),
        blob_store=DiskBlobStore(settings.resolve(settings.uploads_dir), url_prefix=API_RECIBOS_PREFIX),
        code_table=code_table or load_code_table(),
        audit_ledger=CsvAuditLedger(settings.resolve(settings.audit_csv)),
        pdf_text=pdf_text,
    )
