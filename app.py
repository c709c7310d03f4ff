import logging
import threading
import uuid
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse

from recibos import __version__
from recibos.core.config import configure_logging, load_settings
from recibos.core.errors import (
    ExtractionError,
    OfficialFormatError,
    RecibosError,
    StorageConflict,
    StorageError,
    ValidationError,
)
from recibos.core.excel.official_loader import load_official_xlsx
from recibos.core.models import LedgerFilter
from recibos.core.pipeline import ReceiptPipeline, build_pipeline

logger = logging.getLogger(__name__)


def _http_error(e: Exception) -> HTTPException:
    """Traduce los errores del core a respuestas HTTP."""
    if isinstance(e, (ValidationError, OfficialFormatError, ValueError)):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, ExtractionError):
        return HTTPException(status_code=422, detail=str(e))
    if isinstance(e, StorageConflict):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, StorageError):
        logger.error("Error de almacenamiento: %s", e)
        return HTTPException(status_code=500, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


class LoteRegistry:
    """Lotes en curso: lote_id -> Event de cancelación."""

    def __init__(self):
        self._lock = threading.Lock()
        self._lotes: Dict[str, threading.Event] = {}

    def open(self, lote_id: str) -> threading.Event:
        with self._lock:
            if lote_id in self._lotes:
                raise ValidationError(f"El lote {lote_id} ya está en curso")
            event = self._lotes[lote_id] = threading.Event()
            return event

    def close(self, lote_id: str) -> None:
        with self._lock:
            self._lotes.pop(lote_id, None)

    def cancel(self, lote_id: str) -> bool:
        with self._lock:
            event = self._lotes.get(lote_id)
        if event is None:
            return False
        event.set()
        return True


def create_app(pipeline: Optional[ReceiptPipeline] = None) -> FastAPI:

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = getattr(app.state, "pipeline", None) is None
        if owned:
            settings = load_settings()
            configure_logging(settings.log_level)
            app.state.pipeline = build_pipeline(settings)
        yield
        if owned:
            app.state.pipeline.close()

    app = FastAPI(title="Recibos API", version=__version__, lifespan=lifespan)

    # Habilitar CORS por si el frontend corre en otro puerto durante desarrollo
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.pipeline = pipeline
    app.state.lotes = LoteRegistry()

    def _pipeline(request: Request) -> ReceiptPipeline:
        return request.app.state.pipeline

    @app.get("/api/v1/health")
    def health(request: Request):
        p = _pipeline(request)
        return {
            "status": "ok",
            "version": __version__,
            "storage": p.settings.storage_backend,
            "codigos": p.code_table.order,
        }

    @app.post("/api/v1/recibos")
    def upload_recibo(request: Request, file: UploadFile = File(...)):
        """
        Sube un recibo: clasifica, extrae, hace upsert en el ledger y
        guarda el PDF. Re-subir el mismo archivo devuelve "omitido".
        """
        p = _pipeline(request)
        if not file.filename:
            raise HTTPException(status_code=400, detail="Falta el nombre del archivo.")

        data = file.file.read()
        try:
            outcome = p.process_file(file.filename, data)
        except RecibosError as e:
            logger.warning("%s: %s", file.filename, e)
            raise _http_error(e)

        body = outcome.to_dict()
        body["url"] = p.blob_store.url_for(outcome.referencia) if outcome.referencia else None
        return body

    @app.post("/api/v1/recibos/lote")
    def upload_lote(
        request: Request,
        files: List[UploadFile] = File(...),
        lote_id: Optional[str] = Form(None),
    ):
        """
        Carga masiva. Devuelve el manifiesto {archivo, resultado, motivo}
        para re-enviar solo los fallidos. El cliente puede mandar su propio
        lote_id para cancelar mientras se procesa.
        """
        if not files:
            raise HTTPException(status_code=400, detail="No se enviaron archivos.")

        p = _pipeline(request)
        lotes: LoteRegistry = request.app.state.lotes
        lote_id = lote_id or uuid.uuid4().hex

        try:
            cancel_event = lotes.open(lote_id)
        except ValidationError as e:
            raise HTTPException(status_code=409, detail=str(e))

        try:
            items = [(f.filename or "sin_nombre.pdf", f.file.read()) for f in files]
            report = p.process_batch(items, cancel_event=cancel_event)
        finally:
            lotes.close(lote_id)

        return {"lote_id": lote_id, **report.to_dict(), "fallidos": report.fallidos}

    @app.post("/api/v1/recibos/lote/{lote_id}/cancelar")
    def cancel_lote(request: Request, lote_id: str):
        if not request.app.state.lotes.cancel(lote_id):
            raise HTTPException(status_code=404, detail=f"No hay un lote en curso con id {lote_id}")
        logger.info("Lote %s cancelado por el cliente", lote_id)
        return {"lote_id": lote_id, "cancelado": True}

    @app.get("/api/v1/recibos/{name}")
    def get_recibo(request: Request, name: str):
        p = _pipeline(request)
        try:
            path = p.blob_store.path_for(name)
        except StorageError as e:
            raise HTTPException(status_code=400, detail=str(e))
        if not path.exists():
            raise HTTPException(status_code=404, detail=f"No existe el recibo {name}")
        return FileResponse(path=path, filename=path.name, media_type="application/pdf")

    @app.get("/api/v1/ledger")
    def get_ledger(
        request: Request,
        legajo: Optional[str] = None,
        periodo: Optional[str] = None,
        empresa: Optional[str] = None,
    ):
        p = _pipeline(request)
        try:
            entries = p.ledger(LedgerFilter(legajo=legajo, periodo=periodo, empresa=empresa))
        except RecibosError as e:
            raise _http_error(e)
        items = []
        for e in entries:
            item = e.to_dict()
            item["codigos_desconocidos"] = sorted(e.unknown_fields(p.code_table))
            items.append(item)
        return {"total": len(entries), "items": items}

    @app.post("/api/v1/control")
    def control_endpoint(
        request: Request,
        excel: UploadFile = File(...),
        periodo: Optional[str] = Form(None),
        tolerancia: Optional[str] = Form(None),
    ):
        """
        Recibe la planilla oficial (.xlsx) y la compara contra el ledger.
        Con `periodo` se filtra el control a ese mes.
        """
        p = _pipeline(request)
        try:
            rows = load_official_xlsx(excel.file.read(), periodo=periodo, code_table=p.code_table)
            results = p.control(rows, periodo=periodo, tolerance=tolerancia)
        except (RecibosError, ValueError) as e:
            logger.warning("Control fallido: %s", e)
            raise _http_error(e)

        resumen: Dict[str, int] = {}
        for r in results:
            resumen[r.estado] = resumen.get(r.estado, 0) + 1

        return {
            "periodo": periodo,
            "tolerancia": str(tolerancia if tolerancia is not None else p.settings.tolerancia),
            "resumen": resumen,
            "resultados": [r.to_dict() for r in results],
        }

    return app


app = create_app()
