"""
run_batch.py
------------
Carga masiva de recibos desde una carpeta.

Uso:
    recibos-batch --input "./recibos" [--output manifiesto.json]
    recibos-batch --input "./recibos" --reintentar manifiesto.json

Cada PDF pasa por el pipeline (clasificar -> extraer -> ledger). Un
archivo con error no corta el lote; al final se guarda el manifiesto
{archivo, resultado, motivo} para re-enviar solo los fallidos.

Ctrl+C cancela el lote entre archivos: lo ya cargado queda en el ledger.
"""

import argparse
import json
import logging
import sys
import threading
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from recibos.core.config import LOG_FORMAT, load_settings
from recibos.core.errors import ConfigError
from recibos.core.pipeline import build_pipeline

logger = logging.getLogger(__name__)


def list_pdfs(input_dir: Path) -> List[Path]:
    # *.pdf y *.PDF matchean el mismo archivo en filesystems case-insensitive
    seen = set()
    pdfs = []
    for p in list(input_dir.glob("*.pdf")) + list(input_dir.glob("*.PDF")):
        key = p.resolve()
        if key not in seen:
            seen.add(key)
            pdfs.append(p)
    return sorted(pdfs)


def load_retry_list(manifest_path: Path) -> List[str]:
    with open(manifest_path, "r", encoding="utf-8") as f:
        manifest = json.load(f)
    return list(manifest.get("fallidos", []))


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Carga masiva de recibos de sueldo (PDF)")
    parser.add_argument("--input", required=True, help="Carpeta con los PDFs")
    parser.add_argument("--output", default=None, help="Ruta del manifiesto JSON (default: <input>/manifiesto.json)")
    parser.add_argument("--reintentar", default=None, help="Manifiesto previo: procesa solo sus fallidos")
    parser.add_argument("--config", default=None, help="settings.yaml alternativo")
    parser.add_argument("--workers", type=int, default=None, help="Override de procesamiento.max_workers")
    parser.add_argument(
        "--log-level", default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Nivel de logging"
    )
    args = parser.parse_args(argv)

    try:
        settings = load_settings(args.config)
    except ConfigError as e:
        print(f"Configuración inválida: {e}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=args.log_level or settings.log_level,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    if args.workers:
        settings = replace(settings, max_workers=max(1, args.workers))

    input_dir = Path(args.input)
    if not input_dir.is_dir():
        logger.error(f"Carpeta de entrada no existe: {input_dir}")
        return 1

    pdfs = list_pdfs(input_dir)
    if args.reintentar:
        retry = set(load_retry_list(Path(args.reintentar)))
        pdfs = [p for p in pdfs if p.name in retry]
        logger.info(f"Reintentando {len(pdfs)} archivo(s) de {args.reintentar}")

    if not pdfs:
        logger.warning(f"No se encontraron PDFs en {input_dir}")
        return 0

    pipeline = build_pipeline(settings)
    cancel_event = threading.Event()
    result = {}

    def _run():
        result["report"] = pipeline.process_batch([(p.name, p) for p in pdfs], cancel_event=cancel_event)

    worker = threading.Thread(target=_run, name="recibos-batch")
    started = datetime.now()
    try:
        worker.start()
        while worker.is_alive():
            worker.join(timeout=0.5)
    except KeyboardInterrupt:
        logger.warning("Cancelando lote: se terminan los archivos en curso...")
        cancel_event.set()
        worker.join()
    finally:
        pipeline.close()

    report = result["report"]
    manifest = {
        "run_timestamp": started.isoformat(),
        "input_dir": str(input_dir),
        **report.to_dict(),
        "fallidos": report.fallidos,
    }

    output_path = Path(args.output) if args.output else input_dir / "manifiesto.json"
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(manifest, f, ensure_ascii=False, indent=2)

    logger.info(f"{'='*60}")
    logger.info("RESUMEN FINAL:")
    logger.info(f"  OK:         {manifest['ok']}")
    logger.info(f"  Omitidos:   {manifest['omitidos']}")
    logger.info(f"  Errores:    {manifest['errores']}")
    logger.info(f"  Cancelados: {manifest['cancelados']}")
    logger.info(f"  Manifiesto: {output_path}")

    for item in report.items:
        if item.motivo:
            logger.info(f"  {item.archivo:<40} -> {item.resultado}: {item.motivo}")

    return 1 if report.fallidos else 0


if __name__ == "__main__":
    sys.exit(main())
