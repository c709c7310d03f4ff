"""
run_control.py
--------------
Control del ledger contra la planilla oficial.

Uso:
    recibos-control --excel oficial.xlsx [--periodo 09/2025] [--tolerancia 1.00] [--output control.json]

Imprime un resumen por estado y las diferencias por legajo. Con --output
guarda el detalle completo en JSON.
"""

import argparse
import json
import logging
import sys
from collections import Counter
from pathlib import Path
from typing import List, Optional

from recibos.core.config import LOG_FORMAT, load_settings
from recibos.core.control.reconciliation import ESTADO_DIF
from recibos.core.errors import RecibosError
from recibos.core.excel.official_loader import load_official_xlsx
from recibos.core.pipeline import build_pipeline

logger = logging.getLogger(__name__)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Control de recibos contra la planilla oficial")
    parser.add_argument("--excel", required=True, help="Planilla oficial (.xlsx)")
    parser.add_argument("--periodo", default=None, help="Período a controlar (MM/YYYY)")
    parser.add_argument("--tolerancia", default=None, help="Override de control.tolerancia")
    parser.add_argument("--output", default=None, help="JSON con el detalle del control")
    parser.add_argument("--config", default=None, help="settings.yaml alternativo")
    args = parser.parse_args(argv)

    try:
        settings = load_settings(args.config)
    except RecibosError as e:
        print(f"Configuración inválida: {e}", file=sys.stderr)
        return 2

    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT, handlers=[logging.StreamHandler(sys.stdout)])

    excel_path = Path(args.excel)
    if not excel_path.exists():
        logger.error(f"No existe la planilla: {excel_path}")
        return 1

    pipeline = build_pipeline(settings)
    try:
        rows = load_official_xlsx(excel_path, periodo=args.periodo, code_table=pipeline.code_table)
        results = pipeline.control(rows, periodo=args.periodo, tolerance=args.tolerancia)
    except (RecibosError, ValueError) as e:
        logger.error(f"Control fallido: {e}")
        return 1
    finally:
        pipeline.close()

    resumen = Counter(r.estado for r in results)
    logger.info(f"{'='*60}")
    logger.info(f"CONTROL {args.periodo or '(todos los períodos)'}")
    for estado, n in sorted(resumen.items()):
        logger.info(f"  {estado:<12} {n}")

    for r in results:
        if r.estado != ESTADO_DIF:
            continue
        logger.info(f"  {r.legajo} {r.periodo} {r.nombre}")
        for d in r.diffs:
            logger.info(f"      {d.codigo} {d.label:<28} oficial={d.oficial:>10} recibo={d.calculado:>10} "
                        f"delta={d.delta:>10} ({d.direccion})")

    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            json.dump(
                {
                    "periodo": args.periodo,
                    "tolerancia": str(args.tolerancia or settings.tolerancia),
                    "resumen": dict(resumen),
                    "resultados": [r.to_dict() for r in results],
                },
                f, ensure_ascii=False, indent=2,
            )
        logger.info(f"Detalle guardado en: {args.output}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
