"""
run_server.py — Levantar la API de recibos.

    recibos-server
    recibos-server --port 3000 --reload
    recibos-server --config /etc/recibos/settings.yaml
"""

import argparse
import logging
import os
from pathlib import Path

import uvicorn

from recibos.core.config import configure_logging, load_settings
from recibos.core.errors import ConfigError

logger = logging.getLogger(__name__)


def main(argv=None) -> int:
    p = argparse.ArgumentParser(description="API de ingesta y control de recibos")
    p.add_argument("--host", default="0.0.0.0")
    p.add_argument("--port", type=int, default=8000)
    p.add_argument("--reload", action="store_true")
    p.add_argument("--config", type=Path, help="settings.yaml (por defecto RECIBOS_CONFIG o el empaquetado)")
    args = p.parse_args(argv)

    # El worker de uvicorn arma el pipeline leyendo RECIBOS_CONFIG
    if args.config:
        os.environ["RECIBOS_CONFIG"] = str(args.config.resolve())

    try:
        settings = load_settings()
    except ConfigError as e:
        configure_logging()
        logger.error("Configuración inválida: %s", e)
        return 1
    configure_logging(settings.log_level)

    logger.info("Datos en %s (storage: %s)", settings.data_dir, settings.storage_backend)
    print(f"\n  Server:  http://localhost:{args.port}")
    print(f"  Docs:    http://localhost:{args.port}/docs")
    print(f"  Health:  http://localhost:{args.port}/api/v1/health\n")

    uvicorn.run("app:app", host=args.host, port=args.port, reload=args.reload,
                log_level=settings.log_level.lower())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
