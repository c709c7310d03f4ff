"""
config.py
---------
Carga de la configuración desde YAML + overrides por variables de entorno.

Orden de resolución:
  1. Archivo indicado por RECIBOS_CONFIG (o settings.yaml del paquete).
  2. Variables de entorno RECIBOS_DATA_DIR, RECIBOS_STORAGE,
     RECIBOS_TOLERANCIA, RECIBOS_MAX_WORKERS, RECIBOS_LOG_LEVEL.

La configuración se inyecta en el pipeline al construirlo; no hay
estado global mutable.
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .errors import ConfigError

logger = logging.getLogger(__name__)

_DEFAULT_CONFIG = Path(__file__).parent / "settings.yaml"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

STORAGE_BACKENDS = ("sqlite", "memory")


@dataclass(frozen=True)
class Settings:
    data_dir: Path
    storage_backend: str = "sqlite"
    sqlite_path: Path = Path("ledger.db")
    uploads_dir: Path = Path("uploads/recibos")
    audit_csv: Path = Path("auditoria/recibos.csv")
    key_por_empresa: bool = False
    upsert_max_intentos: int = 3
    tolerancia: Decimal = Decimal("0.01")
    max_workers: int = 4
    parse_timeout_s: float = 30.0
    log_level: str = "INFO"

    def resolve(self, path: Path) -> Path:
        """Rutas relativas se interpretan desde data_dir."""
        return path if path.is_absolute() else self.data_dir / path


def _parse_tolerancia(raw: Any) -> Decimal:
    try:
        value = Decimal(str(raw).strip().replace(",", "."))
    except InvalidOperation:
        raise ConfigError(f"Tolerancia inválida: {raw!r}")
    if value < 0:
        raise ConfigError(f"La tolerancia no puede ser negativa: {raw!r}")
    return value


def _from_dict(data: Dict[str, Any], base_dir: Path) -> Settings:
    storage = data.get("storage", {}) or {}
    ledger = data.get("ledger", {}) or {}
    control = data.get("control", {}) or {}
    proc = data.get("procesamiento", {}) or {}

    data_dir = Path(data.get("data_dir", "data"))
    if not data_dir.is_absolute():
        data_dir = base_dir / data_dir

    return Settings(
        data_dir=data_dir,
        storage_backend=str(storage.get("backend", "sqlite")).lower().strip(),
        sqlite_path=Path(storage.get("sqlite_path", "ledger.db")),
        uploads_dir=Path(storage.get("uploads_dir", "uploads/recibos")),
        audit_csv=Path(storage.get("audit_csv", "auditoria/recibos.csv")),
        key_por_empresa=bool(ledger.get("key_por_empresa", False)),
        upsert_max_intentos=int(ledger.get("upsert_max_intentos", 3)),
        tolerancia=_parse_tolerancia(control.get("tolerancia", "0.01")),
        max_workers=int(proc.get("max_workers", 4)),
        parse_timeout_s=float(proc.get("parse_timeout_s", 30)),
        log_level=str(data.get("log_level", "INFO")).upper(),
    )


def _apply_env(settings: Settings, env: Dict[str, str]) -> Settings:
    overrides: Dict[str, Any] = {}
    if env.get("RECIBOS_DATA_DIR"):
        overrides["data_dir"] = Path(env["RECIBOS_DATA_DIR"])
    if env.get("RECIBOS_STORAGE"):
        overrides["storage_backend"] = env["RECIBOS_STORAGE"].lower().strip()
    if env.get("RECIBOS_TOLERANCIA"):
        overrides["tolerancia"] = _parse_tolerancia(env["RECIBOS_TOLERANCIA"])
    if env.get("RECIBOS_MAX_WORKERS"):
        try:
            overrides["max_workers"] = int(env["RECIBOS_MAX_WORKERS"])
        except ValueError:
            raise ConfigError(f"RECIBOS_MAX_WORKERS inválido: {env['RECIBOS_MAX_WORKERS']!r}")
    if env.get("RECIBOS_LOG_LEVEL"):
        overrides["log_level"] = env["RECIBOS_LOG_LEVEL"].upper()
    return replace(settings, **overrides) if overrides else settings


def _validate(settings: Settings) -> Settings:
    if settings.storage_backend not in STORAGE_BACKENDS:
        raise ConfigError(
            f"storage.backend debe ser uno de {STORAGE_BACKENDS}, no {settings.storage_backend!r}"
        )
    if settings.max_workers < 1:
        raise ConfigError("procesamiento.max_workers debe ser >= 1")
    if settings.upsert_max_intentos < 1:
        raise ConfigError("ledger.upsert_max_intentos debe ser >= 1")
    if settings.parse_timeout_s <= 0:
        raise ConfigError("procesamiento.parse_timeout_s debe ser > 0")
    return settings


def load_settings(
    path: Optional[str | Path] = None,
    env: Optional[Dict[str, str]] = None,
) -> Settings:
    """
    Lee la configuración. `env` permite inyectar variables en los tests
    (por defecto os.environ).
    """
    env = dict(os.environ) if env is None else env
    config_path = Path(path or env.get("RECIBOS_CONFIG") or _DEFAULT_CONFIG)

    if not config_path.exists():
        raise ConfigError(f"No existe el archivo de configuración: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    # data_dir relativo -> relativo al directorio de trabajo, no al YAML del paquete
    base_dir = Path.cwd() if config_path == _DEFAULT_CONFIG else config_path.parent
    settings = _apply_env(_from_dict(data, base_dir), env)
    logger.debug("Configuración cargada desde %s", config_path)
    return _validate(settings)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )
