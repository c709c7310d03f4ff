"""
Almacenamiento en disco de los PDFs subidos.

- El nombre se sanea (sin acentos, solo [A-Za-z0-9_.-]) y se limita a
  180 caracteres.
- Si el nombre ya existe se agrega un sufijo "-1", "-2", ... antes de
  la extensión, recortando el inicio para no pasar el límite.
- La referencia es el nombre almacenado; la URL se deriva de él.
"""

from __future__ import annotations

import logging
import re
import threading
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from ..errors import StorageError
from ..normalizer.text import strip_accents

logger = logging.getLogger(__name__)

MAX_NAME_LEN = 180
MAX_SUFFIX = 1000


def sanitize_filename(name: str) -> str:
    n = strip_accents(Path(name).name)
    return re.sub(r"[^\w.\-]+", "_", n, flags=re.ASCII)


class DiskBlobStore:

    def __init__(self, base_dir: Path | str, url_prefix: str = "/recibos"):
        self.base_dir = Path(base_dir)
        self.url_prefix = url_prefix.rstrip("/")
        self._lock = threading.Lock()

    def _path(self, reference: str) -> Path:
        safe = sanitize_filename(reference)
        if not safe or safe in (".", "..") or safe != reference:
            raise StorageError(f"Referencia inválida: {reference!r}")
        return self.base_dir / safe

    def store(self, data: bytes, suggested_name: str, key: Optional[str] = None) -> str:
        orig = sanitize_filename(suggested_name) or "recibo.pdf"
        prefix = sanitize_filename(key.replace("/", "-"))[:80] if key else ""
        base = f"{prefix}__{orig}" if prefix else orig
        name = base[-MAX_NAME_LEN:] if len(base) > MAX_NAME_LEN else base

        with self._lock:
            try:
                self.base_dir.mkdir(parents=True, exist_ok=True)
                target = self.base_dir / name
                stem, ext = Path(name).stem, Path(name).suffix
                for i in range(1, MAX_SUFFIX):
                    if not target.exists():
                        break
                    suffix = f"-{i}{ext}"
                    name = f"{stem[-(MAX_NAME_LEN - len(suffix)):]}{suffix}"
                    target = self.base_dir / name
                else:
                    raise StorageError(f"Demasiadas colisiones para {base}")
                target.write_bytes(data)
            except OSError as e:
                raise StorageError(f"No se pudo guardar {name}: {e}") from e

        logger.info("[blobs] Guardado %s (%d bytes)", name, len(data))
        return name

    def read(self, reference: str) -> bytes:
        path = self._path(reference)
        if not path.exists():
            raise FileNotFoundError(f"No existe el recibo: {reference}")
        return path.read_bytes()

    def delete(self, reference: str) -> None:
        path = self._path(reference)
        try:
            path.unlink()
        except FileNotFoundError:
            logger.warning("[blobs] %s ya no existía", reference)

    def path_for(self, reference: str) -> Path:
        return self._path(reference)

    def url_for(self, reference: str) -> str:
        return f"{self.url_prefix}/{quote(reference)}"
