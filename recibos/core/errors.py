"""
errors.py
---------
Jerarquía de errores del pipeline de recibos.

Fatales para un archivo (se reportan en el manifest del lote):
  - ExtractionError / ExtractionTimeout
  - ValidationError
  - StorageError / StorageConflict

No fatales (no son excepciones): clasificación ambigua (empresa
"desconocida") y extracción incompleta (ExtractionResult.missing).
"""


class RecibosError(Exception):
    """Base de todos los errores del proyecto."""


class ConfigError(RecibosError):
    pass


class ExtractionError(RecibosError):
    """La conversión PDF -> texto falló."""


class ExtractionTimeout(ExtractionError):
    """La conversión PDF -> texto excedió el timeout configurado."""


class ValidationError(RecibosError):
    """Faltan identificadores obligatorios (legajo / período) para guardar."""


class StorageError(RecibosError):
    pass


class StorageConflict(StorageError):
    """Otra escritura concurrente modificó la misma clave."""


class OfficialFormatError(RecibosError):
    """El Excel oficial no tiene el formato esperado."""
