from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class CompanyId(str, Enum):
    LIMPAR = "limpar"
    LIME = "lime"
    SUMAR = "sumar"
    TYSA = "tysa"
    DESCONOCIDA = "desconocida"


@dataclass(frozen=True)
class Detection:
    empresa: CompanyId
    confidence: float
    method: str                      # filename | content | none
    tokens_hit: List[str] = field(default_factory=list)

    @property
    def is_unknown(self) -> bool:
        return self.empresa is CompanyId.DESCONOCIDA


UNKNOWN_DETECTION = Detection(empresa=CompanyId.DESCONOCIDA, confidence=0.0, method="none")


# Campos que el extractor intenta resolver además de los códigos
CAMPOS_ESPERADOS = ("legajo", "periodo", "nombre")


@dataclass
class ExtractionResult:
    """Resultado de parsear un recibo. Todos los campos son best-effort."""
    empresa: CompanyId = CompanyId.DESCONOCIDA
    legajo: Optional[str] = None
    periodo: Optional[str] = None       # MM/YYYY
    nombre: Optional[str] = None
    codes: Dict[str, str] = field(default_factory=dict)   # "20540" -> "1234.56"
    detection: Detection = UNKNOWN_DETECTION
    missing: List[str] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return not self.missing


@dataclass(frozen=True)
class LedgerKey:
    legajo: str
    periodo: str
    empresa: Optional[str] = None

    @property
    def value(self) -> str:
        base = f"{self.legajo}||{self.periodo}"
        return f"{base}||{self.empresa}" if self.empresa else base

    def __str__(self) -> str:
        return self.value


@dataclass
class LedgerEntry:
    """Registro consolidado: uno por (legajo, período[, empresa])."""
    key: str
    legajo: str
    periodo: str
    nombre: Optional[str] = None
    empresa: Optional[str] = None
    source_files: List[str] = field(default_factory=list)
    hashes: List[str] = field(default_factory=list)   # sha256 de cada PDF aceptado
    fields: Dict[str, str] = field(default_factory=dict)
    version: int = 0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def known_fields(self, code_table) -> Dict[str, str]:
        return code_table.split(self.fields)[0]

    def unknown_fields(self, code_table) -> Dict[str, str]:
        """Códigos que no están en la tabla (se guardan igual, no se pierden)."""
        return code_table.split(self.fields)[1]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "legajo": self.legajo,
            "periodo": self.periodo,
            "nombre": self.nombre,
            "empresa": self.empresa,
            "archivos": list(self.source_files),
            "hashes": list(self.hashes),
            "codigos": dict(self.fields),
            "version": self.version,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass(frozen=True)
class AuditRow:
    fecha: str                 # ISO timestamp
    archivo: str
    legajo: str
    periodo: str
    codigos: Dict[str, str]

    @property
    def audit_key(self) -> str:
        return f"{self.legajo}||{self.periodo}"


@dataclass(frozen=True)
class LedgerFilter:
    legajo: Optional[str] = None
    periodo: Optional[str] = None
    empresa: Optional[str] = None


@dataclass(frozen=True)
class UpsertResult:
    key: str
    created: bool
    source_added: bool
    audit_inserted: bool
    duplicate: bool = False    # mismo contenido ya registrado para la clave


@dataclass(frozen=True)
class DiffItem:
    codigo: str
    label: str
    oficial: str
    calculado: str
    delta: str
    direccion: str             # "a favor" | "en contra"

    def to_dict(self) -> Dict[str, str]:
        return {
            "codigo": self.codigo,
            "label": self.label,
            "oficial": self.oficial,
            "calculado": self.calculado,
            "delta": self.delta,
            "direccion": self.direccion,
        }


@dataclass(frozen=True)
class ReconciliationResult:
    key: str
    diffs: List[DiffItem]
    tiene_oficial: bool
    tiene_calculado: bool

    @property
    def motivo(self) -> Optional[str]:
        if not self.tiene_oficial:
            return "sin datos oficiales para esta clave"
        if not self.tiene_calculado:
            return "sin recibos cargados para esta clave"
        return None


@dataclass(frozen=True)
class OfficialRow:
    key: str                   # legajo||MM/YYYY
    legajo: str
    periodo: str
    nombre: str
    valores: Dict[str, str]


@dataclass
class ControlResult:
    key: str
    legajo: str
    periodo: str
    nombre: str
    estado: str                # OK | DIF | SIN_OFICIAL | SIN_RECIBO
    diffs: List[DiffItem] = field(default_factory=list)
    archivos: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "legajo": self.legajo,
            "periodo": self.periodo,
            "nombre": self.nombre,
            "estado": self.estado,
            "diferencias": [d.to_dict() for d in self.diffs],
            "archivos": list(self.archivos),
        }


# Resultados por archivo en un lote
OUTCOME_OK = "ok"
OUTCOME_OMITIDO = "omitido"
OUTCOME_ERROR = "error"
OUTCOME_CANCELADO = "cancelado"


@dataclass(frozen=True)
class FileOutcome:
    archivo: str
    resultado: str
    motivo: str = ""
    key: Optional[str] = None
    created: bool = False
    empresa: Optional[str] = None
    referencia: Optional[str] = None       # nombre guardado en el blob store

    def to_dict(self) -> Dict[str, Any]:
        return {
            "archivo": self.archivo,
            "resultado": self.resultado,
            "motivo": self.motivo,
            "key": self.key,
            "created": self.created,
            "empresa": self.empresa,
            "referencia": self.referencia,
        }


@dataclass
class BatchReport:
    items: List[FileOutcome] = field(default_factory=list)
    cancelado: bool = False

    def count(self, resultado: str) -> int:
        return sum(1 for i in self.items if i.resultado == resultado)

    @property
    def fallidos(self) -> List[str]:
        """Archivos a re-enviar (error o cancelado)."""
        return [i.archivo for i in self.items if i.resultado in (OUTCOME_ERROR, OUTCOME_CANCELADO)]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": len(self.items),
            "ok": self.count(OUTCOME_OK),
            "omitidos": self.count(OUTCOME_OMITIDO),
            "errores": self.count(OUTCOME_ERROR),
            "cancelados": self.count(OUTCOME_CANCELADO),
            "cancelado": self.cancelado,
            "items": [i.to_dict() for i in self.items],
        }
