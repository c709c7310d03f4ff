from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple
import yaml

from ..errors import ConfigError
from ..utils.numbers import is_code

DEFAULT_CODES_PATH = Path(__file__).parent / "codes.yaml"


@dataclass(frozen=True)
class CodeDef:
    code: str                 # 5 dígitos, ej. "20540"
    label: str                # nombre canónico para mostrar
    sinonimos: Tuple[str, ...]  # labels buscados en el texto, en orden


@dataclass(frozen=True)
class CodeTable:
    meta: Dict[str, Any]
    codes: Dict[str, CodeDef]   # respeta el orden del YAML

    @property
    def order(self) -> List[str]:
        return list(self.codes.keys())

    def label_for(self, code: str) -> str:
        """Label canónico; si el código no está mapeado se muestra el código."""
        c = str(code).strip()
        found = self.codes.get(c)
        return found.label if found else c

    def is_known(self, code: str) -> bool:
        return str(code).strip() in self.codes

    def split(self, values: Mapping[str, str]) -> Tuple[Dict[str, str], Dict[str, str]]:
        """Separa valores en (conocidos, desconocidos) según la tabla."""
        known: Dict[str, str] = {}
        unknown: Dict[str, str] = {}
        for k, v in values.items():
            (known if k in self.codes else unknown)[k] = v
        return known, unknown


def load_code_table(path: Optional[str | Path] = None) -> CodeTable:
    path = Path(path or DEFAULT_CODES_PATH)
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    meta = data.get("meta", {}) or {}
    codes_raw = data.get("codigos", {}) or {}

    codes: Dict[str, CodeDef] = {}
    for key, c in codes_raw.items():
        code = str(key).strip()
        if not is_code(code):
            raise ConfigError(f"Código inválido en {path.name}: {key!r} (se esperan 5 dígitos)")

        c = c or {}
        sinonimos = tuple(str(s) for s in (c.get("sinonimos") or []) if str(s).strip())
        if not sinonimos:
            raise ConfigError(f"El código {code} no tiene sinónimos en {path.name}")

        codes[code] = CodeDef(
            code=code,
            label=str(c.get("label") or code),
            sinonimos=sinonimos,
        )

    return CodeTable(meta=meta, codes=codes)
