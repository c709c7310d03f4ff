"""
OfficialLoader — Lee la planilla oficial de descuentos (.xlsx).

Formato esperado (primera hoja):
  - Una fila de encabezado (se busca en las primeras 10 filas) con
    columnas LEGAJO y PERIODO. PERIODO puede faltar si se indica el
    período al cargar (planilla mensual).
  - Columna NOMBRE / APELLIDO Y NOMBRES opcional.
  - Columnas de códigos: encabezado de 5 dígitos ("20540") o que empiece
    con el código ("20540 CONTRIBUCION SOLIDARIA"). Con tabla de códigos,
    también se aceptan labels y sinónimos ("CONTR.SOLIDARIA").

Resultado: una OfficialRow por fila con legajo y período, con los
importes como str de 2 decimales. Celdas vacías se omiten.
"""

from __future__ import annotations

import io
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from openpyxl import load_workbook

from ..errors import OfficialFormatError
from ..models import OfficialRow
from ..normalizer.dictionary_loader import CodeTable
from ..normalizer.text import normalize_name, strip_separators
from ..utils.numbers import to_decimal_str
from ..utils.periodos import normalizar_periodo

logger = logging.getLogger(__name__)

_CODE_HEADER_RE = re.compile(r"^(\d{5})(?:\b|$)")


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


class OfficialLoader:

    HEADER_SCAN_ROWS = 10

    def __init__(self, code_table: Optional[CodeTable] = None):
        self.code_table = code_table
        self._alias: Dict[str, str] = {}
        if code_table is not None:
            for code, d in code_table.codes.items():
                for alias in (d.label, *d.sinonimos):
                    self._alias[strip_separators(normalize_name(alias))] = code

    # =========================================================
    # PUBLIC METHODS
    # =========================================================

    def load(self, source: str | Path | bytes, periodo: Optional[str] = None) -> List[OfficialRow]:
        """
        Lee el Excel desde una ruta o desde bytes (upload HTTP).
        `periodo` se usa cuando la planilla no trae columna PERIODO.
        """
        periodo_default = normalizar_periodo(periodo) if periodo else ""
        if periodo and not periodo_default:
            raise OfficialFormatError(f"Período inválido: {periodo!r}")

        try:
            handle = io.BytesIO(source) if isinstance(source, (bytes, bytearray)) else str(source)
            wb = load_workbook(handle, read_only=True, data_only=True)
        except FileNotFoundError:
            raise
        except Exception as e:
            raise OfficialFormatError(f"No se pudo abrir el Excel oficial: {e}") from e

        try:
            ws = wb.worksheets[0]
            rows = [list(r) for r in ws.iter_rows(values_only=True)]
        finally:
            wb.close()

        return self.parse_rows(rows, periodo_default)

    def parse_rows(self, rows: List[List[Any]], periodo_default: str = "") -> List[OfficialRow]:
        header_idx, columns = self._find_header(rows)
        idx_legajo = columns["legajo"]
        idx_periodo = columns.get("periodo")
        idx_nombre = columns.get("nombre")
        code_cols: List[Tuple[int, str]] = columns["codes"]

        if idx_periodo is None and not periodo_default:
            raise OfficialFormatError("La planilla no tiene columna PERIODO y no se indicó el período")
        if not code_cols:
            logger.warning("[oficial] La planilla no tiene columnas de códigos")

        out: List[OfficialRow] = []
        skipped = 0
        for row in rows[header_idx + 1:]:
            legajo = _cell_text(row[idx_legajo]) if idx_legajo < len(row) else ""
            raw_periodo = row[idx_periodo] if idx_periodo is not None and idx_periodo < len(row) else None
            periodo = normalizar_periodo(raw_periodo) if raw_periodo not in (None, "") else periodo_default

            if not legajo or not periodo:
                if any(c not in (None, "") for c in row):
                    skipped += 1
                continue

            valores: Dict[str, str] = {}
            for idx, code in code_cols:
                if idx >= len(row):
                    continue
                value = to_decimal_str(row[idx])
                if value is not None:
                    valores[code] = value

            nombre = _cell_text(row[idx_nombre]) if idx_nombre is not None and idx_nombre < len(row) else ""
            out.append(OfficialRow(
                key=f"{legajo}||{periodo}",
                legajo=legajo,
                periodo=periodo,
                nombre=nombre,
                valores=valores,
            ))

        if skipped:
            logger.warning(f"[oficial] {skipped} fila(s) sin legajo o período válido fueron ignoradas")
        logger.info(f"[oficial] {len(out)} fila(s) leídas, {len(code_cols)} columna(s) de códigos")
        return out

    # =========================================================
    # HEADER
    # =========================================================

    def _header_code(self, text: str) -> Optional[str]:
        m = _CODE_HEADER_RE.match(text)
        if m:
            return m.group(1)
        return self._alias.get(strip_separators(normalize_name(text)))

    def _find_header(self, rows: List[List[Any]]) -> Tuple[int, Dict[str, Any]]:
        for i, row in enumerate(rows[: self.HEADER_SCAN_ROWS]):
            header = [_cell_text(c) for c in row]
            upper = [normalize_name(h).upper() for h in header]

            idx_legajo = next((j for j, h in enumerate(upper) if "LEGAJO" in h), None)
            if idx_legajo is None:
                continue

            idx_periodo = next((j for j, h in enumerate(upper) if "PERIODO" in h), None)
            idx_nombre = next(
                (j for j, h in enumerate(upper)
                 if h in ("NOMBRE", "APELLIDO Y NOMBRES") or "APELLIDO" in h or "NOMBRE" in h),
                None,
            )

            codes: List[Tuple[int, str]] = []
            for j, h in enumerate(header):
                if j in (idx_legajo, idx_periodo, idx_nombre) or not h:
                    continue
                code = self._header_code(h)
                if code:
                    codes.append((j, code))

            return i, {"legajo": idx_legajo, "periodo": idx_periodo, "nombre": idx_nombre, "codes": codes}

        raise OfficialFormatError("No se encontró la columna LEGAJO en el Excel oficial")


def load_official_xlsx(
    source: str | Path | bytes,
    periodo: Optional[str] = None,
    code_table: Optional[CodeTable] = None,
) -> List[OfficialRow]:
    return OfficialLoader(code_table).load(source, periodo)


def official_map(rows: List[OfficialRow]) -> Dict[str, Dict[str, str]]:
    """{legajo||periodo: {codigo: importe}}"""
    return {r.key: dict(r.valores) for r in rows}
