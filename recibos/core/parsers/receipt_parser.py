"""
parsers/receipt_parser.py
-------------------------
Extractor de campos de un recibo de sueldo a partir de su texto.

ESTRATEGIA:
Los recibos de las distintas liquidadoras no comparten layout, pero sí
comparten labels: "Legajo", el período MM/YYYY, la línea del CUIL y
los conceptos de descuento ("Contrib.Solidaria", "SEG. SEPELIO", ...).
Cada campo se resuelve con una función pura que recibe el texto ya
normalizado (sin acentos, espacios colapsados) y devuelve un valor
opcional.

Importes:
- Se buscan a la derecha del label en la misma línea; si no hay, en la
  línea siguiente (pdfplumber a veces parte label e importe).
- Entre varios candidatos se prefiere el primero con |valor| >= 100:
  descarta cantidades, porcentajes y números de página. Si ninguno
  llega, se toma el último de la línea.
- Sin candidato el código no se incluye (no es lo mismo que "0.00").

El extractor nunca lanza excepciones y es determinístico.
"""

import logging
import re
from decimal import Decimal
from typing import Optional, Sequence

from ..models import ExtractionResult
from ..normalizer.dictionary_loader import CodeTable
from ..normalizer.text import normalize_lines
from ..utils.numbers import format_decimal, parse_decimal

logger = logging.getLogger(__name__)

MIN_MAGNITUDE = Decimal("100")

_LEGAJO_RE = re.compile(r"(?:legajo|leg\.)\s*[:#]?\s*(\d{3,})", re.IGNORECASE)
_PERIODO_RE = re.compile(r"(?<!\d)(\d{1,2})/(\d{4})(?!\d)")
_CUIL_RE = re.compile(r"cuil|cuit", re.IGNORECASE)
_UPPER_RUN_RE = re.compile(r"[A-Z]{3,}")

# Importe con 2 decimales: "1.234,56" | "27,640.12" | "1234,56" | "-500.00"
_AMOUNT_RE = re.compile(
    r"(?<![\d.,])"
    r"([+-]?\d{1,3}(?:[.,]\d{3})*[.,]\d{2}|[+-]?\d+[.,]\d{2})"
    r"(?![\d])"
)


# ---------------------------------------------------------------------------
# Importes
# ---------------------------------------------------------------------------

def find_amounts(text: str) -> list[Decimal]:
    values = []
    for raw in _AMOUNT_RE.findall(text or ""):
        value = parse_decimal(raw)
        if value is not None:
            values.append(value)
    return values


def pick_amount(text: str) -> Optional[str]:
    """Elige el importe de un fragmento de línea según la heurística de magnitud."""
    candidates = find_amounts(text)
    if not candidates:
        return None
    for value in candidates:
        if abs(value) >= MIN_MAGNITUDE:
            return format_decimal(value)
    return format_decimal(candidates[-1])


# ---------------------------------------------------------------------------
# Campos de cabecera
# ---------------------------------------------------------------------------

def find_legajo(text: str) -> Optional[str]:
    m = _LEGAJO_RE.search(text or "")
    return m.group(1) if m else None


def find_periodo(text: str) -> Optional[str]:
    for m in _PERIODO_RE.finditer(text or ""):
        mes = int(m.group(1))
        if 1 <= mes <= 12:
            return f"{mes:02d}/{m.group(2)}"
    return None


def _has_upper_run(line: str) -> bool:
    return bool(_UPPER_RUN_RE.search(re.sub(r"[,\s]+", "", line)))


def find_nombre(lines: Sequence[str]) -> Optional[str]:
    """
    El nombre suele estar en la línea anterior al CUIL. Si no, la primera
    línea corta (<= 5 palabras) con una tira de 3+ mayúsculas.
    """
    cuil_idx = next((i for i, l in enumerate(lines) if _CUIL_RE.search(l)), -1)
    if cuil_idx > 0:
        cand = lines[cuil_idx - 1].strip()
        if _has_upper_run(cand):
            return cand

    for line in lines:
        if _UPPER_RUN_RE.search(line) and len(line.split(" ")) <= 5:
            return line.strip()
    return None


# ---------------------------------------------------------------------------
# Códigos
# ---------------------------------------------------------------------------

def _label_end(line: str, label: str) -> int:
    """
    Posición donde termina el label en la línea, o -1. Un label numérico
    ("0323") solo matchea como número completo, no dentro de otro más
    largo ("10323").
    """
    if label.isdigit():
        m = re.search(rf"(?<!\d){label}(?!\d)", line)
        return m.end() if m else -1
    idx = line.lower().find(label.lower())
    return idx + len(label) if idx != -1 else -1


def find_code_value(lines: Sequence[str], labels: Sequence[str]) -> Optional[str]:
    """
    Prueba cada label en orden. Para la primera línea que lo contenga
    busca el importe después del label; si no hay, en la línea siguiente.
    """
    for label in labels:
        for i, line in enumerate(lines):
            end = _label_end(line, label)
            if end == -1:
                continue

            value = pick_amount(line[end:])
            if value is not None:
                return value

            if i + 1 < len(lines):
                value = pick_amount(lines[i + 1])
                if value is not None:
                    return value
    return None


def extract_codes(lines: Sequence[str], code_table: CodeTable) -> dict[str, str]:
    codes: dict[str, str] = {}
    for code, code_def in code_table.codes.items():
        value = find_code_value(lines, code_def.sinonimos)
        if value is not None:
            codes[code] = value
    return codes


# ---------------------------------------------------------------------------
# Entrada principal
# ---------------------------------------------------------------------------

def extract(raw_text: str, code_table: CodeTable) -> ExtractionResult:
    """
    Extrae legajo, período, nombre y códigos. La empresa la completa el
    clasificador; acá queda "desconocida".
    """
    lines = normalize_lines(raw_text)
    joined = " \n ".join(lines)

    result = ExtractionResult(
        legajo=find_legajo(joined),
        periodo=find_periodo(joined),
        nombre=find_nombre(lines),
        codes=extract_codes(lines, code_table),
    )

    result.missing = [name for name in ("legajo", "periodo", "nombre") if getattr(result, name) is None]
    result.missing.extend(f"codigo:{code}" for code in code_table.order if code not in result.codes)

    if result.missing:
        logger.debug("[extractor] Campos no encontrados: %s", ", ".join(result.missing))

    return result
