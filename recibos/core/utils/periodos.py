"""
periodos.py
-----------
Normalización de períodos a "MM/YYYY".

Acepta lo que suele venir en las planillas oficiales y en los nombres
de archivo:

    "06/2025", "6-25", "2025-06", "04/07/2025", "jun-25",
    "junio 2025", "2025 junio", "062025", "202506", datetime

Retorna "" si no se puede interpretar.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Optional

MESES = {
    "ene": 1, "enero": 1,
    "feb": 2, "febrero": 2,
    "mar": 3, "marzo": 3,
    "abr": 4, "abril": 4,
    "may": 5, "mayo": 5,
    "jun": 6, "junio": 6,
    "jul": 7, "julio": 7,
    "ago": 8, "agosto": 8,
    "sep": 9, "sept": 9, "set": 9, "septiembre": 9, "setiembre": 9,
    "oct": 10, "octubre": 10,
    "nov": 11, "noviembre": 11,
    "dic": 12, "diciembre": 12,
}

# Serial de Excel: día 0 = 1899-12-30 (incluye el bug del año 1900)
_EXCEL_EPOCH = datetime(1899, 12, 30)


def _year(raw: str) -> int:
    y = int(raw)
    if len(raw) == 2:
        y = 1900 + y if y >= 80 else 2000 + y
    return y


def _out(month: int, year: int) -> str:
    if 1 <= month <= 12 and 1900 <= year <= 2099:
        return f"{month:02d}/{year}"
    return ""


def excel_serial_to_date(serial: float) -> Optional[datetime]:
    try:
        return _EXCEL_EPOCH + timedelta(days=float(serial))
    except (OverflowError, ValueError):
        return None


def normalizar_periodo(value: Any) -> str:
    if isinstance(value, (datetime, date)):
        return _out(value.month, value.year)

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        # 6 dígitos (062025 / 202506) se tratan como texto, el resto como serial
        if not (isinstance(value, int) and len(str(value)) == 6):
            d = excel_serial_to_date(value)
            return _out(d.month, d.year) if d else ""

    s = str(value or "").strip().lower()
    if not s:
        return ""
    s = re.sub(r"\s+", " ", s)

    # MM/YYYY, M-YY
    m = re.match(r"^(\d{1,2})[/\-.](\d{4}|\d{2})$", s)
    if m:
        return _out(int(m.group(1)), _year(m.group(2)))

    # YYYY-MM
    m = re.match(r"^(\d{4})[/\-.](\d{1,2})$", s)
    if m:
        return _out(int(m.group(2)), int(m.group(1)))

    # DD/MM/YYYY -> mes del medio
    m = re.match(r"^(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{4}|\d{2})$", s)
    if m:
        return _out(int(m.group(2)), _year(m.group(3)))

    # "jun-25", "junio 2025", "sep.2025"
    m = re.match(r"^([a-zñ]{3,12})\.?[ \-_/.]*(\d{4}|\d{2})$", s)
    if m and m.group(1) in MESES:
        return _out(MESES[m.group(1)], _year(m.group(2)))

    # "2025 junio"
    m = re.match(r"^(\d{4})[ \-_/.]*([a-zñ]{3,12})\.?$", s)
    if m and m.group(2) in MESES:
        return _out(MESES[m.group(2)], int(m.group(1)))

    # "202506" (YYYYMM, preferido) o "062025" (MMYYYY)
    digits = re.sub(r"\D", "", s)
    if len(digits) == 6 and digits == s:
        r = _out(int(digits[4:]), int(digits[:4]))
        if r:
            return r
        return _out(int(digits[:2]), int(digits[2:]))

    return ""


def extract_periodo_from_filename(filename: str) -> Optional[str]:
    """
    Intenta detectar el período desde el nombre de archivo.
    Soporta: "SETIEMBRE 2025", "09-2025", "09.2025", "092025".

    Retorna "MM/YYYY" o None.
    """
    name = Path(filename).stem.lower()

    m = re.search(r"([a-z]{3,10})[ _\-.]*(\d{4})", name)
    if m and m.group(1) in MESES:
        return _out(MESES[m.group(1)], int(m.group(2))) or None

    m = re.search(r"(?<!\d)(\d{1,2})[/\-_.](\d{4})(?!\d)", name)
    if m:
        return _out(int(m.group(1)), int(m.group(2))) or None

    m = re.search(r"(?<!\d)(\d{2})(\d{4})(?!\d)", name)
    if m and 2000 <= int(m.group(2)) <= 2099:
        return _out(int(m.group(1)), int(m.group(2))) or None

    return None
