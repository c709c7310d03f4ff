"""
Normalización de texto para comparar sin importar acentos ni espacios.

Se aplica antes de cualquier búsqueda de tokens o labels, tanto en el
clasificador como en el extractor.
"""

from __future__ import annotations

import re
import unicodedata

_WS_RE = re.compile(r"\s+")
_SEPARATORS_RE = re.compile(r"[._\-\s]+")


def strip_accents(text: str) -> str:
    text = unicodedata.normalize("NFKD", text)
    return "".join(c for c in text if not unicodedata.combining(c))


def normalize_text(text: str | None) -> str:
    """
    Descompone (NFKD), quita diacríticos, colapsa espacios y recorta.

        "  Contribución   Solidaria " -> "Contribucion Solidaria"
    """
    if not text:
        return ""
    return _WS_RE.sub(" ", strip_accents(text)).strip()


def normalize_name(text: str | None) -> str:
    """normalize_text + minúsculas. Usado para nombres de archivo y tokens."""
    return normalize_text(text).lower()


def strip_separators(text: str) -> str:
    """Quita '.', '_', '-' y espacios: "t.y.s.a" -> "tysa"."""
    return _SEPARATORS_RE.sub("", text)


def normalize_lines(raw_text: str | None) -> list[str]:
    """Normaliza cada línea y descarta las vacías."""
    if not raw_text:
        return []
    lines = (normalize_text(l) for l in raw_text.splitlines())
    return [l for l in lines if l]
