"""
parsers/company_classifier.py
-----------------------------
Detección de la empresa pagadora de un recibo.

ESTRATEGIA:
1. Nombre de archivo (prioridad alta). Los recibos llegan nombrados por
   la liquidadora ("SUMAR_recibos sueldos 09.2025.pdf"), así que el
   nombre normalizado y sin separadores se compara contra los tokens
   de cada empresa. Tokens de 4+ caracteres puntúan 0.95, los más
   cortos 0.8. Gana el puntaje más alto; en empate, el primero.
2. Contenido (fallback, solo si el nombre no dio match). Reglas más
   gruesas sobre el texto del PDF: nombre de la empresa, códigos
   propios de SUMAR, o la combinación "Contrib.Solidaria" sin
   "Cuota gremial" que solo aparece en los recibos de LIME.

Nunca lanza excepciones: sin match -> empresa "desconocida", confianza 0.
"""

import logging
import re
from typing import Optional

from ..models import CompanyId, Detection, UNKNOWN_DETECTION
from ..normalizer.text import normalize_name, strip_separators

logger = logging.getLogger(__name__)

TOKENS: dict[CompanyId, list[str]] = {
    CompanyId.LIMPAR: ["limpar"],
    CompanyId.LIME: ["lime"],
    CompanyId.SUMAR: ["sumar"],
    CompanyId.TYSA: ["tysa", "t.y.s.a", "t_y_s_a", "t-y-s-a"],
}

SCORE_LONG_TOKEN = 0.95
SCORE_SHORT_TOKEN = 0.8
SCORE_CONTENT_NAME = 0.6
SCORE_CONTENT_SIGNAL = 0.5

# (empresa, patrón requerido, patrón excluyente, puntaje), se evalúan en orden
_CONTENT_RULES: list[tuple[CompanyId, re.Pattern, Optional[re.Pattern], float]] = [
    (CompanyId.LIMPAR, re.compile(r"\blimpar\b"), None, SCORE_CONTENT_NAME),
    (CompanyId.SUMAR, re.compile(r"\bsumar\b"), None, SCORE_CONTENT_NAME),
    (CompanyId.SUMAR, re.compile(r"\b(?:0323|0324|0373|0374)\b"), None, SCORE_CONTENT_SIGNAL),
    (CompanyId.LIME, re.compile(r"contrib\.\s*solidaria"), re.compile(r"cuota gremial"), SCORE_CONTENT_SIGNAL),
    (CompanyId.TYSA, re.compile(r"\btysa\b|t\.y\.s\.a|t_y_s_a"), None, SCORE_CONTENT_NAME),
]


def classify_filename(filename: str) -> Detection:
    norm = normalize_name(filename)
    compact = strip_separators(norm)
    hits: list[str] = []
    empresa = CompanyId.DESCONOCIDA
    score = 0.0

    for company, tokens in TOKENS.items():
        for token in tokens:
            token_norm = normalize_name(token)
            token_compact = strip_separators(token_norm)
            if token_norm in norm or token_compact in compact:
                hits.append(token)
                s = SCORE_LONG_TOKEN if len(token) >= 4 else SCORE_SHORT_TOKEN
                if s > score:
                    score = s
                    empresa = company

    if empresa is CompanyId.DESCONOCIDA:
        return UNKNOWN_DETECTION
    return Detection(empresa=empresa, confidence=score, method="filename", tokens_hit=hits)


def classify_content(text: str) -> Detection:
    joined = normalize_name(text)
    if not joined:
        return UNKNOWN_DETECTION

    for company, required, excluded, score in _CONTENT_RULES:
        m = required.search(joined)
        if not m:
            continue
        if excluded is not None and excluded.search(joined):
            continue
        return Detection(empresa=company, confidence=score, method="content", tokens_hit=[m.group(0)])

    return UNKNOWN_DETECTION


def classify(filename: str, text: Optional[str] = None) -> Detection:
    """
    Clasifica por nombre de archivo y, si no alcanza, por contenido.
    Función pura: mismas entradas, mismo resultado.
    """
    detection = classify_filename(filename or "")
    if detection.is_unknown and text:
        detection = classify_content(text)

    if detection.is_unknown:
        logger.info("[clasificador] Empresa no detectada para %s", filename)
    else:
        logger.debug(
            "[clasificador] %s -> %s (%.2f, %s)",
            filename, detection.empresa.value, detection.confidence, detection.method,
        )
    return detection
