import io
import logging

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Extracción de texto
# ---------------------------------------------------------------------------

def extract_text_pdfplumber(data: bytes) -> tuple[list[str], int]:
    """
    Extrae el texto de cada página como lista de líneas.
    Retorna (lineas, num_paginas).

    x_tolerance=3 ayuda a mantener separadas las columnas de importes.
    """
    import pdfplumber

    lines = []
    num_pages = 0
    with pdfplumber.open(io.BytesIO(data)) as pdf:
        num_pages = len(pdf.pages)
        for page in pdf.pages:
            text = page.extract_text(x_tolerance=3, y_tolerance=3) or ""
            lines.extend(text.splitlines())
    return lines, num_pages


def extract_text_pymupdf(data: bytes) -> tuple[list[str], int]:
    """
    Fallback con pymupdf (fitz).
    Devuelve el mismo formato que extract_text_pdfplumber.
    """
    import fitz  # pymupdf

    lines = []
    num_pages = 0
    with fitz.open(stream=data, filetype="pdf") as doc:
        num_pages = len(doc)
        for page in doc:
            text = page.get_text("text") or ""
            lines.extend(text.splitlines())
    return lines, num_pages


def extract_text(data: bytes) -> tuple[list[str], int]:
    """
    Intenta pdfplumber primero; si falla, cae a pymupdf.
    Si ambos fallan se propaga el error de pymupdf.
    """
    try:
        return extract_text_pdfplumber(data)
    except ImportError:
        logger.warning("pdfplumber no disponible, usando pymupdf como fallback")
        return extract_text_pymupdf(data)
    except Exception as e:
        logger.error(f"Error con pdfplumber: {e}. Intentando pymupdf...")
        return extract_text_pymupdf(data)


def pdf_to_text(data: bytes) -> str:
    """Texto completo del PDF, una línea por renglón."""
    lines, num_pages = extract_text(data)
    logger.debug("PDF de %d página(s), %d líneas", num_pages, len(lines))
    return "\n".join(lines)
