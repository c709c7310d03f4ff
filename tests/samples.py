"""Textos de recibo y pdf_to_text simulado para los tests."""

import threading

# Texto tal como lo devuelve pdfplumber para un recibo de SUMAR
RECIBO_SUMAR = """
SUMAR S.A.
RECIBO DE HABERES
Legajo: 123    Periodo: 09/2025
PEREZ, JUAN CARLOS
CUIL 20-12345678-9
Sueldo basico 850.000,00
Contrib.Solidaria 1.234,56
SEG. SEPELIO 2,00 1.500,00
Cuota Mutual
2.345,67
"""

RECIBO_SIN_LEGAJO = """
RECIBO DE HABERES
GOMEZ, ANA
CUIL 27-11111111-3
Contrib.Solidaria 800,00
"""

# Marcadores que el pdf_to_text simulado interpreta
BROKEN = b"__BROKEN__"
HANG = b"__HANG__"


def recibo(legajo: str = "123", periodo: str = "09/2025", contrib: str = "1.234,56") -> bytes:
    """Bytes de un "PDF" cuyo texto es un recibo con los datos indicados."""
    text = (
        RECIBO_SUMAR
        .replace("Legajo: 123", f"Legajo: {legajo}")
        .replace("Periodo: 09/2025", f"Periodo: {periodo}")
        .replace("Contrib.Solidaria 1.234,56", f"Contrib.Solidaria {contrib}")
    )
    return text.encode("utf-8")


class FakePdf:
    """
    Reemplazo de pdf_to_text: el contenido del "PDF" es el texto en UTF-8.
    BROKEN lanza un error de parseo; HANG se bloquea hasta `release`.
    """

    def __init__(self):
        self.release = threading.Event()
        self.calls = 0

    def __call__(self, data: bytes) -> str:
        self.calls += 1
        if data.startswith(BROKEN):
            raise ValueError("xref table corrupta")
        if data.startswith(HANG):
            self.release.wait(5)
            return ""
        return data.decode("utf-8")
