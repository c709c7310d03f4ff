from .text import (
    normalize_text,
    normalize_name,
    normalize_lines,
    strip_separators,
)
from .dictionary_loader import (
    load_code_table,
    CodeDef,
    CodeTable,
)

__all__ = [
    "normalize_text",
    "normalize_name",
    "normalize_lines",
    "strip_separators",
    "load_code_table",
    "CodeDef",
    "CodeTable",
]
