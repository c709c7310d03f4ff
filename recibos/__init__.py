"""Recibos: ingesta, consolidación y control de recibos de sueldo."""

__version__ = "1.0.0"
