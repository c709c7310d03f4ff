"""
Control de recibos contra la planilla oficial.

reconcile(): diferencias por código entre valores oficiales y
calculados (los del ledger) para una misma clave.

    delta = oficial - calculado
    delta > 0  -> "a favor"
    delta < 0  -> "en contra"

Solo se reporta un código si |delta| > tolerancia (estrictamente mayor).
Toda la aritmética es Decimal con 2 decimales.

control_period(): cruza filas oficiales con entradas del ledger por
(legajo, periodo) y devuelve un resultado por clave.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from ..models import ControlResult, DiffItem, LedgerEntry, OfficialRow
from ..utils.numbers import ZERO, format_decimal, parse_decimal, quantize

logger = logging.getLogger(__name__)

A_FAVOR = "a favor"
EN_CONTRA = "en contra"

ESTADO_OK = "OK"
ESTADO_DIF = "DIF"
ESTADO_SIN_OFICIAL = "SIN_OFICIAL"
ESTADO_SIN_RECIBO = "SIN_RECIBO"


def _value(values: Mapping[str, object], code: str) -> Decimal:
    parsed = parse_decimal(values.get(code))
    return quantize(parsed) if parsed is not None else ZERO


def _ordered_codes(codes: Iterable[str], order: Optional[Sequence[str]]) -> List[str]:
    codes = set(codes)
    head = [c for c in (order or []) if c in codes]
    tail = sorted(codes - set(head))
    return head + tail


def reconcile(
    official: Mapping[str, object],
    calculated: Mapping[str, object],
    tolerance: Decimal | str,
    order: Optional[Sequence[str]] = None,
    labels: Optional[Callable[[str], str]] = None,
) -> List[DiffItem]:
    """
    Diferencias que superan la tolerancia, ordenadas por `order` y luego
    por código ascendente. Un código ausente en un lado vale 0.00.
    """
    tol = parse_decimal(tolerance)
    if tol is None:
        raise ValueError(f"Tolerancia inválida: {tolerance!r}")
    tol = abs(tol)

    diffs: List[DiffItem] = []
    for code in _ordered_codes(set(official) | set(calculated), order):
        oficial = _value(official, code)
        calculado = _value(calculated, code)
        delta = oficial - calculado

        if abs(delta) <= tol:
            continue

        diffs.append(DiffItem(
            codigo=code,
            label=labels(code) if labels else code,
            oficial=format_decimal(oficial),
            calculado=format_decimal(calculado),
            delta=format_decimal(delta),
            direccion=A_FAVOR if delta > 0 else EN_CONTRA,
        ))
    return diffs


def control_period(
    official_rows: Iterable[OfficialRow],
    entries: Iterable[LedgerEntry],
    tolerance: Decimal | str,
    order: Optional[Sequence[str]] = None,
    labels: Optional[Callable[[str], str]] = None,
) -> List[ControlResult]:
    """
    Un ControlResult por clave legajo||periodo presente en cualquiera de
    los dos lados:
      - OK / DIF:      hay oficial y recibo
      - SIN_RECIBO:    hay oficial pero no recibo cargado
      - SIN_OFICIAL:   hay recibo pero no fila oficial
    """
    if parse_decimal(tolerance) is None:
        raise ValueError(f"Tolerancia inválida: {tolerance!r}")

    oficiales: Dict[str, OfficialRow] = {}
    for row in official_rows:
        if row.key in oficiales:
            logger.warning("[control] Fila oficial duplicada para %s, se usa la última", row.key)
        oficiales[row.key] = row

    recibos: Dict[str, LedgerEntry] = {}
    for entry in entries:
        k = f"{entry.legajo}||{entry.periodo}"
        if k in recibos:
            # Ledger con empresa en la clave: mismo legajo en dos empresas
            recibos[k].fields = {**recibos[k].fields, **entry.fields}
            recibos[k].source_files = recibos[k].source_files + [
                f for f in entry.source_files if f not in recibos[k].source_files
            ]
        else:
            recibos[k] = LedgerEntry(
                key=k,
                legajo=entry.legajo,
                periodo=entry.periodo,
                nombre=entry.nombre,
                empresa=entry.empresa,
                source_files=list(entry.source_files),
                fields=dict(entry.fields),
            )

    results: List[ControlResult] = []
    for k in sorted(set(oficiales) | set(recibos)):
        oficial = oficiales.get(k)
        recibo = recibos.get(k)
        legajo, periodo = k.split("||", 1)
        nombre = (oficial.nombre if oficial else "") or (recibo.nombre if recibo else "") or ""

        if oficial is None:
            estado, diffs = ESTADO_SIN_OFICIAL, []
        elif recibo is None:
            estado, diffs = ESTADO_SIN_RECIBO, []
        else:
            diffs = reconcile(oficial.valores, recibo.fields, tolerance, order=order, labels=labels)
            estado = ESTADO_DIF if diffs else ESTADO_OK

        results.append(ControlResult(
            key=k,
            legajo=legajo,
            periodo=periodo,
            nombre=nombre,
            estado=estado,
            diffs=diffs,
            archivos=list(recibo.source_files) if recibo else [],
        ))

    logger.info(
        "[control] %d claves: %d OK, %d DIF, %d sin oficial, %d sin recibo",
        len(results),
        sum(r.estado == ESTADO_OK for r in results),
        sum(r.estado == ESTADO_DIF for r in results),
        sum(r.estado == ESTADO_SIN_OFICIAL for r in results),
        sum(r.estado == ESTADO_SIN_RECIBO for r in results),
    )
    return results
