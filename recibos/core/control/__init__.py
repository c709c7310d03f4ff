from .reconciliation import (
    reconcile,
    control_period,
    A_FAVOR,
    EN_CONTRA,
    ESTADO_OK,
    ESTADO_DIF,
    ESTADO_SIN_OFICIAL,
    ESTADO_SIN_RECIBO,
)

__all__ = [
    "reconcile",
    "control_period",
    "A_FAVOR",
    "EN_CONTRA",
    "ESTADO_OK",
    "ESTADO_DIF",
    "ESTADO_SIN_OFICIAL",
    "ESTADO_SIN_RECIBO",
]
