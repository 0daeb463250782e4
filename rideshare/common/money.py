# rideshare/common/money.py
"""
Денежные суммы: округление до копеек и перевод в минимальные единицы.
В доменных моделях суммы хранятся как float, в БД как NUMERIC(12, 2).
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

CENTS = Decimal("0.01")


def to_decimal(value: float | int | Decimal) -> Decimal:
    """Переводит сумму в Decimal с точностью до копеек."""
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def round_money(value: float | int | Decimal) -> float:
    """Округляет сумму до 2 знаков (половина вверх)."""
    return float(to_decimal(value))


def to_minor_units(value: float | int | Decimal) -> int:
    """Сумма в минимальных единицах валюты (пайсы, копейки)."""
    return int(to_decimal(value) * 100)


def from_minor_units(value: int) -> float:
    return float(Decimal(value) / 100)
