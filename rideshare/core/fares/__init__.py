# rideshare/core/fares/__init__.py
"""
Расчёт расстояния и стоимости поездок.
"""

from rideshare.core.fares.service import FareCalculator

__all__ = ["FareCalculator"]
