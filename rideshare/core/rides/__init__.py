# rideshare/core/rides/__init__.py
"""
Каталог поездок.
Сервис импортируется из rideshare.core.rides.service.
"""

from rideshare.core.rides.models import Ride, RideCreateRequest, RideSearchFilter, RideUpdate
from rideshare.core.rides.repository import RideRepository
from rideshare.core.rides.state_machine import RideStateMachine

__all__ = [
    "Ride",
    "RideCreateRequest",
    "RideSearchFilter",
    "RideUpdate",
    "RideRepository",
    "RideStateMachine",
]
