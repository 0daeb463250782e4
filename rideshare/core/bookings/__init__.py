# rideshare/core/bookings/__init__.py
"""
Учёт бронирований.
Сервис импортируется из rideshare.core.bookings.service.
"""

from rideshare.core.bookings.models import Booking, BookingCreateRequest
from rideshare.core.bookings.repository import BookingRepository
from rideshare.core.bookings.state_machine import BookingStateMachine

__all__ = [
    "Booking",
    "BookingCreateRequest",
    "BookingRepository",
    "BookingStateMachine",
]
