# rideshare/common/constants.py
"""
Общие константы и перечисления.
"""

from enum import Enum


class TypeMsg(str, Enum):
    """Типы сообщений для логирования."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class UserRole(str, Enum):
    """Роли пользователей."""
    PASSENGER = "PASSENGER"
    DRIVER = "DRIVER"
    ADMIN = "ADMIN"


class RideStatus(str, Enum):
    """Статусы поездки."""
    SCHEDULED = "SCHEDULED"
    ONGOING = "ONGOING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class BookingStatus(str, Enum):
    """Статусы бронирования."""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


class PaymentStatus(str, Enum):
    """Статусы оплаты."""
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class PaymentType(str, Enum):
    """Тип платежа."""
    BOOKING = "BOOKING"
    DRIVER_PAYOUT = "DRIVER_PAYOUT"


class DriverPaymentStatus(str, Enum):
    """Статус перевода средств водителю."""
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


# Нетерминальные статусы (бронирование ещё держит места)
ACTIVE_BOOKING_STATUSES: tuple[BookingStatus, ...] = (
    BookingStatus.PENDING,
    BookingStatus.CONFIRMED,
)

TERMINAL_RIDE_STATUSES: tuple[RideStatus, ...] = (
    RideStatus.COMPLETED,
    RideStatus.CANCELLED,
)

# Заголовок с идентификатором вызывающего пользователя
CALLER_ID_HEADER = "X-User-Id"
