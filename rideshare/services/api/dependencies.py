# rideshare/services/api/dependencies.py
"""
Dependency Injection для HTTP API.
Сервисы создаются один раз поверх инициализированной инфраструктуры.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Annotated

from fastapi import Header

from rideshare.common.constants import CALLER_ID_HEADER

if TYPE_CHECKING:
    from rideshare.core.bookings.service import BookingService
    from rideshare.core.fares.service import FareCalculator
    from rideshare.core.notifications.service import NotificationService
    from rideshare.core.payments.service import PaymentService
    from rideshare.core.payouts.service import PayoutService
    from rideshare.core.reviews.service import ReviewService
    from rideshare.core.rides.service import RideService
    from rideshare.infra.database import DatabaseManager
    from rideshare.infra.event_bus import EventBus
    from rideshare.infra.redis_client import RedisClient


# Синглтоны для инфраструктуры
_db: "DatabaseManager | None" = None
_redis: "RedisClient | None" = None
_event_bus: "EventBus | None" = None

# Синглтоны для сервисов
_services: dict[str, object] = {}


async def init_dependencies(
    db: "DatabaseManager",
    redis: "RedisClient",
    event_bus: "EventBus",
) -> None:
    """Инициализировать зависимости при старте приложения."""
    global _db, _redis, _event_bus
    _db = db
    _redis = redis
    _event_bus = event_bus


async def cleanup_dependencies() -> None:
    """Сбросить сервисы при остановке приложения."""
    global _db, _redis, _event_bus
    _services.clear()
    _db = None
    _redis = None
    _event_bus = None


# =============================================================================
# ИДЕНТИФИКАЦИЯ
# =============================================================================

def get_caller_id(
    caller_id: Annotated[int, Header(alias=CALLER_ID_HEADER, description="ID вызывающего пользователя")],
) -> int:
    """ID пользователя, от имени которого выполняется запрос."""
    return caller_id


# =============================================================================
# ИНФРАСТРУКТУРА
# =============================================================================

def get_db() -> "DatabaseManager":
    if _db is None:
        raise RuntimeError("База данных не инициализирована. Вызовите init_dependencies()")
    return _db


def get_redis() -> "RedisClient":
    if _redis is None:
        raise RuntimeError("Redis не инициализирован. Вызовите init_dependencies()")
    return _redis


def get_event_bus() -> "EventBus":
    if _event_bus is None:
        raise RuntimeError("EventBus не инициализирован. Вызовите init_dependencies()")
    return _event_bus


# =============================================================================
# СЕРВИСЫ
# =============================================================================

def _repositories() -> dict:
    if "repos" not in _services:
        from rideshare.core.bookings.repository import BookingRepository
        from rideshare.core.payments.repository import PaymentRepository
        from rideshare.core.reviews.repository import ReviewRepository
        from rideshare.core.rides.repository import RideRepository
        from rideshare.core.users.repository import UserRepository

        db = get_db()
        _services["repos"] = {
            "rides": RideRepository(db),
            "bookings": BookingRepository(db),
            "payments": PaymentRepository(db),
            "reviews": ReviewRepository(db),
            "users": UserRepository(db),
        }
    return _services["repos"]


def get_fare_calculator() -> "FareCalculator":
    if "fares" not in _services:
        from rideshare.core.fares.service import FareCalculator
        _services["fares"] = FareCalculator()
    return _services["fares"]


def get_notification_service() -> "NotificationService":
    if "notifications" not in _services:
        from rideshare.core.notifications.service import NotificationService
        _services["notifications"] = NotificationService(get_event_bus(), _repositories()["users"])
    return _services["notifications"]


def get_ride_service() -> "RideService":
    """Получить сервис поездок."""
    if "rides" not in _services:
        from rideshare.core.rides.service import RideService
        repos = _repositories()
        _services["rides"] = RideService(
            db=get_db(),
            ride_repo=repos["rides"],
            booking_repo=repos["bookings"],
            payment_repo=repos["payments"],
            user_repo=repos["users"],
            fare_calculator=get_fare_calculator(),
            notifications=get_notification_service(),
        )
    return _services["rides"]


def get_booking_service() -> "BookingService":
    """Получить сервис бронирований."""
    if "bookings" not in _services:
        from rideshare.core.bookings.service import BookingService
        repos = _repositories()
        _services["bookings"] = BookingService(
            db=get_db(),
            booking_repo=repos["bookings"],
            ride_repo=repos["rides"],
            payment_repo=repos["payments"],
            user_repo=repos["users"],
            fare_calculator=get_fare_calculator(),
            notifications=get_notification_service(),
        )
    return _services["bookings"]


def get_payment_service() -> "PaymentService":
    """Получить сервис платежей."""
    if "payments" not in _services:
        from rideshare.core.payments.gateway import PaymentGatewayClient
        from rideshare.core.payments.service import PaymentService
        repos = _repositories()
        _services["payments"] = PaymentService(
            db=get_db(),
            payment_repo=repos["payments"],
            booking_repo=repos["bookings"],
            gateway=PaymentGatewayClient(),
            notifications=get_notification_service(),
        )
    return _services["payments"]


def get_payout_service() -> "PayoutService":
    """Получить сервис выплат."""
    if "payouts" not in _services:
        from rideshare.core.payouts.service import PayoutService
        repos = _repositories()
        _services["payouts"] = PayoutService(
            db=get_db(),
            payment_repo=repos["payments"],
            booking_repo=repos["bookings"],
            user_repo=repos["users"],
            redis=get_redis(),
            notifications=get_notification_service(),
        )
    return _services["payouts"]


def get_review_service() -> "ReviewService":
    """Получить сервис отзывов."""
    if "reviews" not in _services:
        from rideshare.core.reviews.service import ReviewService
        repos = _repositories()
        _services["reviews"] = ReviewService(
            db=get_db(),
            review_repo=repos["reviews"],
            booking_repo=repos["bookings"],
            user_repo=repos["users"],
        )
    return _services["reviews"]
