# rideshare/worker/runner.py
"""
Запускалка фоновых воркеров.
"""

from __future__ import annotations

import asyncio
from typing import List

from rideshare.common.constants import TypeMsg
from rideshare.common.logger import log_error, log_info
from rideshare.infra.database import close_db, get_db, init_db
from rideshare.infra.event_bus import close_event_bus, get_event_bus, init_event_bus
from rideshare.infra.redis_client import close_redis, init_redis
from rideshare.worker.base import BaseWorker


def build_workers() -> List[BaseWorker]:
    """Создаёт воркеры поверх инициализированной инфраструктуры."""
    from rideshare.core.bookings.repository import BookingRepository
    from rideshare.core.bookings.service import BookingService
    from rideshare.core.fares.service import FareCalculator
    from rideshare.core.notifications.service import NotificationService
    from rideshare.core.payments.repository import PaymentRepository
    from rideshare.core.rides.repository import RideRepository
    from rideshare.core.users.repository import UserRepository
    from rideshare.worker.reconciliation import PendingBookingReconciler

    db = get_db()
    booking_repo = BookingRepository(db)
    user_repo = UserRepository(db)

    booking_service = BookingService(
        db=db,
        booking_repo=booking_repo,
        ride_repo=RideRepository(db),
        payment_repo=PaymentRepository(db),
        user_repo=user_repo,
        fare_calculator=FareCalculator(),
        notifications=NotificationService(get_event_bus(), user_repo),
    )

    return [PendingBookingReconciler(booking_service, booking_repo)]


async def run_workers(init_infra: bool = True) -> None:
    """
    Запускает фоновые воркеры и ждёт отмены.

    Args:
        init_infra: Если True, инициализирует инфраструктуру (БД, Redis, RabbitMQ).
                    В режиме all инфраструктура уже поднята приложением.
    """
    await log_info("Запуск воркеров...", type_msg=TypeMsg.INFO)

    # Инициализация инфраструктуры (если нужно)
    if init_infra:
        await log_info("Инициализация инфраструктуры для воркеров...", type_msg=TypeMsg.DEBUG)
        await init_db()
        await init_redis()
        await init_event_bus()

    workers = build_workers()

    try:
        for worker in workers:
            await worker.start()

        await log_info(f"Запущено воркеров: {len(workers)}", type_msg=TypeMsg.INFO)

        # Ждём завершения (Ctrl+C)
        while True:
            await asyncio.sleep(1)

    except asyncio.CancelledError:
        await log_info("Получен сигнал остановки", type_msg=TypeMsg.INFO)
    except Exception as e:
        await log_error(f"Критическая ошибка воркеров: {e}", exc_info=True)
        raise
    finally:
        for worker in workers:
            await worker.stop()

        # Закрываем инфраструктуру (если мы её инициализировали)
        if init_infra:
            await close_event_bus()
            await close_redis()
            await close_db()

        await log_info("Воркеры остановлены", type_msg=TypeMsg.INFO)
