# rideshare/core/rides/service.py
"""
Сервис поездок (каталог).
Публикация, поиск, изменение и жизненный цикл поездок водителя.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from rideshare.common.constants import RideStatus, TypeMsg
from rideshare.common.exceptions import (
    DriverNotFoundError,
    ForbiddenError,
    InvalidRequestError,
    InvalidStateError,
    NotApprovedError,
    RideNotFoundError,
)
from rideshare.common.logger import log_info
from rideshare.core.bookings.models import Booking
from rideshare.core.bookings.repository import BookingRepository
from rideshare.core.fares.service import FareCalculator
from rideshare.core.notifications.service import NotificationService
from rideshare.core.payments.repository import PaymentRepository
from rideshare.core.rides.models import Ride, RideCreateRequest, RideSearchFilter, RideUpdate
from rideshare.core.rides.repository import RideRepository
from rideshare.core.rides.state_machine import RideStateMachine
from rideshare.core.users.repository import UserRepository
from rideshare.infra.database import DatabaseManager
from rideshare.infra.event_bus import EventTypes


class RideService:
    """
    Сервис поездок.
    Каскадные операции (отмена, завершение) выполняются одной транзакцией
    под блокировкой строки поездки. Уведомления отправляются после commit.
    """

    def __init__(
        self,
        db: DatabaseManager,
        ride_repo: RideRepository,
        booking_repo: BookingRepository,
        payment_repo: PaymentRepository,
        user_repo: UserRepository,
        fare_calculator: FareCalculator,
        notifications: NotificationService,
    ) -> None:
        self._db = db
        self._rides = ride_repo
        self._bookings = booking_repo
        self._payments = payment_repo
        self._users = user_repo
        self._fares = fare_calculator
        self._notifications = notifications

    # =========================================================================
    # ПУБЛИКАЦИЯ
    # =========================================================================

    async def post_ride(self, driver_id: int, request: RideCreateRequest) -> Ride:
        """
        Публикует поездку.

        Args:
            driver_id: ID водителя
            request: Параметры поездки

        Returns:
            Созданная поездка в статусе SCHEDULED

        Raises:
            DriverNotFoundError: водитель не найден
            NotApprovedError: аккаунт водителя не одобрен
        """
        driver = await self._users.get_by_id(driver_id)
        if driver is None or not driver.is_driver:
            raise DriverNotFoundError(driver_id)
        if not driver.is_approved:
            raise NotApprovedError()

        distance = await self._fares.distance(request.source, request.destination)

        base_fare = request.base_fare if request.base_fare and request.base_fare > 0 else self._fares.base_fare
        rate_per_km = self._fares.rate_per_km
        estimated_fare = self._fares.fare(distance, base_fare=base_fare, rate_per_km=rate_per_km)

        ride = await self._rides.create(
            driver_id=driver_id,
            source=request.source,
            destination=request.destination,
            ride_date=request.ride_date,
            ride_time=request.ride_time,
            seats=request.seats,
            base_fare=base_fare,
            rate_per_km=rate_per_km,
            total_distance=distance,
            estimated_fare=estimated_fare,
            vehicle_model=request.vehicle_model,
            notes=request.notes,
        )

        await log_info(
            f"Водитель {driver_id} опубликовал поездку {ride.id}: "
            f"{ride.source} -> {ride.destination}, {distance} км, {estimated_fare}",
            type_msg=TypeMsg.INFO,
        )
        return ride

    # =========================================================================
    # ЧТЕНИЕ
    # =========================================================================

    async def search_rides(self, search: RideSearchFilter) -> list[Ride]:
        """
        Поиск поездок.
        Цена и рейтинг фильтруются после выборки из БД.
        """
        ride_date = search.ride_date or date.today()
        rides = await self._rides.search(ride_date, search.source, search.destination)

        if search.min_price is not None:
            rides = [r for r in rides if r.estimated_fare >= search.min_price]
        if search.max_price is not None:
            rides = [r for r in rides if r.estimated_fare <= search.max_price]
        if search.min_rating is not None:
            rides = [r for r in rides if (r.driver_rating or 0.0) >= search.min_rating]

        return rides

    async def get_ride(self, ride_id: int) -> Ride:
        ride = await self._rides.get_by_id(ride_id)
        if ride is None:
            raise RideNotFoundError(ride_id)
        return ride

    async def get_rides_by_driver(self, driver_id: int) -> list[Ride]:
        return await self._rides.list_by_driver(driver_id)

    # =========================================================================
    # ОТМЕНА
    # =========================================================================

    async def cancel_ride(self, driver_id: int, ride_id: int) -> Ride:
        """
        Отменяет поездку вместе со всеми активными бронированиями.

        Raises:
            RideNotFoundError: поездка не найдена
            ForbiddenError: поездка другого водителя
            AlreadyTerminalError: поездка уже отменена или завершена
        """
        async with self._db.transaction() as conn:
            ride = await self._locked_own_ride(driver_id, ride_id, conn)
            RideStateMachine.ensure_transition(ride.status, RideStatus.CANCELLED)

            cancelled = await self._bookings.cancel_active_by_ride(ride_id, conn)
            for booking in cancelled:
                await self._payments.fail_pending_by_booking(booking.id, conn)

            await self._rides.cancel(ride_id, conn)
            ride = await self._rides.get_by_id(ride_id, conn=conn)

        await log_info(
            f"Поездка {ride_id} отменена водителем {driver_id}, отменено бронирований: {len(cancelled)}",
            type_msg=TypeMsg.INFO,
        )

        for booking in cancelled:
            await self._notifications.notify_ride_cancelled(booking.passenger_id, ride)
        await self._notifications.emit(
            EventTypes.RIDE_CANCELLED,
            {"ride_id": ride_id, "driver_id": driver_id, "booking_ids": [b.id for b in cancelled]},
        )
        return ride

    # =========================================================================
    # ИЗМЕНЕНИЕ
    # =========================================================================

    async def update_ride(self, driver_id: int, ride_id: int, update: RideUpdate) -> Ride:
        """
        Частичное обновление запланированной поездки.
        При переносе даты или времени пассажиры получают уведомление.
        """
        changes = update.changes()
        if not changes:
            raise InvalidRequestError("Нет полей для обновления")

        affected: list[Booking] = []
        async with self._db.transaction() as conn:
            before = await self._locked_own_ride(driver_id, ride_id, conn)
            if before.status != RideStatus.SCHEDULED:
                raise InvalidStateError(
                    f"Изменить можно только запланированную поездку. Текущий статус: {before.status.value}",
                    current_status=before.status.value,
                )

            ride = await self._rides.apply_update(ride_id, changes, conn)
            rescheduled = ride.ride_date != before.ride_date or ride.ride_time != before.ride_time
            if rescheduled:
                affected = await self._bookings.list_active_by_ride(ride_id, conn=conn)

        await log_info(f"Поездка {ride_id} обновлена: {sorted(changes)}", type_msg=TypeMsg.INFO)

        if rescheduled:
            for booking in affected:
                await self._notifications.notify_ride_rescheduled(booking.passenger_id, ride, update.reason)
            await self._notifications.emit(
                EventTypes.RIDE_RESCHEDULED,
                {
                    "ride_id": ride_id,
                    "ride_date": ride.ride_date.isoformat(),
                    "ride_time": ride.ride_time.isoformat(),
                    "reason": update.reason,
                },
            )
        return ride

    # =========================================================================
    # ЖИЗНЕННЫЙ ЦИКЛ
    # =========================================================================

    async def start_ride(self, driver_id: int, ride_id: int) -> Ride:
        async with self._db.transaction() as conn:
            ride = await self._locked_own_ride(driver_id, ride_id, conn)
            RideStateMachine.ensure_transition(ride.status, RideStatus.ONGOING)
            await self._rides.update_status(ride_id, RideStatus.ONGOING, conn=conn)

        await log_info(f"Поездка {ride_id} началась", type_msg=TypeMsg.INFO)
        return ride.model_copy(update={"status": RideStatus.ONGOING})

    async def complete_ride(self, driver_id: int, ride_id: int) -> Ride:
        """
        Завершает поездку.

        Подтверждённые бронирования становятся COMPLETED, неоплаченные
        отменяются с возвратом мест и закрытием ожидающих платежей.
        """
        async with self._db.transaction() as conn:
            ride = await self._locked_own_ride(driver_id, ride_id, conn)
            RideStateMachine.ensure_transition(ride.status, RideStatus.COMPLETED)

            completed = await self._bookings.complete_confirmed_by_ride(ride_id, conn)
            dropped = await self._bookings.cancel_pending_by_ride(ride_id, conn)
            for booking in dropped:
                await self._rides.release_seats(ride_id, booking.number_of_seats, conn)
                await self._payments.fail_pending_by_booking(booking.id, conn)

            await self._rides.update_status(ride_id, RideStatus.COMPLETED, conn=conn)
            await self._users.increment_total_rides(driver_id, conn=conn)
            ride = await self._rides.get_by_id(ride_id, conn=conn)

        await log_info(
            f"Поездка {ride_id} завершена: завершено {len(completed)}, отменено неоплаченных {len(dropped)}",
            type_msg=TypeMsg.INFO,
        )

        for booking in completed:
            await self._notifications.notify_user(
                booking.passenger_id,
                "Поездка завершена",
                f"Поездка {ride.source} → {ride.destination} завершена. Оцените водителя.",
            )
        await self._notifications.emit(
            EventTypes.RIDE_COMPLETED,
            {"ride_id": ride_id, "driver_id": driver_id, "completed_booking_ids": [b.id for b in completed]},
        )
        return ride

    # =========================================================================
    # ВСПОМОГАТЕЛЬНЫЕ
    # =========================================================================

    async def _locked_own_ride(self, driver_id: int, ride_id: int, conn) -> Ride:
        ride: Optional[Ride] = await self._rides.get_for_update(ride_id, conn)
        if ride is None:
            raise RideNotFoundError(ride_id)
        if ride.driver_id != driver_id:
            raise ForbiddenError()
        return ride
