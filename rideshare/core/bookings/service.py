# rideshare/core/bookings/service.py
"""
Сервис бронирований.

Места списываются при создании бронирования (статус PENDING) условным
UPDATE в той же транзакции, что и INSERT бронирования. Отмена возвращает
места и закрывает ожидающие платежи. Порядок блокировок: поездка, затем
бронирование, затем платёж.
"""

from __future__ import annotations

from typing import Optional

from asyncpg import Connection

from rideshare.common.constants import BookingStatus, RideStatus, TypeMsg
from rideshare.common.exceptions import (
    BookingNotFoundError,
    DuplicateBookingError,
    ForbiddenError,
    InsufficientSeatsError,
    InvalidStateError,
    PassengerNotFoundError,
    RideNotFoundError,
)
from rideshare.common.logger import log_info, log_warning
from rideshare.common.money import round_money
from rideshare.core.bookings.models import Booking, BookingCreateRequest
from rideshare.core.bookings.repository import BookingRepository
from rideshare.core.bookings.state_machine import BookingStateMachine
from rideshare.core.fares.service import FareCalculator
from rideshare.core.notifications.service import NotificationService
from rideshare.core.payments.repository import PaymentRepository
from rideshare.core.rides.models import Ride
from rideshare.core.rides.repository import RideRepository
from rideshare.core.users.repository import UserRepository
from rideshare.infra.database import DatabaseManager
from rideshare.infra.event_bus import EventTypes


def _same_place(a: str, b: str) -> bool:
    return a.strip().casefold() == b.strip().casefold()


class BookingService:
    """Сервис бронирований."""

    def __init__(
        self,
        db: DatabaseManager,
        booking_repo: BookingRepository,
        ride_repo: RideRepository,
        payment_repo: PaymentRepository,
        user_repo: UserRepository,
        fare_calculator: FareCalculator,
        notifications: NotificationService,
    ) -> None:
        self._db = db
        self._bookings = booking_repo
        self._rides = ride_repo
        self._payments = payment_repo
        self._users = user_repo
        self._fares = fare_calculator
        self._notifications = notifications

    # =========================================================================
    # СОЗДАНИЕ
    # =========================================================================

    async def create_booking(self, passenger_id: int, request: BookingCreateRequest) -> Booking:
        """
        Бронирует места на поездке.

        Args:
            passenger_id: ID пассажира
            request: Поездка, количество мест, точки посадки/высадки

        Returns:
            Бронирование в статусе PENDING (ожидает оплаты)

        Raises:
            RideNotFoundError: поездка не найдена
            PassengerNotFoundError: пассажир не найден
            InvalidStateError: поездка не в статусе SCHEDULED
            ForbiddenError: водитель бронирует собственную поездку
            DuplicateBookingError: у пассажира уже есть активное бронирование
            InsufficientSeatsError: свободных мест меньше, чем запрошено
        """
        ride = await self._rides.get_by_id(request.ride_id)
        if ride is None:
            raise RideNotFoundError(request.ride_id)

        passenger = await self._users.get_by_id(passenger_id)
        if passenger is None:
            raise PassengerNotFoundError(passenger_id)

        self._ensure_bookable(ride)
        if ride.driver_id == passenger_id:
            raise ForbiddenError("Нельзя бронировать собственную поездку")
        if request.seats > ride.available_seats:
            raise InsufficientSeatsError(request.seats, ride.available_seats)

        pickup = request.pickup_location or ride.source
        dropoff = request.dropoff_location or ride.destination
        distance = await self._passenger_distance(ride, pickup, dropoff)

        seat_fare = self._fares.proportional_fare(ride.estimated_fare, ride.total_distance, distance)
        fare_amount = round_money(seat_fare * request.seats)

        async with self._db.transaction() as conn:
            locked = await self._rides.get_for_update(ride.id, conn)
            if locked is None:
                raise RideNotFoundError(ride.id)
            self._ensure_bookable(locked)

            if await self._bookings.exists_active(ride.id, passenger_id, conn=conn):
                raise DuplicateBookingError()

            remaining = await self._rides.reserve_seats(ride.id, request.seats, conn)
            if remaining is None:
                raise InsufficientSeatsError(request.seats, locked.available_seats)

            booking = await self._bookings.create(
                ride_id=ride.id,
                passenger_id=passenger_id,
                pickup_location=pickup,
                dropoff_location=dropoff,
                distance_covered=distance,
                fare_amount=fare_amount,
                number_of_seats=request.seats,
                conn=conn,
            )

        booking = booking.model_copy(
            update={"driver_id": ride.driver_id, "ride_date": ride.ride_date, "ride_time": ride.ride_time}
        )

        await log_info(
            f"Бронирование {booking.id}: пассажир {passenger_id}, поездка {ride.id}, "
            f"мест {request.seats}, {distance} км, {fare_amount}. Осталось мест: {remaining}",
            type_msg=TypeMsg.INFO,
        )

        await self._notifications.notify_booking_created(booking, ride)
        await self._notifications.emit(
            EventTypes.BOOKING_CREATED,
            {
                "booking_id": booking.id,
                "ride_id": ride.id,
                "passenger_id": passenger_id,
                "seats": request.seats,
                "fare_amount": fare_amount,
            },
        )
        return booking

    async def _passenger_distance(self, ride: Ride, pickup: str, dropoff: str) -> float:
        """Расстояние участка пассажира, не больше расстояния всей поездки."""
        if _same_place(pickup, ride.source) and _same_place(dropoff, ride.destination):
            return ride.total_distance

        distance = await self._fares.distance(pickup, dropoff)
        return min(distance, ride.total_distance)

    @staticmethod
    def _ensure_bookable(ride: Ride) -> None:
        if ride.status != RideStatus.SCHEDULED:
            raise InvalidStateError(
                f"Бронирование доступно только для запланированных поездок. Текущий статус: {ride.status.value}",
                current_status=ride.status.value,
            )

    # =========================================================================
    # ОТМЕНА
    # =========================================================================

    async def cancel_booking(self, passenger_id: int, booking_id: int) -> Booking:
        """
        Отмена бронирования пассажиром.

        Raises:
            BookingNotFoundError: бронирование не найдено
            ForbiddenError: бронирование другого пассажира
            AlreadyTerminalError: бронирование уже отменено или завершено
        """
        booking = await self._cancel(booking_id, passenger_id=passenger_id)

        await log_info(f"Пассажир {passenger_id} отменил бронирование {booking_id}", type_msg=TypeMsg.INFO)

        if booking.driver_id is not None:
            await self._notifications.notify_booking_cancelled(booking.driver_id, booking)
        await self._notifications.emit(
            EventTypes.BOOKING_CANCELLED,
            {"booking_id": booking_id, "ride_id": booking.ride_id, "seats": booking.number_of_seats},
        )
        return booking

    async def expire_pending_booking(self, booking_id: int) -> bool:
        """
        Отменяет неоплаченное бронирование (reconciliation).

        Returns:
            True если бронирование было PENDING и отменено
        """
        booking = await self._cancel(booking_id, only_pending=True)
        if booking is None:
            return False

        await log_info(f"Бронирование {booking_id} истекло без оплаты", type_msg=TypeMsg.INFO)

        await self._notifications.notify_booking_expired(booking)
        await self._notifications.emit(
            EventTypes.BOOKING_EXPIRED,
            {"booking_id": booking_id, "ride_id": booking.ride_id, "seats": booking.number_of_seats},
        )
        return True

    async def decline_booking(self, driver_id: int, booking_id: int) -> Booking:
        """
        Отклонение неоплаченного бронирования водителем поездки.
        Места возвращаются, ожидающие платежи закрываются.

        Raises:
            BookingNotFoundError: бронирование не найдено
            ForbiddenError: поездка другого водителя
            InvalidStateError: бронирование уже не PENDING
        """
        booking = await self._cancel(booking_id, driver_id=driver_id, require_pending=True)

        await log_info(f"Водитель {driver_id} отклонил бронирование {booking_id}", type_msg=TypeMsg.INFO)

        await self._notifications.notify_booking_declined(booking)
        await self._notifications.emit(
            EventTypes.BOOKING_DECLINED,
            {"booking_id": booking_id, "ride_id": booking.ride_id, "seats": booking.number_of_seats},
        )
        return booking

    async def _cancel(
        self,
        booking_id: int,
        passenger_id: Optional[int] = None,
        driver_id: Optional[int] = None,
        only_pending: bool = False,
        require_pending: bool = False,
    ) -> Optional[Booking]:
        """
        Отменяет бронирование одной транзакцией.

        Args:
            booking_id: ID бронирования
            passenger_id: Владелец (None для системной отмены)
            driver_id: Водитель поездки (отклонение брони водителем)
            only_pending: Ничего не делать, если бронирование уже не PENDING
            require_pending: Бронирование не в PENDING: InvalidStateError

        Returns:
            Отменённое бронирование или None (only_pending и статус не PENDING)
        """
        async with self._db.transaction() as conn:
            current = await self._bookings.get_by_id(booking_id, conn=conn)
            if current is None:
                raise BookingNotFoundError(booking_id)
            if passenger_id is not None and current.passenger_id != passenger_id:
                raise ForbiddenError()
            if driver_id is not None and current.driver_id != driver_id:
                raise ForbiddenError()

            await self._rides.get_for_update(current.ride_id, conn)
            booking = await self._locked_booking(booking_id, conn)

            if booking.status != BookingStatus.PENDING:
                if only_pending:
                    return None
                if require_pending:
                    raise InvalidStateError(
                        f"Отклонить можно только бронирование в статусе PENDING. Текущий статус: {booking.status.value}",
                        current_status=booking.status.value,
                    )
            BookingStateMachine.ensure_transition(booking.status, BookingStatus.CANCELLED)

            await self._rides.release_seats(booking.ride_id, booking.number_of_seats, conn)
            await self._bookings.update_status(booking_id, BookingStatus.CANCELLED, conn=conn)
            failed = await self._payments.fail_pending_by_booking(booking_id, conn)

        if failed:
            await log_warning(f"Бронирование {booking_id}: закрыто ожидающих платежей: {failed}")
        return booking.model_copy(update={"status": BookingStatus.CANCELLED})

    # =========================================================================
    # ПОДТВЕРЖДЕНИЕ
    # =========================================================================

    async def confirm_booking(self, driver_id: int, booking_id: int) -> Booking:
        """Прямое подтверждение водителем (например, оплата наличными)."""
        async with self._db.transaction() as conn:
            current = await self._bookings.get_by_id(booking_id, conn=conn)
            if current is None:
                raise BookingNotFoundError(booking_id)
            if current.driver_id != driver_id:
                raise ForbiddenError()

            await self._rides.get_for_update(current.ride_id, conn)
            booking = await self._locked_booking(booking_id, conn)
            BookingStateMachine.ensure_transition(booking.status, BookingStatus.CONFIRMED)
            await self._bookings.update_status(booking_id, BookingStatus.CONFIRMED, conn=conn)

        booking = booking.model_copy(update={"status": BookingStatus.CONFIRMED})
        await log_info(f"Водитель {driver_id} подтвердил бронирование {booking_id}", type_msg=TypeMsg.INFO)

        await self._notifications.notify_booking_confirmed(booking)
        await self._notifications.emit(
            EventTypes.BOOKING_CONFIRMED,
            {"booking_id": booking_id, "ride_id": booking.ride_id, "confirmed_by": driver_id},
        )
        return booking

    # =========================================================================
    # ЧТЕНИЕ
    # =========================================================================

    async def get_booking(self, caller_id: int, booking_id: int) -> Booking:
        """Бронирование доступно только пассажиру и водителю поездки."""
        booking = await self._bookings.get_by_id(booking_id)
        if booking is None:
            raise BookingNotFoundError(booking_id)
        if caller_id not in (booking.passenger_id, booking.driver_id):
            raise ForbiddenError()
        return booking

    async def get_bookings_by_passenger(self, passenger_id: int) -> list[Booking]:
        return await self._bookings.list_by_passenger(passenger_id)

    async def get_bookings_by_ride(self, ride_id: int) -> list[Booking]:
        return await self._bookings.list_by_ride(ride_id)

    async def get_bookings_by_driver(self, driver_id: int) -> list[Booking]:
        return await self._bookings.list_by_driver(driver_id)

    async def _locked_booking(self, booking_id: int, conn: Connection) -> Booking:
        booking = await self._bookings.get_for_update(booking_id, conn)
        if booking is None:
            raise BookingNotFoundError(booking_id)
        return booking
