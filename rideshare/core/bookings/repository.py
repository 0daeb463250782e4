# rideshare/core/bookings/repository.py
"""
Репозиторий бронирований.
Массовые операции (отмена по поездке, завершение) возвращают изменённые строки.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from asyncpg import Connection, Record

from rideshare.common.constants import BookingStatus
from rideshare.common.money import to_decimal
from rideshare.core.bookings.models import Booking
from rideshare.infra.database import DatabaseManager

_COLUMNS = (
    "id", "ride_id", "passenger_id", "pickup_location", "dropoff_location",
    "distance_covered", "fare_amount", "number_of_seats", "status",
    "created_at", "updated_at",
)
_BOOKING_COLUMNS = ", ".join(_COLUMNS)

# Бронирование вместе с данными поездки
_SELECT_JOINED = f"""
    SELECT {", ".join(f"b.{c}" for c in _COLUMNS)},
           r.driver_id, r.ride_date, r.ride_time
    FROM bookings b
    JOIN rides r ON r.id = b.ride_id
"""

_ACTIVE = (BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value)


class BookingRepository:
    """Репозиторий бронирований."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    def _executor(self, conn: Connection | None) -> Any:
        return conn if conn is not None else self._db

    # =========================================================================
    # ЧТЕНИЕ
    # =========================================================================

    async def get_by_id(self, booking_id: int, conn: Connection | None = None) -> Optional[Booking]:
        row = await self._executor(conn).fetchrow(f"{_SELECT_JOINED} WHERE b.id = $1", booking_id)
        return self._row_to_booking(row) if row else None

    async def get_for_update(self, booking_id: int, conn: Connection) -> Optional[Booking]:
        """Читает бронирование и блокирует его строку (строка поездки не блокируется)."""
        row = await conn.fetchrow(f"{_SELECT_JOINED} WHERE b.id = $1 FOR UPDATE OF b", booking_id)
        return self._row_to_booking(row) if row else None

    async def list_by_passenger(self, passenger_id: int) -> list[Booking]:
        rows = await self._db.fetch(
            f"{_SELECT_JOINED} WHERE b.passenger_id = $1 ORDER BY b.created_at DESC",
            passenger_id,
        )
        return [self._row_to_booking(row) for row in rows]

    async def list_by_ride(self, ride_id: int, conn: Connection | None = None) -> list[Booking]:
        rows = await self._executor(conn).fetch(
            f"{_SELECT_JOINED} WHERE b.ride_id = $1 ORDER BY b.created_at",
            ride_id,
        )
        return [self._row_to_booking(row) for row in rows]

    async def list_by_driver(self, driver_id: int) -> list[Booking]:
        rows = await self._db.fetch(
            f"{_SELECT_JOINED} WHERE r.driver_id = $1 ORDER BY b.created_at DESC",
            driver_id,
        )
        return [self._row_to_booking(row) for row in rows]

    async def list_active_by_ride(self, ride_id: int, conn: Connection | None = None) -> list[Booking]:
        rows = await self._executor(conn).fetch(
            f"{_SELECT_JOINED} WHERE b.ride_id = $1 AND b.status = ANY($2::text[]) ORDER BY b.created_at",
            ride_id,
            list(_ACTIVE),
        )
        return [self._row_to_booking(row) for row in rows]

    async def exists_active(self, ride_id: int, passenger_id: int, conn: Connection | None = None) -> bool:
        """Есть ли у пассажира неотменённое бронирование на поездку."""
        found = await self._executor(conn).fetchval(
            """
            SELECT EXISTS (
                SELECT 1 FROM bookings
                WHERE ride_id = $1 AND passenger_id = $2 AND status = ANY($3::text[])
            )
            """,
            ride_id,
            passenger_id,
            list(_ACTIVE),
        )
        return bool(found)

    async def list_stale_pending(self, created_before: datetime, limit: int = 100) -> list[Booking]:
        """Неоплаченные бронирования, созданные раньше указанного момента."""
        rows = await self._db.fetch(
            f"""
            {_SELECT_JOINED}
            WHERE b.status = $1 AND b.created_at < $2
            ORDER BY b.created_at
            LIMIT $3
            """,
            BookingStatus.PENDING.value,
            created_before,
            limit,
        )
        return [self._row_to_booking(row) for row in rows]

    # =========================================================================
    # ЗАПИСЬ
    # =========================================================================

    async def create(
        self,
        ride_id: int,
        passenger_id: int,
        pickup_location: str,
        dropoff_location: str,
        distance_covered: float,
        fare_amount: float,
        number_of_seats: int,
        conn: Connection,
    ) -> Booking:
        """Создаёт бронирование в статусе PENDING."""
        row = await conn.fetchrow(
            f"""
            INSERT INTO bookings (
                ride_id, passenger_id, pickup_location, dropoff_location,
                distance_covered, fare_amount, number_of_seats, status
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
            RETURNING {_BOOKING_COLUMNS}
            """,
            ride_id,
            passenger_id,
            pickup_location,
            dropoff_location,
            distance_covered,
            to_decimal(fare_amount),
            number_of_seats,
            BookingStatus.PENDING.value,
        )
        return self._row_to_booking(row)

    async def update_status(self, booking_id: int, status: BookingStatus, conn: Connection | None = None) -> None:
        await self._executor(conn).execute(
            "UPDATE bookings SET status = $2, updated_at = NOW() WHERE id = $1",
            booking_id,
            status.value,
        )

    async def cancel_active_by_ride(self, ride_id: int, conn: Connection) -> list[Booking]:
        """Отменяет все PENDING/CONFIRMED бронирования поездки."""
        return await self._bulk_transition(ride_id, list(_ACTIVE), BookingStatus.CANCELLED, conn)

    async def cancel_pending_by_ride(self, ride_id: int, conn: Connection) -> list[Booking]:
        """Отменяет неоплаченные бронирования поездки."""
        return await self._bulk_transition(ride_id, [BookingStatus.PENDING.value], BookingStatus.CANCELLED, conn)

    async def complete_confirmed_by_ride(self, ride_id: int, conn: Connection) -> list[Booking]:
        """Переводит подтверждённые бронирования поездки в COMPLETED."""
        return await self._bulk_transition(
            ride_id, [BookingStatus.CONFIRMED.value], BookingStatus.COMPLETED, conn
        )

    async def _bulk_transition(
        self,
        ride_id: int,
        from_statuses: list[str],
        to_status: BookingStatus,
        conn: Connection,
    ) -> list[Booking]:
        rows = await conn.fetch(
            f"""
            UPDATE bookings
            SET status = $3, updated_at = NOW()
            WHERE ride_id = $1 AND status = ANY($2::text[])
            RETURNING {_BOOKING_COLUMNS}
            """,
            ride_id,
            from_statuses,
            to_status.value,
        )
        return [self._row_to_booking(row) for row in rows]

    @staticmethod
    def _row_to_booking(row: Record) -> Booking:
        return Booking.model_validate(dict(row))
