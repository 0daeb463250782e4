# rideshare/core/rides/repository.py
"""
Репозиторий поездок.

Счётчик свободных мест меняется только условными UPDATE: проверка и
списание выполняются одним запросом, поэтому параллельные бронирования
не могут продать больше мест, чем есть.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Optional

from asyncpg import Connection, Record

from rideshare.common.constants import RideStatus
from rideshare.common.exceptions import RideNotFoundError
from rideshare.common.money import to_decimal
from rideshare.core.rides.models import Ride
from rideshare.infra.database import DatabaseManager

_COLUMNS = (
    "id", "driver_id", "source", "destination", "ride_date", "ride_time",
    "available_seats", "total_seats", "base_fare", "rate_per_km",
    "total_distance", "estimated_fare", "vehicle_model", "notes",
    "status", "created_at", "updated_at",
)
_RIDE_COLUMNS = ", ".join(_COLUMNS)
_RIDE_COLUMNS_R = ", ".join(f"r.{c}" for c in _COLUMNS)

# Поля, которые можно менять через частичное обновление
_UPDATABLE_COLUMNS = ("ride_date", "ride_time", "vehicle_model", "notes")


class RideRepository:
    """Репозиторий поездок."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    def _executor(self, conn: Connection | None) -> Any:
        return conn if conn is not None else self._db

    # =========================================================================
    # ЧТЕНИЕ
    # =========================================================================

    async def get_by_id(self, ride_id: int, conn: Connection | None = None) -> Optional[Ride]:
        row = await self._executor(conn).fetchrow(
            f"SELECT {_RIDE_COLUMNS} FROM rides WHERE id = $1",
            ride_id,
        )
        return self._row_to_ride(row) if row else None

    async def get_for_update(self, ride_id: int, conn: Connection) -> Optional[Ride]:
        """Читает поездку и блокирует строку до конца транзакции."""
        row = await conn.fetchrow(
            f"SELECT {_RIDE_COLUMNS} FROM rides WHERE id = $1 FOR UPDATE",
            ride_id,
        )
        return self._row_to_ride(row) if row else None

    async def search(
        self,
        ride_date: date,
        source: str | None = None,
        destination: str | None = None,
    ) -> list[Ride]:
        """
        Поиск запланированных поездок со свободными местами.

        Args:
            ride_date: Дата поездки
            source: Подстрока точки отправления (без учёта регистра, % и _ ищутся как есть)
            destination: Подстрока точки назначения (без учёта регистра)

        Returns:
            Поездки с рейтингом водителя, новые первыми
        """
        rows = await self._db.fetch(
            f"""
            SELECT {_RIDE_COLUMNS_R}, u.driver_rating
            FROM rides r
            JOIN users u ON u.id = r.driver_id
            WHERE r.ride_date = $1
              AND r.status = $2
              AND r.available_seats > 0
              AND ($3::text IS NULL OR position(lower($3) in lower(r.source)) > 0)
              AND ($4::text IS NULL OR position(lower($4) in lower(r.destination)) > 0)
            ORDER BY r.ride_date DESC, r.ride_time DESC
            """,
            ride_date,
            RideStatus.SCHEDULED.value,
            source or None,
            destination or None,
        )
        return [self._row_to_ride(row) for row in rows]

    async def list_by_driver(self, driver_id: int) -> list[Ride]:
        """Неотменённые поездки водителя, новые первыми."""
        rows = await self._db.fetch(
            f"""
            SELECT {_RIDE_COLUMNS}
            FROM rides
            WHERE driver_id = $1 AND status <> $2
            ORDER BY ride_date DESC, ride_time DESC
            """,
            driver_id,
            RideStatus.CANCELLED.value,
        )
        return [self._row_to_ride(row) for row in rows]

    # =========================================================================
    # ЗАПИСЬ
    # =========================================================================

    async def create(
        self,
        driver_id: int,
        source: str,
        destination: str,
        ride_date: date,
        ride_time: Any,
        seats: int,
        base_fare: float,
        rate_per_km: float,
        total_distance: float,
        estimated_fare: float,
        vehicle_model: str | None = None,
        notes: str | None = None,
        conn: Connection | None = None,
    ) -> Ride:
        """Создаёт поездку со всеми местами свободными."""
        row = await self._executor(conn).fetchrow(
            f"""
            INSERT INTO rides (
                driver_id, source, destination, ride_date, ride_time,
                available_seats, total_seats, base_fare, rate_per_km,
                total_distance, estimated_fare, vehicle_model, notes, status
            )
            VALUES ($1, $2, $3, $4, $5, $6, $6, $7, $8, $9, $10, $11, $12, $13)
            RETURNING {_RIDE_COLUMNS}
            """,
            driver_id,
            source,
            destination,
            ride_date,
            ride_time,
            seats,
            to_decimal(base_fare),
            to_decimal(rate_per_km),
            total_distance,
            to_decimal(estimated_fare),
            vehicle_model,
            notes,
            RideStatus.SCHEDULED.value,
        )
        return self._row_to_ride(row)

    async def reserve_seats(self, ride_id: int, seats: int, conn: Connection) -> Optional[int]:
        """
        Списывает места, если их достаточно.

        Returns:
            Остаток свободных мест или None, если мест не хватило
        """
        return await conn.fetchval(
            """
            UPDATE rides
            SET available_seats = available_seats - $2, updated_at = NOW()
            WHERE id = $1 AND status = $3 AND available_seats >= $2
            RETURNING available_seats
            """,
            ride_id,
            seats,
            RideStatus.SCHEDULED.value,
        )

    async def release_seats(self, ride_id: int, seats: int, conn: Connection) -> Optional[int]:
        """Возвращает места (не больше total_seats)."""
        return await conn.fetchval(
            """
            UPDATE rides
            SET available_seats = LEAST(total_seats, available_seats + $2), updated_at = NOW()
            WHERE id = $1
            RETURNING available_seats
            """,
            ride_id,
            seats,
        )

    async def update_status(self, ride_id: int, status: RideStatus, conn: Connection | None = None) -> None:
        await self._executor(conn).execute(
            "UPDATE rides SET status = $2, updated_at = NOW() WHERE id = $1",
            ride_id,
            status.value,
        )

    async def cancel(self, ride_id: int, conn: Connection) -> None:
        """Отменяет поездку и освобождает все места."""
        await conn.execute(
            """
            UPDATE rides
            SET status = $2, available_seats = total_seats, updated_at = NOW()
            WHERE id = $1
            """,
            ride_id,
            RideStatus.CANCELLED.value,
        )

    async def apply_update(self, ride_id: int, changes: dict[str, Any], conn: Connection) -> Ride:
        """
        Применяет частичное обновление.
        Записываются только разрешённые колонки.
        """
        fields = {k: v for k, v in changes.items() if k in _UPDATABLE_COLUMNS}
        if not fields:
            ride = await self.get_by_id(ride_id, conn=conn)
            if ride is None:
                raise RideNotFoundError(ride_id)
            return ride

        assignments = ", ".join(f"{column} = ${i + 2}" for i, column in enumerate(fields))
        row = await conn.fetchrow(
            f"""
            UPDATE rides
            SET {assignments}, updated_at = NOW()
            WHERE id = $1
            RETURNING {_RIDE_COLUMNS}
            """,
            ride_id,
            *fields.values(),
        )
        if row is None:
            raise RideNotFoundError(ride_id)
        return self._row_to_ride(row)

    @staticmethod
    def _row_to_ride(row: Record) -> Ride:
        return Ride.model_validate(dict(row))
