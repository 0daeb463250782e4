# rideshare/core/bookings/models.py
"""
Модели данных бронирований.
"""

from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Optional

from pydantic import BaseModel, Field

from rideshare.common.constants import ACTIVE_BOOKING_STATUSES, BookingStatus


class Booking(BaseModel):
    """Бронирование мест пассажиром."""

    id: int = Field(..., description="ID бронирования")
    ride_id: int = Field(..., description="ID поездки")
    passenger_id: int = Field(..., description="ID пассажира")

    pickup_location: str = Field(..., description="Точка посадки")
    dropoff_location: str = Field(..., description="Точка высадки")
    distance_covered: float = Field(..., ge=0.0, description="Расстояние пассажира, км")
    fare_amount: float = Field(..., ge=0.0, description="Стоимость за все места")
    number_of_seats: int = Field(..., ge=1, description="Количество мест")

    status: BookingStatus = Field(BookingStatus.PENDING, description="Статус бронирования")

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Данные поездки (JOIN rides), отсутствуют у строк из RETURNING
    driver_id: Optional[int] = Field(None, description="ID водителя поездки")
    ride_date: Optional[date] = None
    ride_time: Optional[time] = None

    class Config:
        from_attributes = True

    @property
    def is_active(self) -> bool:
        """Держит ли бронирование места."""
        return self.status in ACTIVE_BOOKING_STATUSES

    def ride_departed(self, now: datetime | None = None) -> bool:
        """Наступило ли время отправления поездки."""
        if self.ride_date is None:
            return False
        departure = datetime.combine(self.ride_date, self.ride_time or time.min)
        return departure < (now or datetime.now())


class BookingCreateRequest(BaseModel):
    """Запрос на бронирование."""

    ride_id: int
    seats: int = Field(1, ge=1, le=50, description="Количество мест")
    pickup_location: Optional[str] = Field(None, max_length=255, description="По умолчанию начало маршрута")
    dropoff_location: Optional[str] = Field(None, max_length=255, description="По умолчанию конец маршрута")
