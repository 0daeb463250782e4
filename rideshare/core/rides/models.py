# rideshare/core/rides/models.py
"""
Модели данных поездок.
"""

from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field

from rideshare.common.constants import RideStatus


class Ride(BaseModel):
    """Опубликованная водителем поездка."""

    id: int = Field(..., description="ID поездки")
    driver_id: int = Field(..., description="ID водителя")

    source: str = Field(..., description="Точка отправления")
    destination: str = Field(..., description="Точка назначения")
    ride_date: date = Field(..., description="Дата поездки")
    ride_time: time = Field(..., description="Время отправления")

    # Места
    available_seats: int = Field(..., ge=0, description="Свободных мест")
    total_seats: int = Field(..., ge=1, description="Всего мест")

    # Расчёты
    base_fare: float = Field(..., ge=0.0, description="Базовый тариф")
    rate_per_km: float = Field(..., ge=0.0, description="Ставка за км")
    total_distance: float = Field(..., ge=0.0, description="Расстояние маршрута, км")
    estimated_fare: float = Field(..., ge=0.0, description="Стоимость всего маршрута")

    vehicle_model: Optional[str] = Field(None, description="Модель автомобиля")
    notes: Optional[str] = Field(None, description="Комментарий водителя")

    status: RideStatus = Field(RideStatus.SCHEDULED, description="Статус поездки")

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Заполняется только при поиске (JOIN users)
    driver_rating: Optional[float] = Field(None, description="Рейтинг водителя")

    class Config:
        from_attributes = True

    @property
    def booked_seats(self) -> int:
        return self.total_seats - self.available_seats

    @property
    def departure(self) -> datetime:
        """Дата и время отправления."""
        return datetime.combine(self.ride_date, self.ride_time)


class RideCreateRequest(BaseModel):
    """Запрос на публикацию поездки."""

    source: str = Field(..., min_length=1, max_length=255)
    destination: str = Field(..., min_length=1, max_length=255)
    ride_date: date
    ride_time: time
    seats: int = Field(..., ge=1, le=50, description="Количество мест")
    base_fare: Optional[float] = Field(None, ge=0.0, description="Базовый тариф (по умолчанию из конфига)")
    vehicle_model: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = Field(None, max_length=2000)


class RideSearchFilter(BaseModel):
    """Фильтр поиска поездок."""

    source: Optional[str] = None
    destination: Optional[str] = None
    ride_date: Optional[date] = None
    min_price: Optional[float] = Field(None, ge=0.0)
    max_price: Optional[float] = Field(None, ge=0.0)
    min_rating: Optional[float] = Field(None, ge=0.0, le=5.0)


class RideUpdate(BaseModel):
    """
    Частичное обновление поездки.
    Каждое поле необязательно: None означает «не менять».
    """

    ride_date: Optional[date] = None
    ride_time: Optional[time] = None
    vehicle_model: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = Field(None, max_length=2000)
    reason: Optional[str] = Field(None, max_length=500, description="Причина изменения для пассажиров")

    def changes(self) -> dict[str, Any]:
        """Поля, которые нужно записать в БД."""
        return self.model_dump(exclude_none=True, exclude={"reason"})
