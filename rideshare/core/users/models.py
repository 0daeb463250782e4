# rideshare/core/users/models.py
"""
Модели данных пользователей.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field

from rideshare.common.constants import UserRole


class User(BaseModel):
    """Модель пользователя (пассажир, водитель или администратор)."""

    id: int = Field(..., description="ID пользователя")
    name: str = Field(..., description="Имя")
    email: str = Field(..., description="Email для уведомлений")
    phone: Optional[str] = Field(None, description="Номер телефона")
    role: UserRole = Field(UserRole.PASSENGER, description="Роль пользователя")
    is_approved: bool = Field(False, description="Одобрен ли аккаунт водителя")

    wallet_balance: float = Field(0.0, ge=0.0, description="Баланс кошелька водителя")
    driver_rating: float = Field(0.0, ge=0.0, le=5.0, description="Средний рейтинг водителя")
    total_rides: int = Field(0, ge=0, description="Завершённых поездок")

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Config:
        from_attributes = True

    @property
    def is_driver(self) -> bool:
        return self.role == UserRole.DRIVER
