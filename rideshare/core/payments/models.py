# rideshare/core/payments/models.py
"""
Модели данных платежей.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field

from rideshare.common.constants import DriverPaymentStatus, PaymentStatus, PaymentType


class Payment(BaseModel):
    """Платёж пассажира за бронирование."""

    id: int = Field(..., description="ID платежа")
    booking_id: int = Field(..., description="ID бронирования")
    passenger_id: int = Field(..., description="ID пассажира")
    driver_id: int = Field(..., description="ID водителя")

    gateway_order_id: str = Field(..., description="ID заказа в платёжном шлюзе")
    gateway_payment_id: Optional[str] = Field(None, description="ID платежа в шлюзе")
    gateway_signature: Optional[str] = Field(None, description="Подпись callback")

    amount: float = Field(..., ge=0.0, description="Сумма в основных единицах")
    currency: str = Field("INR", description="Валюта")

    status: PaymentStatus = Field(PaymentStatus.PENDING)
    payment_type: PaymentType = Field(PaymentType.BOOKING)
    driver_payment_status: DriverPaymentStatus = Field(DriverPaymentStatus.PENDING)
    driver_payment_date: Optional[datetime] = None

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Config:
        from_attributes = True

    @property
    def is_transferred(self) -> bool:
        return self.driver_payment_status == DriverPaymentStatus.COMPLETED


class GatewayOrder(BaseModel):
    """Заказ, созданный во внешнем платёжном шлюзе."""

    id: str
    amount: int = Field(..., description="Сумма в минимальных единицах")
    currency: str
    receipt: Optional[str] = None
    status: str = "created"
    notes: dict[str, Any] = Field(default_factory=dict)


class PaymentOrderRequest(BaseModel):
    """Запрос на создание платёжного заказа."""

    booking_id: int
    amount: Optional[float] = Field(None, ge=0.0, description="Сумма с клиента (справочно)")


class PaymentOrderResponse(BaseModel):
    """Данные для открытия формы оплаты на клиенте."""

    order_id: str
    booking_id: int
    amount: int = Field(..., description="Сумма в минимальных единицах")
    amount_major: float = Field(..., description="Сумма в основных единицах")
    currency: str
    key_id: str = Field(..., description="Публичный ключ шлюза")


class PaymentVerifyRequest(BaseModel):
    """Callback шлюза об успешной оплате."""

    order_id: str = Field(..., min_length=1)
    payment_id: str = Field(..., min_length=1)
    signature: str = Field(..., min_length=1)


class PaymentFailRequest(BaseModel):
    """Callback шлюза о неуспешной оплате."""

    order_id: str = Field(..., min_length=1)
    reason: Optional[str] = Field(None, max_length=500)
