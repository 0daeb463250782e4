# rideshare/core/payouts/models.py
"""
Модели выплат водителям.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class PayoutResult(BaseModel):
    """Результат перевода оплаты бронирования в кошелёк водителя."""

    booking_id: int
    payment_id: int
    driver_id: int
    amount: float = Field(..., ge=0.0)
    wallet_balance: float = Field(..., ge=0.0, description="Баланс после зачисления")
    transferred_at: Optional[datetime] = None


class WalletReport(BaseModel):
    """Кошелёк водителя."""

    driver_id: int
    wallet_balance: float = 0.0
    total_earnings: float = Field(0.0, description="Сумма выполненных переводов")
    pending_payouts: float = Field(0.0, description="Оплачено пассажирами, ещё не переведено")

    class Config:
        from_attributes = True
