# rideshare/core/reviews/models.py
"""
Модели отзывов.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field


class Review(BaseModel):
    """Отзыв пассажира о водителе (один на бронирование)."""

    id: int
    booking_id: int
    reviewer_id: int = Field(..., description="ID пассажира")
    reviewed_id: int = Field(..., description="ID водителя")
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Config:
        from_attributes = True


class ReviewCreateRequest(BaseModel):
    booking_id: int
    rating: int = Field(..., ge=1, le=5, description="Оценка от 1 до 5")
    comment: Optional[str] = Field(None, max_length=2000)
