# rideshare/core/reviews/repository.py
"""
Репозиторий отзывов.
"""

from __future__ import annotations

from typing import Any

import asyncpg
from asyncpg import Connection, Record

from rideshare.common.exceptions import DuplicateReviewError
from rideshare.core.reviews.models import Review
from rideshare.infra.database import DatabaseManager

_REVIEW_COLUMNS = "id, booking_id, reviewer_id, reviewed_id, rating, comment, created_at"


class ReviewRepository:
    """Репозиторий отзывов."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    def _executor(self, conn: Connection | None) -> Any:
        return conn if conn is not None else self._db

    async def create(
        self,
        booking_id: int,
        reviewer_id: int,
        reviewed_id: int,
        rating: int,
        comment: str | None,
        conn: Connection | None = None,
    ) -> Review:
        """
        Сохраняет отзыв.

        Raises:
            DuplicateReviewError: отзыв на бронирование уже есть (уникальный индекс)
        """
        try:
            row = await self._executor(conn).fetchrow(
                f"""
                INSERT INTO reviews (booking_id, reviewer_id, reviewed_id, rating, comment)
                VALUES ($1, $2, $3, $4, $5)
                RETURNING {_REVIEW_COLUMNS}
                """,
                booking_id,
                reviewer_id,
                reviewed_id,
                rating,
                comment,
            )
        except asyncpg.UniqueViolationError as e:
            raise DuplicateReviewError() from e
        return self._row_to_review(row)

    async def exists_for_booking(self, booking_id: int, conn: Connection | None = None) -> bool:
        found = await self._executor(conn).fetchval(
            "SELECT EXISTS (SELECT 1 FROM reviews WHERE booking_id = $1)",
            booking_id,
        )
        return bool(found)

    async def average_for_driver(self, driver_id: int, conn: Connection | None = None) -> float:
        """Среднее всех оценок водителя (0.0 если отзывов нет)."""
        avg = await self._executor(conn).fetchval(
            "SELECT COALESCE(AVG(rating), 0) FROM reviews WHERE reviewed_id = $1",
            driver_id,
        )
        return float(avg or 0.0)

    async def list_by_driver(self, driver_id: int) -> list[Review]:
        rows = await self._db.fetch(
            f"SELECT {_REVIEW_COLUMNS} FROM reviews WHERE reviewed_id = $1 ORDER BY created_at DESC",
            driver_id,
        )
        return [self._row_to_review(row) for row in rows]

    @staticmethod
    def _row_to_review(row: Record) -> Review:
        return Review.model_validate(dict(row))
