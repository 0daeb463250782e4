# tests/core/test_reviews_repository.py
"""
Тесты для репозитория отзывов.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import asyncpg
import pytest

from rideshare.common.exceptions import DuplicateReviewError
from rideshare.core.reviews.repository import ReviewRepository


@pytest.fixture
def review_repository(mock_db: MagicMock) -> ReviewRepository:
    """Создаёт экземпляр ReviewRepository с моком БД."""
    return ReviewRepository(db=mock_db)


class TestReviewRepository:
    """Тесты для ReviewRepository."""

    @pytest.mark.asyncio
    async def test_create(self, review_repository: ReviewRepository, mock_connection: AsyncMock) -> None:
        mock_connection.fetchrow.return_value = {
            "id": 1,
            "booking_id": 11,
            "reviewer_id": 2,
            "reviewed_id": 1,
            "rating": 5,
            "comment": "Отлично",
            "created_at": datetime(2030, 1, 2, tzinfo=timezone.utc),
        }

        review = await review_repository.create(11, 2, 1, 5, "Отлично", conn=mock_connection)

        assert review.rating == 5
        assert mock_connection.fetchrow.call_args.args[1:] == (11, 2, 1, 5, "Отлично")

    @pytest.mark.asyncio
    async def test_unique_violation_is_duplicate(
        self, review_repository: ReviewRepository, mock_db: MagicMock
    ) -> None:
        """Нарушение уникального индекса по booking_id превращается в доменную ошибку."""
        mock_db.fetchrow.side_effect = asyncpg.UniqueViolationError("duplicate key value")

        with pytest.raises(DuplicateReviewError) as exc_info:
            await review_repository.create(11, 2, 1, 4, None)

        assert isinstance(exc_info.value.__cause__, asyncpg.UniqueViolationError)

    @pytest.mark.asyncio
    async def test_other_db_errors_propagate(
        self, review_repository: ReviewRepository, mock_db: MagicMock
    ) -> None:
        mock_db.fetchrow.side_effect = asyncpg.ForeignKeyViolationError("no booking")

        with pytest.raises(asyncpg.ForeignKeyViolationError):
            await review_repository.create(404, 2, 1, 4, None)

    @pytest.mark.asyncio
    async def test_average_for_driver(self, review_repository: ReviewRepository, mock_db: MagicMock) -> None:
        mock_db.fetchval.return_value = Decimal("4.5")

        assert await review_repository.average_for_driver(1) == 4.5
        assert mock_db.fetchval.call_args.args[1:] == (1,)

    @pytest.mark.asyncio
    async def test_average_without_reviews(self, review_repository: ReviewRepository, mock_db: MagicMock) -> None:
        mock_db.fetchval.return_value = None
        assert await review_repository.average_for_driver(1) == 0.0

    @pytest.mark.asyncio
    async def test_exists_for_booking(self, review_repository: ReviewRepository, mock_db: MagicMock) -> None:
        mock_db.fetchval.return_value = None
        assert await review_repository.exists_for_booking(11) is False
