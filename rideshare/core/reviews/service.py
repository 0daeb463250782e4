# rideshare/core/reviews/service.py
"""
Сервис отзывов.
Рейтинг водителя пересчитывается как среднее всех его оценок в той же
транзакции, что и вставка отзыва.
"""

from __future__ import annotations

from rideshare.common.constants import BookingStatus, TypeMsg
from rideshare.common.exceptions import (
    BookingNotFoundError,
    DuplicateReviewError,
    ForbiddenError,
    NotEligibleError,
)
from rideshare.common.logger import log_info
from rideshare.core.bookings.models import Booking
from rideshare.core.bookings.repository import BookingRepository
from rideshare.core.reviews.models import Review, ReviewCreateRequest
from rideshare.core.reviews.repository import ReviewRepository
from rideshare.core.users.repository import UserRepository
from rideshare.infra.database import DatabaseManager


class ReviewService:
    """Сервис отзывов и рейтинга водителей."""

    def __init__(
        self,
        db: DatabaseManager,
        review_repo: ReviewRepository,
        booking_repo: BookingRepository,
        user_repo: UserRepository,
    ) -> None:
        self._db = db
        self._reviews = review_repo
        self._bookings = booking_repo
        self._users = user_repo

    async def submit_review(self, passenger_id: int, request: ReviewCreateRequest) -> Review:
        """
        Оставляет отзыв о водителе по бронированию.

        Raises:
            BookingNotFoundError: бронирование не найдено
            ForbiddenError: бронирование другого пассажира
            NotEligibleError: поездка ещё не состоялась
            DuplicateReviewError: отзыв уже оставлен
        """
        booking = await self._bookings.get_by_id(request.booking_id)
        if booking is None:
            raise BookingNotFoundError(request.booking_id)
        if booking.passenger_id != passenger_id:
            raise ForbiddenError()
        if not self._is_eligible(booking):
            raise NotEligibleError(booking.status.value)
        if await self._reviews.exists_for_booking(booking.id):
            raise DuplicateReviewError()

        async with self._db.transaction() as conn:
            review = await self._reviews.create(
                booking_id=booking.id,
                reviewer_id=passenger_id,
                reviewed_id=booking.driver_id,
                rating=request.rating,
                comment=request.comment,
                conn=conn,
            )
            # Блокировка строки водителя сериализует пересчёт рейтинга
            await self._users.get_by_id(booking.driver_id, conn=conn, for_update=True)
            average = await self._reviews.average_for_driver(booking.driver_id, conn=conn)
            await self._users.update_driver_rating(booking.driver_id, round(average, 2), conn=conn)

        await log_info(
            f"Отзыв {review.id} на водителя {booking.driver_id}: {request.rating}. Рейтинг: {average:.2f}",
            type_msg=TypeMsg.INFO,
        )
        return review

    @staticmethod
    def _is_eligible(booking: Booking) -> bool:
        if booking.status == BookingStatus.COMPLETED:
            return True
        return booking.status == BookingStatus.CONFIRMED and booking.ride_departed()

    async def average_rating(self, driver_id: int) -> float:
        return await self._reviews.average_for_driver(driver_id)

    async def has_reviewed(self, booking_id: int) -> bool:
        return await self._reviews.exists_for_booking(booking_id)

    async def get_reviews_for_driver(self, driver_id: int) -> list[Review]:
        return await self._reviews.list_by_driver(driver_id)
