# rideshare/services/api/routes.py
"""
HTTP маршруты API.

Идентификатор вызывающего пользователя передаётся в заголовке X-User-Id.
Доменные исключения преобразуются в ответы обработчиками в app.py.
"""

from __future__ import annotations

from datetime import date
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel

from rideshare.common.exceptions import ForbiddenError
from rideshare.core.bookings.models import Booking, BookingCreateRequest
from rideshare.core.bookings.service import BookingService
from rideshare.core.payments.models import (
    Payment,
    PaymentFailRequest,
    PaymentOrderRequest,
    PaymentOrderResponse,
    PaymentVerifyRequest,
)
from rideshare.core.payments.service import PaymentService
from rideshare.core.payouts.models import PayoutResult, WalletReport
from rideshare.core.payouts.service import PayoutService
from rideshare.core.reviews.models import Review, ReviewCreateRequest
from rideshare.core.reviews.service import ReviewService
from rideshare.core.rides.models import Ride, RideCreateRequest, RideSearchFilter, RideUpdate
from rideshare.core.rides.service import RideService
from rideshare.services.api.dependencies import (
    get_booking_service,
    get_caller_id,
    get_payment_service,
    get_payout_service,
    get_review_service,
    get_ride_service,
)

CallerId = Annotated[int, Depends(get_caller_id)]
Rides = Annotated[RideService, Depends(get_ride_service)]
Bookings = Annotated[BookingService, Depends(get_booking_service)]
Payments = Annotated[PaymentService, Depends(get_payment_service)]
Payouts = Annotated[PayoutService, Depends(get_payout_service)]
Reviews = Annotated[ReviewService, Depends(get_review_service)]


# === RESPONSE MODELS ===

class HasReviewedResponse(BaseModel):
    booking_id: int
    has_reviewed: bool


class AverageRatingResponse(BaseModel):
    driver_id: int
    average_rating: float


# =============================================================================
# ПОЕЗДКИ
# =============================================================================

rides_router = APIRouter(prefix="/rides", tags=["Rides"])


@rides_router.post("", response_model=Ride, status_code=status.HTTP_201_CREATED, summary="Опубликовать поездку")
async def post_ride(request: RideCreateRequest, caller_id: CallerId, service: Rides) -> Ride:
    return await service.post_ride(caller_id, request)


@rides_router.get("/search", response_model=list[Ride], summary="Поиск поездок")
async def search_rides(
    service: Rides,
    source: Optional[str] = None,
    destination: Optional[str] = None,
    ride_date: Optional[date] = Query(default=None, alias="date"),
    min_price: Optional[float] = Query(default=None, ge=0),
    max_price: Optional[float] = Query(default=None, ge=0),
    min_rating: Optional[float] = Query(default=None, ge=0, le=5),
) -> list[Ride]:
    """
    Поиск запланированных поездок со свободными местами.
    Дата по умолчанию сегодняшняя. Идентификация не требуется.
    """
    search = RideSearchFilter(
        source=source,
        destination=destination,
        ride_date=ride_date,
        min_price=min_price,
        max_price=max_price,
        min_rating=min_rating,
    )
    return await service.search_rides(search)


@rides_router.get("/my", response_model=list[Ride], summary="Мои поездки (водитель)")
async def my_rides(caller_id: CallerId, service: Rides) -> list[Ride]:
    return await service.get_rides_by_driver(caller_id)


@rides_router.get("/{ride_id}", response_model=Ride, summary="Получить поездку")
async def get_ride(ride_id: int, service: Rides) -> Ride:
    return await service.get_ride(ride_id)


@rides_router.patch("/{ride_id}", response_model=Ride, summary="Изменить поездку")
async def update_ride(ride_id: int, update: RideUpdate, caller_id: CallerId, service: Rides) -> Ride:
    """Частичное обновление. При переносе даты или времени пассажиры получают уведомление."""
    return await service.update_ride(caller_id, ride_id, update)


@rides_router.post("/{ride_id}/start", response_model=Ride, summary="Начать поездку")
async def start_ride(ride_id: int, caller_id: CallerId, service: Rides) -> Ride:
    return await service.start_ride(caller_id, ride_id)


@rides_router.post("/{ride_id}/complete", response_model=Ride, summary="Завершить поездку")
async def complete_ride(ride_id: int, caller_id: CallerId, service: Rides) -> Ride:
    return await service.complete_ride(caller_id, ride_id)


@rides_router.post("/{ride_id}/cancel", response_model=Ride, summary="Отменить поездку")
async def cancel_ride(ride_id: int, caller_id: CallerId, service: Rides) -> Ride:
    """Отменяет поездку и все активные бронирования на неё."""
    return await service.cancel_ride(caller_id, ride_id)


# =============================================================================
# БРОНИРОВАНИЯ
# =============================================================================

bookings_router = APIRouter(prefix="/bookings", tags=["Bookings"])


@bookings_router.post(
    "", response_model=Booking, status_code=status.HTTP_201_CREATED, summary="Забронировать места"
)
async def create_booking(request: BookingCreateRequest, caller_id: CallerId, service: Bookings) -> Booking:
    return await service.create_booking(caller_id, request)


@bookings_router.get("/my", response_model=list[Booking], summary="Мои бронирования")
async def my_bookings(caller_id: CallerId, service: Bookings) -> list[Booking]:
    return await service.get_bookings_by_passenger(caller_id)


@bookings_router.get("/driver", response_model=list[Booking], summary="Бронирования на мои поездки")
async def driver_bookings(caller_id: CallerId, service: Bookings) -> list[Booking]:
    return await service.get_bookings_by_driver(caller_id)


@bookings_router.get("/ride/{ride_id}", response_model=list[Booking], summary="Бронирования поездки")
async def ride_bookings(ride_id: int, caller_id: CallerId, rides: Rides, service: Bookings) -> list[Booking]:
    """Список доступен только водителю поездки."""
    ride = await rides.get_ride(ride_id)
    if ride.driver_id != caller_id:
        raise ForbiddenError()
    return await service.get_bookings_by_ride(ride_id)


@bookings_router.get("/{booking_id}", response_model=Booking, summary="Получить бронирование")
async def get_booking(booking_id: int, caller_id: CallerId, service: Bookings) -> Booking:
    return await service.get_booking(caller_id, booking_id)


@bookings_router.post("/{booking_id}/confirm", response_model=Booking, summary="Подтвердить бронирование")
async def confirm_booking(booking_id: int, caller_id: CallerId, service: Bookings) -> Booking:
    return await service.confirm_booking(caller_id, booking_id)


@bookings_router.post("/{booking_id}/decline", response_model=Booking, summary="Отклонить бронирование (водитель)")
async def decline_booking(booking_id: int, caller_id: CallerId, service: Bookings) -> Booking:
    return await service.decline_booking(caller_id, booking_id)


@bookings_router.post("/{booking_id}/cancel", response_model=Booking, summary="Отменить бронирование")
async def cancel_booking(booking_id: int, caller_id: CallerId, service: Bookings) -> Booking:
    return await service.cancel_booking(caller_id, booking_id)


# =============================================================================
# ПЛАТЕЖИ И ВЫПЛАТЫ
# =============================================================================

payments_router = APIRouter(prefix="/payments", tags=["Payments"])


@payments_router.post("/orders", response_model=PaymentOrderResponse, summary="Создать платёжный заказ")
async def create_order(
    request: PaymentOrderRequest,
    caller_id: CallerId,
    service: Payments,
) -> PaymentOrderResponse:
    """Сумма берётся из бронирования, сумма клиента только справочная."""
    return await service.create_order(caller_id, request)


@payments_router.post("/verify", response_model=Payment, summary="Callback об успешной оплате")
async def verify_payment(request: PaymentVerifyRequest, service: Payments) -> Payment:
    return await service.verify_payment(request)


@payments_router.post("/fail", response_model=Payment, summary="Callback о неуспешной оплате")
async def fail_payment(request: PaymentFailRequest, service: Payments) -> Payment:
    return await service.fail_payment(request.order_id, request.reason)


@payments_router.get("/history", response_model=list[Payment], summary="История платежей пассажира")
async def payment_history(caller_id: CallerId, service: Payments) -> list[Payment]:
    return await service.get_payment_history(caller_id)


@payments_router.get("/driver-history", response_model=list[Payment], summary="История платежей водителя")
async def driver_payment_history(caller_id: CallerId, service: Payments) -> list[Payment]:
    return await service.get_driver_payment_history(caller_id)


@payments_router.get("/booking/{booking_id}", response_model=Payment, summary="Платёж по бронированию")
async def booking_payment(
    booking_id: int,
    caller_id: CallerId,
    bookings: Bookings,
    service: Payments,
) -> Payment:
    await bookings.get_booking(caller_id, booking_id)
    return await service.get_payment_by_booking(booking_id)


@payments_router.get("/wallet", response_model=WalletReport, summary="Кошелёк водителя")
async def wallet(caller_id: CallerId, service: Payouts) -> WalletReport:
    return await service.get_wallet(caller_id)


@payments_router.post("/transfer/{booking_id}", response_model=PayoutResult, summary="Перевести оплату водителю")
async def transfer_to_driver(booking_id: int, caller_id: CallerId, service: Payouts) -> PayoutResult:
    """Повторный перевод по тому же бронированию возвращает 409."""
    return await service.transfer_to_driver(booking_id, requested_by=caller_id)


# =============================================================================
# ОТЗЫВЫ
# =============================================================================

reviews_router = APIRouter(prefix="/reviews", tags=["Reviews"])


@reviews_router.post("", response_model=Review, status_code=status.HTTP_201_CREATED, summary="Оставить отзыв")
async def submit_review(request: ReviewCreateRequest, caller_id: CallerId, service: Reviews) -> Review:
    return await service.submit_review(caller_id, request)


@reviews_router.get("/booking/{booking_id}", response_model=HasReviewedResponse, summary="Есть ли отзыв")
async def has_reviewed(booking_id: int, service: Reviews) -> HasReviewedResponse:
    return HasReviewedResponse(booking_id=booking_id, has_reviewed=await service.has_reviewed(booking_id))


@reviews_router.get(
    "/driver/{driver_id}/average", response_model=AverageRatingResponse, summary="Рейтинг водителя"
)
async def average_rating(driver_id: int, service: Reviews) -> AverageRatingResponse:
    return AverageRatingResponse(driver_id=driver_id, average_rating=await service.average_rating(driver_id))


@reviews_router.get("/driver/{driver_id}", response_model=list[Review], summary="Отзывы о водителе")
async def driver_reviews(driver_id: int, service: Reviews) -> list[Review]:
    return await service.get_reviews_for_driver(driver_id)


routers = (rides_router, bookings_router, payments_router, reviews_router)
