# rideshare/core/payments/service.py
"""
Сервис платежей.

Сумма заказа берётся из бронирования (сервер авторитетен). Заказ в шлюзе
создаётся вне транзакции, подтверждение оплаты меняет платёж и
бронирование одной транзакцией.
"""

from __future__ import annotations

from typing import Optional

from rideshare.common.constants import BookingStatus, PaymentStatus, TypeMsg
from rideshare.common.exceptions import (
    BookingNotFoundError,
    ForbiddenError,
    InvalidBookingStateError,
    InvalidRequestError,
    InvalidStateError,
    PaymentRecordNotFoundError,
    SignatureMismatchError,
)
from rideshare.common.logger import log_info, log_warning
from rideshare.common.money import round_money, to_minor_units
from rideshare.core.bookings.repository import BookingRepository
from rideshare.core.notifications.service import NotificationService
from rideshare.core.payments.gateway import PaymentGatewayClient
from rideshare.core.payments.models import (
    Payment,
    PaymentOrderRequest,
    PaymentOrderResponse,
    PaymentVerifyRequest,
)
from rideshare.core.payments.repository import PaymentRepository
from rideshare.infra.database import DatabaseManager
from rideshare.infra.event_bus import EventTypes

# Статусы платежа, из которых callback шлюза может перевести его в SUCCESS
_VERIFIABLE_STATUSES = (PaymentStatus.PENDING, PaymentStatus.FAILED)


class PaymentService:
    """
    Сервис платежей.

    Реализует:
    - Создание заказа в шлюзе по бронированию
    - Проверку callback (подпись) и подтверждение бронирования
    - Обработку неуспешной оплаты
    - Историю платежей
    """

    def __init__(
        self,
        db: DatabaseManager,
        payment_repo: PaymentRepository,
        booking_repo: BookingRepository,
        gateway: PaymentGatewayClient,
        notifications: NotificationService,
    ) -> None:
        self._db = db
        self._payments = payment_repo
        self._bookings = booking_repo
        self._gateway = gateway
        self._notifications = notifications

    # =========================================================================
    # ЗАКАЗ
    # =========================================================================

    async def create_order(self, caller_id: int, request: PaymentOrderRequest) -> PaymentOrderResponse:
        """
        Создаёт платёжный заказ для бронирования.

        Args:
            caller_id: ID пассажира
            request: ID бронирования и сумма с клиента (справочно)

        Raises:
            BookingNotFoundError: бронирование не найдено
            ForbiddenError: бронирование другого пассажира
            InvalidBookingStateError: бронирование не в статусе PENDING
            PaymentGatewayError: шлюз недоступен
        """
        booking = await self._bookings.get_by_id(request.booking_id)
        if booking is None:
            raise BookingNotFoundError(request.booking_id)
        if booking.passenger_id != caller_id:
            raise ForbiddenError()
        if booking.status != BookingStatus.PENDING:
            raise InvalidBookingStateError(booking.status.value)

        amount = self._order_amount(booking.fare_amount, request.amount)
        if request.amount is not None and round_money(request.amount) != amount:
            await log_warning(
                f"Бронирование {booking.id}: сумма клиента {request.amount} не совпадает "
                f"с суммой бронирования {amount}. Используется сумма бронирования"
            )

        order = await self._gateway.create_order(
            to_minor_units(amount),
            receipt=f"receipt_{booking.id}",
            notes={"bookingId": str(booking.id)},
        )

        payment = await self._payments.create(
            booking_id=booking.id,
            passenger_id=booking.passenger_id,
            driver_id=booking.driver_id,
            gateway_order_id=order.id,
            amount=amount,
            currency=order.currency,
        )

        await log_info(
            f"Платёж {payment.id} создан: бронирование {booking.id}, заказ {order.id}, {amount} {order.currency}",
            type_msg=TypeMsg.INFO,
        )

        return PaymentOrderResponse(
            order_id=order.id,
            booking_id=booking.id,
            amount=order.amount,
            amount_major=amount,
            currency=order.currency,
            key_id=self._gateway.key_id,
        )

    @staticmethod
    def _order_amount(stored: Optional[float], requested: Optional[float]) -> float:
        if stored is not None and stored > 0:
            return round_money(stored)
        if requested is not None and requested > 0:
            return round_money(requested)
        raise InvalidRequestError("Не удалось определить сумму оплаты")

    # =========================================================================
    # CALLBACK ШЛЮЗА
    # =========================================================================

    async def verify_payment(self, request: PaymentVerifyRequest) -> Payment:
        """
        Подтверждает оплату по callback шлюза.

        Raises:
            SignatureMismatchError: подпись не совпала
            PaymentRecordNotFoundError: заказ неизвестен
            InvalidBookingStateError: бронирование уже не PENDING
            InvalidStateError: платёж уже подтверждён
        """
        if not self._gateway.verify_signature(request.order_id, request.payment_id, request.signature):
            await log_warning(f"Неверная подпись callback для заказа {request.order_id}")
            raise SignatureMismatchError()

        existing = await self._payments.get_by_order_id(request.order_id)
        if existing is None:
            raise PaymentRecordNotFoundError(request.order_id)

        async with self._db.transaction() as conn:
            booking = await self._bookings.get_for_update(existing.booking_id, conn)
            if booking is None:
                raise BookingNotFoundError(existing.booking_id)
            if booking.status != BookingStatus.PENDING:
                raise InvalidBookingStateError(booking.status.value)

            locked = await self._payments.get_by_order_id(request.order_id, conn=conn, for_update=True)
            if locked is None:
                raise PaymentRecordNotFoundError(request.order_id)
            if locked.status not in _VERIFIABLE_STATUSES:
                raise InvalidStateError(
                    f"Платёж уже обработан. Текущий статус: {locked.status.value}",
                    current_status=locked.status.value,
                )

            payment = await self._payments.mark_success(locked.id, request.payment_id, request.signature, conn)
            await self._bookings.update_status(booking.id, BookingStatus.CONFIRMED, conn=conn)

        booking = booking.model_copy(update={"status": BookingStatus.CONFIRMED})
        await log_info(
            f"Оплата подтверждена: заказ {request.order_id}, бронирование {booking.id}",
            type_msg=TypeMsg.INFO,
        )

        await self._notifications.notify_payment_confirmed(booking, payment)
        await self._notifications.emit(
            EventTypes.PAYMENT_SUCCEEDED,
            {
                "payment_id": payment.id,
                "booking_id": booking.id,
                "order_id": request.order_id,
                "amount": payment.amount,
            },
        )
        return payment

    async def fail_payment(self, order_id: str, reason: Optional[str] = None) -> Payment:
        """
        Отмечает неуспешную оплату.
        Бронирование не меняется: пассажир может оплатить повторно.
        """
        payment = await self._payments.get_by_order_id(order_id)
        if payment is None:
            raise PaymentRecordNotFoundError(order_id)

        if not await self._payments.mark_failed(payment.id):
            current = await self._payments.get_by_order_id(order_id) or payment
            if current.status == PaymentStatus.FAILED:
                return current
            raise InvalidStateError(current_status=current.status.value)

        await log_warning(f"Оплата не прошла: заказ {order_id}, бронирование {payment.booking_id}: {reason}")
        await self._notifications.emit(
            EventTypes.PAYMENT_FAILED,
            {"payment_id": payment.id, "booking_id": payment.booking_id, "order_id": order_id, "reason": reason},
        )
        return payment.model_copy(update={"status": PaymentStatus.FAILED})

    # =========================================================================
    # ЧТЕНИЕ
    # =========================================================================

    async def get_payment_by_booking(self, booking_id: int) -> Payment:
        payment = await self._payments.get_booking_payment(booking_id)
        if payment is None:
            raise PaymentRecordNotFoundError(booking_id)
        return payment

    async def get_payment_history(self, passenger_id: int) -> list[Payment]:
        return await self._payments.list_by_passenger(passenger_id)

    async def get_driver_payment_history(self, driver_id: int) -> list[Payment]:
        return await self._payments.list_by_driver(driver_id)
