# rideshare/core/notifications/service.py
"""
Сервис уведомлений.

Публикует письма (notification.email) и доменные события в шину.
Фактическая отправка почты выполняется внешним транспортом, подписанным
на очередь. Ошибки уведомлений никогда не прерывают бизнес-операцию:
методы логируют проблему и возвращают False.
"""

from __future__ import annotations

from typing import Any

from rideshare.common.constants import TypeMsg
from rideshare.common.logger import log_error, log_info, log_warning
from rideshare.core.bookings.models import Booking
from rideshare.core.payments.models import Payment
from rideshare.core.rides.models import Ride
from rideshare.core.users.repository import UserRepository
from rideshare.infra.event_bus import DomainEvent, EventBus, EventTypes


class NotificationService:
    """
    Сервис уведомлений.
    Все методы best-effort и вызываются только после commit.
    """

    def __init__(self, event_bus: EventBus, user_repo: UserRepository) -> None:
        """
        Args:
            event_bus: Шина событий
            user_repo: Репозиторий пользователей (адреса получателей)
        """
        self._event_bus = event_bus
        self._users = user_repo

    # =========================================================================
    # БАЗОВЫЕ ОПЕРАЦИИ
    # =========================================================================

    async def emit(self, event_type: str, payload: dict[str, Any]) -> bool:
        """Публикует доменное событие."""
        try:
            published = await self._event_bus.publish(DomainEvent(event_type=event_type, payload=payload))
        except Exception as e:
            await log_error(f"Ошибка публикации события {event_type}: {e}")
            return False
        return published is not False

    async def send_email(self, to: str, subject: str, body: str) -> bool:
        """Ставит письмо в очередь отправки."""
        sent = await self.emit(
            EventTypes.NOTIFICATION_EMAIL,
            {"to": to, "subject": subject, "body": body},
        )
        if sent:
            await log_info(f"Письмо поставлено в очередь: {to}, «{subject}»", type_msg=TypeMsg.DEBUG)
        return sent

    async def notify_user(self, user_id: int, subject: str, body: str) -> bool:
        """Отправляет письмо пользователю по его ID."""
        try:
            user = await self._users.get_by_id(user_id)
        except Exception as e:
            await log_error(f"Не удалось получить получателя уведомления {user_id}: {e}")
            return False

        if user is None:
            await log_warning(f"Получатель уведомления не найден: {user_id}")
            return False
        return await self.send_email(user.email, subject, body)

    # =========================================================================
    # ПОЕЗДКИ
    # =========================================================================

    async def notify_ride_cancelled(self, passenger_id: int, ride: Ride) -> bool:
        return await self.notify_user(
            passenger_id,
            "Поездка отменена",
            f"Водитель отменил поездку {ride.source} → {ride.destination} "
            f"{ride.ride_date:%d.%m.%Y} {ride.ride_time:%H:%M}. Ваше бронирование отменено.",
        )

    async def notify_ride_rescheduled(self, passenger_id: int, ride: Ride, reason: str | None) -> bool:
        body = (
            f"Поездка {ride.source} → {ride.destination} перенесена на "
            f"{ride.ride_date:%d.%m.%Y} {ride.ride_time:%H:%M}."
        )
        if reason:
            body += f" Причина: {reason}"
        return await self.notify_user(passenger_id, "Поездка перенесена", body)

    # =========================================================================
    # БРОНИРОВАНИЯ
    # =========================================================================

    async def notify_booking_created(self, booking: Booking, ride: Ride) -> None:
        """Пассажиру: ожидает оплаты. Водителю: новое бронирование."""
        await self.notify_user(
            booking.passenger_id,
            "Бронирование создано",
            f"Забронировано мест: {booking.number_of_seats} на поездку {ride.source} → {ride.destination} "
            f"{ride.ride_date:%d.%m.%Y}. К оплате: {booking.fare_amount:.2f}.",
        )
        await self.notify_user(
            ride.driver_id,
            "Новое бронирование",
            f"Пассажир забронировал мест: {booking.number_of_seats} "
            f"({booking.pickup_location} → {booking.dropoff_location}).",
        )

    async def notify_booking_cancelled(self, driver_id: int, booking: Booking) -> bool:
        return await self.notify_user(
            driver_id,
            "Бронирование отменено",
            f"Пассажир отменил бронирование #{booking.id}. Освобождено мест: {booking.number_of_seats}.",
        )

    async def notify_booking_expired(self, booking: Booking) -> bool:
        return await self.notify_user(
            booking.passenger_id,
            "Бронирование истекло",
            f"Бронирование #{booking.id} не было оплачено вовремя и отменено.",
        )

    async def notify_booking_declined(self, booking: Booking) -> bool:
        return await self.notify_user(
            booking.passenger_id,
            "Бронирование отклонено",
            f"Водитель отклонил бронирование #{booking.id}. Места освобождены, неоплаченный заказ закрыт.",
        )

    async def notify_booking_confirmed(self, booking: Booking) -> bool:
        return await self.notify_user(
            booking.passenger_id,
            "Бронирование подтверждено",
            f"Бронирование #{booking.id} подтверждено водителем.",
        )

    # =========================================================================
    # ПЛАТЕЖИ
    # =========================================================================

    async def notify_payment_confirmed(self, booking: Booking, payment: Payment) -> None:
        await self.notify_user(
            booking.passenger_id,
            "Оплата получена",
            f"Оплата {payment.amount:.2f} {payment.currency} за бронирование #{booking.id} прошла успешно.",
        )
        if booking.driver_id is not None:
            await self.notify_user(
                booking.driver_id,
                "Бронирование оплачено",
                f"Бронирование #{booking.id} оплачено. Мест: {booking.number_of_seats}.",
            )

    async def notify_payout(self, driver_id: int, amount: float, balance: float) -> bool:
        return await self.notify_user(
            driver_id,
            "Выплата зачислена",
            f"На ваш кошелёк зачислено {amount:.2f}. Баланс: {balance:.2f}.",
        )
