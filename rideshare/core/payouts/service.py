# rideshare/core/payouts/service.py
"""
Сервис выплат водителям.

Перевод выполняется ровно один раз: строка платежа блокируется, отметка
о переводе ставится условным UPDATE, и кошелёк пополняется только если
отметку поставил текущий вызов.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from redis.exceptions import RedisError

from rideshare.common.constants import BookingStatus, PaymentStatus, TypeMsg
from rideshare.common.exceptions import (
    AlreadyTransferredError,
    BookingNotCompletedError,
    BookingNotFoundError,
    DriverNotFoundError,
    ForbiddenError,
    InvalidStateError,
    PaymentRecordNotFoundError,
)
from rideshare.common.logger import log_info, log_warning
from rideshare.common.money import round_money
from rideshare.core.bookings.repository import BookingRepository
from rideshare.core.notifications.service import NotificationService
from rideshare.core.payments.repository import PaymentRepository
from rideshare.core.payouts.models import PayoutResult, WalletReport
from rideshare.core.users.repository import UserRepository
from rideshare.infra.database import DatabaseManager
from rideshare.infra.event_bus import EventTypes
from rideshare.infra.redis_client import RedisClient


class PayoutService:
    """Сервис выплат и кошелька водителя."""

    def __init__(
        self,
        db: DatabaseManager,
        payment_repo: PaymentRepository,
        booking_repo: BookingRepository,
        user_repo: UserRepository,
        redis: RedisClient,
        notifications: NotificationService,
        wallet_ttl: Optional[int] = None,
    ) -> None:
        """
        Args:
            db: Менеджер базы данных
            payment_repo: Репозиторий платежей
            booking_repo: Репозиторий бронирований
            user_repo: Репозиторий пользователей
            redis: Клиент Redis (кэш кошелька)
            notifications: Сервис уведомлений
            wallet_ttl: TTL кэша кошелька (из конфига если None)
        """
        if wallet_ttl is None:
            from rideshare.config import settings
            wallet_ttl = settings.redis_ttl.WALLET_TTL

        self._db = db
        self._payments = payment_repo
        self._bookings = booking_repo
        self._users = user_repo
        self._redis = redis
        self._notifications = notifications
        self._wallet_ttl = wallet_ttl

    @staticmethod
    def _wallet_cache_key(driver_id: int) -> str:
        return f"wallet:{driver_id}"

    # =========================================================================
    # ПЕРЕВОД
    # =========================================================================

    async def transfer_to_driver(self, booking_id: int, requested_by: Optional[int] = None) -> PayoutResult:
        """
        Переводит оплату завершённого бронирования в кошелёк водителя.

        Args:
            booking_id: ID бронирования
            requested_by: Кто запросил перевод (None для системного вызова)

        Raises:
            BookingNotFoundError: бронирование не найдено
            ForbiddenError: запросил не водитель поездки
            BookingNotCompletedError: бронирование не завершено
            PaymentRecordNotFoundError: нет платежа за бронирование
            InvalidStateError: платёж не успешен
            AlreadyTransferredError: перевод уже выполнен
        """
        booking = await self._bookings.get_by_id(booking_id)
        if booking is None:
            raise BookingNotFoundError(booking_id)
        if requested_by is not None and requested_by != booking.driver_id:
            raise ForbiddenError()
        if booking.status != BookingStatus.COMPLETED:
            raise BookingNotCompletedError(booking.status.value)

        async with self._db.transaction() as conn:
            payment = await self._payments.get_booking_payment(booking_id, conn=conn, for_update=True)
            if payment is None:
                raise PaymentRecordNotFoundError(booking_id)
            if payment.status != PaymentStatus.SUCCESS:
                raise InvalidStateError(
                    f"Перевод возможен только для успешного платежа. Текущий статус: {payment.status.value}",
                    current_status=payment.status.value,
                )
            if payment.is_transferred:
                raise AlreadyTransferredError()

            if not await self._payments.mark_driver_paid(payment.id, conn):
                raise AlreadyTransferredError()

            balance = await self._users.credit_wallet(payment.driver_id, payment.amount, conn=conn)

        result = PayoutResult(
            booking_id=booking_id,
            payment_id=payment.id,
            driver_id=payment.driver_id,
            amount=round_money(payment.amount),
            wallet_balance=round_money(balance),
            transferred_at=datetime.now(timezone.utc),
        )

        await log_info(
            f"Выплата водителю {result.driver_id}: {result.amount} за бронирование {booking_id}. "
            f"Баланс: {result.wallet_balance}",
            type_msg=TypeMsg.INFO,
        )

        await self._invalidate_wallet(result.driver_id)
        await self._notifications.notify_payout(result.driver_id, result.amount, result.wallet_balance)
        await self._notifications.emit(
            EventTypes.PAYOUT_COMPLETED,
            {
                "booking_id": booking_id,
                "payment_id": payment.id,
                "driver_id": result.driver_id,
                "amount": result.amount,
            },
        )
        return result

    # =========================================================================
    # КОШЕЛЁК
    # =========================================================================

    async def get_wallet(self, driver_id: int) -> WalletReport:
        """
        Баланс и сводка выплат водителя.
        Кэшируется в Redis на WALLET_TTL секунд.
        """
        cache_key = self._wallet_cache_key(driver_id)

        cached = None
        if self._redis.is_connected:
            try:
                cached = await self._redis.get_model(cache_key, WalletReport)
            except RedisError as e:
                await log_warning(f"Кэш кошелька недоступен ({driver_id}): {e}")
        if cached is not None:
            return cached

        driver = await self._users.get_by_id(driver_id)
        if driver is None:
            raise DriverNotFoundError(driver_id)

        transferred, pending = await self._payments.driver_earnings(driver_id)
        report = WalletReport(
            driver_id=driver_id,
            wallet_balance=round_money(driver.wallet_balance),
            total_earnings=round_money(transferred),
            pending_payouts=round_money(pending),
        )

        if self._redis.is_connected:
            try:
                await self._redis.set_model(cache_key, report, ttl=self._wallet_ttl)
            except RedisError as e:
                await log_warning(f"Не удалось закэшировать кошелёк {driver_id}: {e}")
        return report

    async def _invalidate_wallet(self, driver_id: int) -> None:
        if not self._redis.is_connected:
            return
        try:
            await self._redis.delete(self._wallet_cache_key(driver_id))
        except RedisError as e:
            await log_warning(f"Не удалось сбросить кэш кошелька {driver_id}: {e}")
