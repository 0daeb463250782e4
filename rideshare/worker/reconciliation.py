# rideshare/worker/reconciliation.py
"""
Сверка неоплаченных бронирований.

Бронирование держит места с момента создания. Если за
PAYMENT_ORDER_TTL_MINUTES оплата не подтверждена, бронирование
отменяется, места возвращаются, ожидающие платежи закрываются.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from rideshare.common.constants import TypeMsg
from rideshare.common.exceptions import DomainError
from rideshare.common.logger import log_info, log_warning
from rideshare.core.bookings.repository import BookingRepository
from rideshare.core.bookings.service import BookingService
from rideshare.worker.base import BaseWorker


class PendingBookingReconciler(BaseWorker):
    """Отменяет бронирования, не оплаченные за время жизни заказа."""

    def __init__(
        self,
        booking_service: BookingService,
        booking_repo: BookingRepository,
        order_ttl_minutes: Optional[int] = None,
        interval: Optional[float] = None,
        batch_size: Optional[int] = None,
    ) -> None:
        from rideshare.config import settings

        cfg = settings.booking
        super().__init__(interval if interval is not None else cfg.RECONCILIATION_INTERVAL)
        self._service = booking_service
        self._bookings = booking_repo
        self._ttl = timedelta(
            minutes=order_ttl_minutes if order_ttl_minutes is not None else cfg.PAYMENT_ORDER_TTL_MINUTES
        )
        self._batch_size = batch_size if batch_size is not None else cfg.RECONCILIATION_BATCH_SIZE

    @property
    def name(self) -> str:
        return "PendingBookingReconciler"

    async def run_once(self, now: Optional[datetime] = None) -> int:
        """
        Отменяет просроченные бронирования одной пачкой.

        Returns:
            Количество отменённых бронирований
        """
        cutoff = (now or datetime.now(timezone.utc)) - self._ttl
        stale = await self._bookings.list_stale_pending(cutoff, limit=self._batch_size)

        expired = 0
        for booking in stale:
            try:
                if await self._service.expire_pending_booking(booking.id):
                    expired += 1
            except DomainError as e:
                # Бронирование изменилось между выборкой и блокировкой
                await log_warning(f"Бронирование {booking.id} не отменено при сверке: {e.message}")

        if expired:
            await log_info(f"Сверка: отменено неоплаченных бронирований: {expired}", type_msg=TypeMsg.INFO)
        return expired
