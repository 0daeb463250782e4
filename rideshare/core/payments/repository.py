# rideshare/core/payments/repository.py
"""
Репозиторий платежей.
Отметка о переводе водителю выставляется условным UPDATE (единственный писатель).
"""

from __future__ import annotations

from typing import Any, Optional

from asyncpg import Connection, Record

from rideshare.common.constants import DriverPaymentStatus, PaymentStatus, PaymentType
from rideshare.common.money import to_decimal
from rideshare.core.payments.models import Payment
from rideshare.infra.database import DatabaseManager

_PAYMENT_COLUMNS = """
    id, booking_id, passenger_id, driver_id,
    gateway_order_id, gateway_payment_id, gateway_signature,
    amount, currency, status, payment_type,
    driver_payment_status, driver_payment_date, created_at, updated_at
"""


def _affected_rows(status: str) -> int:
    """Количество строк из статуса asyncpg ("UPDATE 3")."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (AttributeError, ValueError):
        return 0


class PaymentRepository:
    """Репозиторий платежей."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    def _executor(self, conn: Connection | None) -> Any:
        return conn if conn is not None else self._db

    # =========================================================================
    # ЧТЕНИЕ
    # =========================================================================

    async def get_by_order_id(
        self,
        order_id: str,
        conn: Connection | None = None,
        for_update: bool = False,
    ) -> Optional[Payment]:
        lock = " FOR UPDATE" if for_update else ""
        row = await self._executor(conn).fetchrow(
            f"SELECT {_PAYMENT_COLUMNS} FROM payments WHERE gateway_order_id = $1{lock}",
            order_id,
        )
        return self._row_to_payment(row) if row else None

    async def get_booking_payment(
        self,
        booking_id: int,
        conn: Connection | None = None,
        for_update: bool = False,
    ) -> Optional[Payment]:
        """
        Платёж за бронирование.
        Если попыток оплаты несколько, приоритет у успешной, затем у последней.
        """
        lock = " FOR UPDATE" if for_update else ""
        row = await self._executor(conn).fetchrow(
            f"""
            SELECT {_PAYMENT_COLUMNS}
            FROM payments
            WHERE booking_id = $1 AND payment_type = $2
            ORDER BY (status = $3) DESC, created_at DESC
            LIMIT 1{lock}
            """,
            booking_id,
            PaymentType.BOOKING.value,
            PaymentStatus.SUCCESS.value,
        )
        return self._row_to_payment(row) if row else None

    async def list_by_passenger(self, passenger_id: int) -> list[Payment]:
        rows = await self._db.fetch(
            f"SELECT {_PAYMENT_COLUMNS} FROM payments WHERE passenger_id = $1 ORDER BY created_at DESC",
            passenger_id,
        )
        return [self._row_to_payment(row) for row in rows]

    async def list_by_driver(self, driver_id: int) -> list[Payment]:
        rows = await self._db.fetch(
            f"""
            SELECT {_PAYMENT_COLUMNS} FROM payments
            WHERE driver_id = $1 AND status = $2
            ORDER BY created_at DESC
            """,
            driver_id,
            PaymentStatus.SUCCESS.value,
        )
        return [self._row_to_payment(row) for row in rows]

    async def driver_earnings(self, driver_id: int) -> tuple[float, float]:
        """
        Суммы по успешным платежам водителя.

        Returns:
            (переведено в кошелёк, ожидает перевода)
        """
        row = await self._db.fetchrow(
            """
            SELECT
                COALESCE(SUM(amount) FILTER (WHERE driver_payment_status = $3), 0) AS transferred,
                COALESCE(SUM(amount) FILTER (WHERE driver_payment_status = $4), 0) AS pending
            FROM payments
            WHERE driver_id = $1 AND status = $2
            """,
            driver_id,
            PaymentStatus.SUCCESS.value,
            DriverPaymentStatus.COMPLETED.value,
            DriverPaymentStatus.PENDING.value,
        )
        if row is None:
            return 0.0, 0.0
        return float(row["transferred"]), float(row["pending"])

    # =========================================================================
    # ЗАПИСЬ
    # =========================================================================

    async def create(
        self,
        booking_id: int,
        passenger_id: int,
        driver_id: int,
        gateway_order_id: str,
        amount: float,
        currency: str,
        conn: Connection | None = None,
    ) -> Payment:
        """Создаёт платёж PENDING типа BOOKING."""
        row = await self._executor(conn).fetchrow(
            f"""
            INSERT INTO payments (
                booking_id, passenger_id, driver_id, gateway_order_id,
                amount, currency, status, payment_type, driver_payment_status
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
            RETURNING {_PAYMENT_COLUMNS}
            """,
            booking_id,
            passenger_id,
            driver_id,
            gateway_order_id,
            to_decimal(amount),
            currency,
            PaymentStatus.PENDING.value,
            PaymentType.BOOKING.value,
            DriverPaymentStatus.PENDING.value,
        )
        return self._row_to_payment(row)

    async def mark_success(
        self,
        payment_id: int,
        gateway_payment_id: str,
        signature: str,
        conn: Connection,
    ) -> Payment:
        row = await conn.fetchrow(
            f"""
            UPDATE payments
            SET status = $2, gateway_payment_id = $3, gateway_signature = $4, updated_at = NOW()
            WHERE id = $1
            RETURNING {_PAYMENT_COLUMNS}
            """,
            payment_id,
            PaymentStatus.SUCCESS.value,
            gateway_payment_id,
            signature,
        )
        return self._row_to_payment(row)

    async def mark_failed(self, payment_id: int, conn: Connection | None = None) -> bool:
        """PENDING -> FAILED. Возвращает False, если платёж уже не PENDING."""
        status = await self._executor(conn).execute(
            "UPDATE payments SET status = $2, updated_at = NOW() WHERE id = $1 AND status = $3",
            payment_id,
            PaymentStatus.FAILED.value,
            PaymentStatus.PENDING.value,
        )
        return _affected_rows(status) > 0

    async def fail_pending_by_booking(self, booking_id: int, conn: Connection) -> int:
        """Переводит все незавершённые платежи бронирования в FAILED."""
        status = await conn.execute(
            "UPDATE payments SET status = $2, updated_at = NOW() WHERE booking_id = $1 AND status = $3",
            booking_id,
            PaymentStatus.FAILED.value,
            PaymentStatus.PENDING.value,
        )
        return _affected_rows(status)

    async def mark_driver_paid(self, payment_id: int, conn: Connection) -> bool:
        """
        Отмечает перевод средств водителю.

        Returns:
            True если отметку выставил именно этот вызов
        """
        updated = await conn.fetchval(
            """
            UPDATE payments
            SET driver_payment_status = $2, driver_payment_date = NOW(), updated_at = NOW()
            WHERE id = $1 AND status = $3 AND driver_payment_status <> $2
            RETURNING id
            """,
            payment_id,
            DriverPaymentStatus.COMPLETED.value,
            PaymentStatus.SUCCESS.value,
        )
        return updated is not None

    @staticmethod
    def _row_to_payment(row: Record) -> Payment:
        return Payment.model_validate(dict(row))
