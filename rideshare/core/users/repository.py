# rideshare/core/users/repository.py
"""
Репозиторий пользователей.
Кошелёк и рейтинг водителя изменяются только здесь.
"""

from __future__ import annotations

from typing import Any, Optional

from asyncpg import Connection, Record

from rideshare.common.money import to_decimal
from rideshare.core.users.models import User
from rideshare.infra.database import DatabaseManager

_USER_COLUMNS = """
    id, name, email, phone, role, is_approved,
    wallet_balance, driver_rating, total_rides, created_at
"""


class UserRepository:
    """Репозиторий пользователей."""

    def __init__(self, db: DatabaseManager) -> None:
        """
        Args:
            db: Менеджер базы данных (Dependency Injection)
        """
        self._db = db

    def _executor(self, conn: Connection | None) -> Any:
        return conn if conn is not None else self._db

    async def get_by_id(
        self,
        user_id: int,
        conn: Connection | None = None,
        for_update: bool = False,
    ) -> Optional[User]:
        """
        Получает пользователя по ID.

        Args:
            user_id: ID пользователя
            conn: Соединение текущей транзакции
            for_update: Заблокировать строку до конца транзакции
        """
        lock = " FOR UPDATE" if for_update else ""
        row = await self._executor(conn).fetchrow(
            f"SELECT {_USER_COLUMNS} FROM users WHERE id = $1{lock}",
            user_id,
        )
        return self._row_to_user(row) if row else None

    async def credit_wallet(self, user_id: int, amount: float, conn: Connection | None = None) -> float:
        """
        Увеличивает баланс кошелька.

        Returns:
            Новый баланс
        """
        balance = await self._executor(conn).fetchval(
            """
            UPDATE users
            SET wallet_balance = wallet_balance + $2
            WHERE id = $1
            RETURNING wallet_balance
            """,
            user_id,
            to_decimal(amount),
        )
        return float(balance) if balance is not None else 0.0

    async def update_driver_rating(self, driver_id: int, rating: float, conn: Connection | None = None) -> None:
        await self._executor(conn).execute(
            "UPDATE users SET driver_rating = $2 WHERE id = $1",
            driver_id,
            rating,
        )

    async def increment_total_rides(self, driver_id: int, conn: Connection | None = None) -> None:
        await self._executor(conn).execute(
            "UPDATE users SET total_rides = total_rides + 1 WHERE id = $1",
            driver_id,
        )

    @staticmethod
    def _row_to_user(row: Record) -> User:
        return User.model_validate(dict(row))
