# rideshare/infra/database.py
"""
PostgreSQL: пул asyncpg, повтор при обрыве связи, транзакции.

Сервисы открывают транзакцию через db.transaction() и передают соединение
в репозитории параметром `conn`. Без `conn` репозиторий читает через пул.
Все соединения работают в UTC: created_at бронирований сравнивается
с моментом отсечки сверки.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from functools import wraps
from typing import Any, AsyncGenerator, Callable, Literal, TypeVar

import asyncpg
from asyncpg import Connection, Pool, Record

from rideshare.common.constants import TypeMsg
from rideshare.common.logger import get_logger, log_error, log_info, log_warning

logger = get_logger("database")

T = TypeVar("T")

IsolationLevel = Literal["read_committed", "repeatable_read", "serializable"]

# Ключ pg_advisory_xact_lock, под которым применяется migrations/init.sql
SCHEMA_LOCK_KEY = 7_301_245

# Сетевые ошибки; нарушения ограничений и ошибки SQL сюда не входят
_TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    asyncpg.PostgresConnectionError,
    asyncpg.InterfaceError,
    ConnectionRefusedError,
    OSError,
)


def retry_on_connection_error(
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Повторяет вызов при сетевой ошибке PostgreSQL.

    Args:
        max_attempts: Всего попыток
        delay: Пауза перед второй попыткой (секунды)
        backoff: Множитель паузы для каждой следующей попытки
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            pause = delay
            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except _TRANSIENT_ERRORS as e:
                    if attempt == max_attempts:
                        await log_error(f"PostgreSQL недоступен, попыток: {max_attempts}. {func.__name__}: {e}")
                        raise
                    await log_warning(f"PostgreSQL: {func.__name__} попытка {attempt}/{max_attempts}: {e}")
                    await asyncio.sleep(pause)
                    pause *= backoff
            raise AssertionError("unreachable")

        return wrapper  # type: ignore

    return decorator


async def _prepare_connection(conn: Connection) -> None:
    """Вызывается пулом для каждого нового соединения."""
    await conn.execute("SET TIME ZONE 'UTC'")


class DatabaseManager:
    """
    Пул соединений к PostgreSQL, один на процесс.
    """

    _instance: DatabaseManager | None = None
    _pool: Pool | None = None

    def __new__(cls) -> DatabaseManager:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        if getattr(self, "_initialized", False):
            return
        self._initialized = True
        self._pool = None

    @property
    def pool(self) -> Pool:
        if self._pool is None:
            raise RuntimeError("Пул соединений не инициализирован. Вызовите connect() сначала.")
        return self._pool

    @property
    def is_connected(self) -> bool:
        return self._pool is not None

    @retry_on_connection_error(max_attempts=5, delay=1.0)
    async def connect(
        self,
        dsn: str,
        min_size: int = 5,
        max_size: int = 20,
        command_timeout: int = 60,
        application_name: str = "rideshare",
    ) -> None:
        """Создаёт пул. Повторный вызов при живом пуле ничего не делает."""
        if self._pool is not None:
            return

        await log_info(f"PostgreSQL: создание пула ({min_size}..{max_size})", type_msg=TypeMsg.INFO)
        self._pool = await asyncpg.create_pool(
            dsn=dsn,
            min_size=min_size,
            max_size=max_size,
            command_timeout=command_timeout,
            init=_prepare_connection,
            server_settings={"application_name": application_name},
        )

    async def disconnect(self) -> None:
        if self._pool is None:
            return
        pool, self._pool = self._pool, None
        await pool.close()
        await log_info("PostgreSQL: пул закрыт", type_msg=TypeMsg.INFO)

    @asynccontextmanager
    async def transaction(
        self,
        isolation: IsolationLevel = "read_committed",
        readonly: bool = False,
    ) -> AsyncGenerator[Connection, None]:
        """
        Транзакция на отдельном соединении пула.
        Исключение внутри блока откатывает транзакцию и пробрасывается дальше.

        Строки блокируются (SELECT ... FOR UPDATE) в порядке
        ride -> booking -> payment -> user.

        Example:
            async with db.transaction() as conn:
                ride = await ride_repo.get_for_update(ride_id, conn)
                await ride_repo.reserve_seats(ride_id, seats, conn)
        """
        async with self.pool.acquire() as connection:
            options: dict[str, Any] = {"isolation": isolation}
            if readonly:
                options["readonly"] = True
            async with connection.transaction(**options):
                yield connection

    # Запросы вне транзакции: отдельное соединение из пула на каждый вызов

    @retry_on_connection_error()
    async def execute(self, query: str, *args: Any) -> str:
        async with self.pool.acquire() as conn:
            return await conn.execute(query, *args)

    @retry_on_connection_error()
    async def fetch(self, query: str, *args: Any) -> list[Record]:
        async with self.pool.acquire() as conn:
            return await conn.fetch(query, *args)

    @retry_on_connection_error()
    async def fetchrow(self, query: str, *args: Any) -> Record | None:
        async with self.pool.acquire() as conn:
            return await conn.fetchrow(query, *args)

    @retry_on_connection_error()
    async def fetchval(self, query: str, *args: Any, column: int = 0) -> Any:
        async with self.pool.acquire() as conn:
            return await conn.fetchval(query, *args, column=column)

    async def health_check(self) -> bool:
        try:
            return await self.fetchval("SELECT 1") == 1
        except Exception as e:
            await log_warning(f"PostgreSQL health check: {e}")
            return False


_db_manager: DatabaseManager | None = None


def get_db() -> DatabaseManager:
    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager()
    return _db_manager


async def init_db() -> None:
    """Подключается по настройкам и применяет схему."""
    from rideshare.config import settings

    cfg = settings.database
    db = get_db()
    await db.connect(
        dsn=cfg.dsn,
        min_size=cfg.DB_MIN_POOL_SIZE,
        max_size=cfg.DB_MAX_POOL_SIZE,
        command_timeout=cfg.DB_COMMAND_TIMEOUT,
        application_name=settings.system.PROJECT_NAME,
    )
    await log_info(f"PostgreSQL: {cfg.DB_HOST}:{cfg.DB_PORT}/{cfg.DB_NAME}", type_msg=TypeMsg.INFO)
    await _init_schema(db)


async def _init_schema(db: DatabaseManager) -> None:
    """
    Применяет migrations/init.sql.
    Несколько процессов стартуют одновременно, поэтому DDL выполняется
    под транзакционным advisory lock.
    """
    from rideshare.config.loader import get_project_root

    schema_path = get_project_root() / "migrations" / "init.sql"
    if not schema_path.exists():
        await log_error(f"Схема не найдена: {schema_path}")
        return

    ddl = schema_path.read_text(encoding="utf-8")
    try:
        async with db.transaction() as conn:
            await conn.execute("SELECT pg_advisory_xact_lock($1)", SCHEMA_LOCK_KEY)
            await conn.execute(ddl)
    except asyncpg.DuplicateObjectError as e:
        await log_warning(f"Схема уже применена: {e}")
        return

    await log_info(f"Схема применена: {schema_path.name}", type_msg=TypeMsg.INFO)


async def close_db() -> None:
    await get_db().disconnect()
