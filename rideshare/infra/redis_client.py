# rideshare/infra/redis_client.py
"""
Redis как кэш read-моделей (кошелёк водителя).

Источник истины всегда PostgreSQL: запись в кэш идёт после коммита,
инвалидация после изменения баланса. Ключи получают префикс namespace,
чтобы несколько окружений могли делить один Redis.
"""

from __future__ import annotations

from typing import Type, TypeVar

import redis.asyncio as redis
from pydantic import BaseModel, ValidationError

from rideshare.common.constants import TypeMsg
from rideshare.common.logger import get_logger, log_info, log_warning

logger = get_logger("redis")

M = TypeVar("M", bound=BaseModel)


class RedisClient:
    """Обёртка над redis.asyncio с namespace и pydantic-сериализацией."""

    _instance: RedisClient | None = None
    _client: redis.Redis | None = None

    def __new__(cls) -> RedisClient:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        if getattr(self, "_initialized", False):
            return
        self._initialized = True
        self._client = None
        self._namespace = "rideshare"

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            raise RuntimeError("Redis клиент не инициализирован. Вызовите connect() сначала.")
        return self._client

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    def _make_key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    async def connect(self, url: str, max_connections: int = 50, namespace: str | None = None) -> None:
        if self._client is not None:
            return
        if namespace:
            self._namespace = namespace

        client = redis.from_url(url, max_connections=max_connections, decode_responses=True)
        await client.ping()
        self._client = client
        await log_info(f"Redis: подключён, namespace {self._namespace}", type_msg=TypeMsg.INFO)

    async def disconnect(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            await client.aclose()
            await log_info("Redis: соединение закрыто", type_msg=TypeMsg.INFO)

    async def get(self, key: str) -> str | None:
        return await self.client.get(self._make_key(key))

    async def set(self, key: str, value: str, ttl: int | None = None) -> bool:
        """ttl в секундах; None хранит без срока."""
        return await self.client.set(self._make_key(key), value, ex=ttl)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return await self.client.delete(*(self._make_key(k) for k in keys))

    async def get_model(self, key: str, model_class: Type[M]) -> M | None:
        """
        Читает закэшированную модель.
        Значение, не прошедшее валидацию (старая схема, мусор), считается промахом.
        """
        raw = await self.get(key)
        if raw is None:
            return None
        try:
            return model_class.model_validate_json(raw)
        except ValidationError as e:
            await log_warning(f"Redis: {key} не читается как {model_class.__name__}: {e.error_count()} ошибок")
            return None

    async def set_model(self, key: str, model: BaseModel, ttl: int | None = None) -> bool:
        return await self.set(key, model.model_dump_json(), ttl=ttl)

    async def health_check(self) -> bool:
        try:
            return bool(await self.client.ping())
        except Exception as e:
            await log_warning(f"Redis health check: {e}")
            return False


def get_redis() -> RedisClient:
    return RedisClient()


async def init_redis() -> None:
    from rideshare.config import settings

    cfg = settings.redis
    await get_redis().connect(
        url=cfg.url,
        max_connections=cfg.REDIS_MAX_CONNECTIONS,
        namespace=cfg.REDIS_NAMESPACE,
    )


async def close_redis() -> None:
    await get_redis().disconnect()
