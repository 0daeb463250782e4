# rideshare/config/loader.py
"""
Настройки сервиса бронирования поездок.

Значения читаются из config/config.json (плоский словарь, ключи _comment_*
пропускаются) и раскладываются по секциям по именам полей моделей.
Адреса хостов и секреты можно переопределить переменными окружения
с тем же именем; .env подхватывается через python-dotenv.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Ключи, которые окружение переопределяет поверх config.json
ENV_OVERRIDABLE = frozenset({
    "ENVIRONMENT", "COMPONENT_MODE",
    "API_HOST", "API_PORT",
    "DB_HOST", "DB_PORT", "DB_NAME", "DB_USER", "DB_PASSWORD",
    "REDIS_HOST", "REDIS_PORT", "REDIS_PASSWORD",
    "RABBITMQ_HOST", "RABBITMQ_PORT", "RABBITMQ_USER", "RABBITMQ_PASSWORD",
    "LOCATIONIQ_API_KEY",
    "RAZORPAY_KEY_ID", "RAZORPAY_KEY_SECRET",
})


# =============================================================================
# ФАЙЛ КОНФИГУРАЦИИ
# =============================================================================

def get_project_root() -> Path:
    # rideshare/config/loader.py -> корень репозитория
    return Path(__file__).resolve().parents[2]


def get_config_path() -> Path:
    return get_project_root() / "config" / "config.json"


def load_config_json() -> dict[str, Any]:
    """
    Читает config.json.

    Raises:
        FileNotFoundError: файла нет по пути get_config_path()
    """
    path = get_config_path()
    if not path.is_file():
        raise FileNotFoundError(f"Файл конфигурации не найден: {path}")
    return json.loads(path.read_text(encoding="utf-8"))


def _env_fallback(name: str) -> BeforeValidator:
    """Пустое значение секрета заменяется переменной окружения `name`."""
    return BeforeValidator(lambda value: value or os.getenv(name, ""))


# =============================================================================
# СЕКЦИИ
# =============================================================================

class SystemSettings(BaseModel):
    PROJECT_NAME: str = "rideshare"
    VERSION: str = "1.0.0"
    DEBUG: bool = True
    ENVIRONMENT: str = "development"
    # all | api | worker
    COMPONENT_MODE: str = "all"


class ApiSettings(BaseModel):
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8080
    API_PREFIX: str = "/api/v1"


class LoggingSettings(BaseModel):
    LOG_LEVEL: str = "DEBUG"
    LOG_TO_FILE: bool = True
    LOG_FILE_PATH: str = "logs/app.log"
    # colored | json
    LOG_FORMAT: str = "colored"
    LOG_MAX_BYTES: int = 10 * 1024 * 1024
    LOG_BACKUP_COUNT: int = 5


class DatabaseSettings(BaseModel):
    """PostgreSQL; пароль обычно приходит из DB_PASSWORD."""

    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "rideshare"
    DB_USER: str = "postgres"
    DB_PASSWORD: Annotated[str, _env_fallback("DB_PASSWORD")] = ""
    DB_MIN_POOL_SIZE: int = 5
    DB_MAX_POOL_SIZE: int = 20
    DB_COMMAND_TIMEOUT: int = 60

    @property
    def dsn(self) -> str:
        return f"postgresql://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"


class RedisSettings(BaseModel):
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: Annotated[str, _env_fallback("REDIS_PASSWORD")] = ""
    REDIS_NAMESPACE: str = "rideshare"
    REDIS_MAX_CONNECTIONS: int = 50

    @property
    def url(self) -> str:
        auth = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


class RedisTTLSettings(BaseModel):
    """Время жизни кэша в секундах."""

    WALLET_TTL: int = 60


class RabbitMQSettings(BaseModel):
    RABBITMQ_HOST: str = "localhost"
    RABBITMQ_PORT: int = 5672
    RABBITMQ_USER: str = "guest"
    RABBITMQ_PASSWORD: str = "guest"
    RABBITMQ_VHOST: str = "/"
    RABBITMQ_EXCHANGE: str = "rideshare.events"

    @field_validator("RABBITMQ_PASSWORD", mode="before")
    @classmethod
    def password_env_first(cls, v: str) -> str:
        # у пароля брокера есть непустой дефолт, поэтому окружение всегда главнее
        return os.getenv("RABBITMQ_PASSWORD") or v

    @property
    def url(self) -> str:
        return (
            f"amqp://{self.RABBITMQ_USER}:{self.RABBITMQ_PASSWORD}"
            f"@{self.RABBITMQ_HOST}:{self.RABBITMQ_PORT}{self.RABBITMQ_VHOST}"
        )


class FareSettings(BaseModel):
    """Тариф: BASE_FARE + RATE_PER_KM * км, но не меньше MIN_ROUTE_DISTANCE_KM км."""

    BASE_FARE: float = 50.0
    RATE_PER_KM: float = 5.0
    MIN_ROUTE_DISTANCE_KM: float = 10.0
    CURRENCY: str = "INR"


class GeocodingSettings(BaseModel):
    LOCATIONIQ_API_KEY: Annotated[str, _env_fallback("LOCATIONIQ_API_KEY")] = ""
    LOCATIONIQ_BASE_URL: str = "https://us1.locationiq.com/v1"
    GEOCODING_REQUEST_TIMEOUT: float = 5.0


class PaymentGatewaySettings(BaseModel):
    RAZORPAY_KEY_ID: Annotated[str, _env_fallback("RAZORPAY_KEY_ID")] = ""
    RAZORPAY_KEY_SECRET: Annotated[str, _env_fallback("RAZORPAY_KEY_SECRET")] = ""
    RAZORPAY_BASE_URL: str = "https://api.razorpay.com/v1"
    PAYMENT_REQUEST_TIMEOUT: float = 10.0
    CURRENCY: str = "INR"


class BookingSettings(BaseModel):
    # PENDING-бронь без оплаты дольше этого срока истекает
    PAYMENT_ORDER_TTL_MINUTES: int = 30
    RECONCILIATION_INTERVAL: int = 60
    RECONCILIATION_BATCH_SIZE: int = 100


def _build_section(model_cls: type[BaseModel], data: dict[str, Any]) -> BaseModel:
    """Берёт из плоского словаря поля секции; окружение главнее файла."""
    values: dict[str, Any] = {}
    for name in model_cls.model_fields:
        env_value = os.getenv(name) if name in ENV_OVERRIDABLE else None
        if env_value is not None:
            values[name] = env_value
        elif name in data:
            values[name] = data[name]
    return model_cls(**values)


# =============================================================================
# НАСТРОЙКИ ПРИЛОЖЕНИЯ
# =============================================================================

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    system: SystemSettings = Field(default_factory=SystemSettings)
    api: ApiSettings = Field(default_factory=ApiSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    redis_ttl: RedisTTLSettings = Field(default_factory=RedisTTLSettings)
    rabbitmq: RabbitMQSettings = Field(default_factory=RabbitMQSettings)
    fares: FareSettings = Field(default_factory=FareSettings)
    geocoding: GeocodingSettings = Field(default_factory=GeocodingSettings)
    payment_gateway: PaymentGatewaySettings = Field(default_factory=PaymentGatewaySettings)
    booking: BookingSettings = Field(default_factory=BookingSettings)

    @classmethod
    def from_config_json(cls) -> Settings:
        return cls.from_dict(load_config_json())

    @classmethod
    def from_dict(cls, config_data: dict[str, Any]) -> Settings:
        """
        Раскладывает плоский словарь по секциям.
        Каждое поле секции ищется по своему имени, неизвестные ключи игнорируются.
        """
        data = {k: v for k, v in config_data.items() if not k.startswith("_comment_")}
        sections = {
            name: _build_section(field.annotation, data)
            for name, field in cls.model_fields.items()
        }
        return cls(**sections)


@lru_cache()
def get_settings() -> Settings:
    from dotenv import load_dotenv

    env_path = get_project_root() / ".env"
    if env_path.exists():
        load_dotenv(env_path)
    return Settings.from_config_json()


settings = get_settings()
