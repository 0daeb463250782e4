# tests/conftest.py
"""
Общие фикстуры и настройки для тестов.
"""

from __future__ import annotations

import json
import os
from contextlib import asynccontextmanager
from pathlib import Path
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

# Устанавливаем переменные окружения перед импортом модулей
os.environ.setdefault("DB_PASSWORD", "test_password")
os.environ.setdefault("REDIS_PASSWORD", "")
os.environ.setdefault("LOCATIONIQ_API_KEY", "")
os.environ.setdefault("RAZORPAY_KEY_ID", "rzp_test_key")
os.environ.setdefault("RAZORPAY_KEY_SECRET", "rzp_test_secret")

from rideshare.common.constants import UserRole  # noqa: E402
from rideshare.core.bookings.service import BookingService  # noqa: E402
from rideshare.core.fares.service import FareCalculator  # noqa: E402
from rideshare.core.notifications.service import NotificationService  # noqa: E402
from rideshare.core.payments.gateway import PaymentGatewayClient  # noqa: E402
from rideshare.core.payments.service import PaymentService  # noqa: E402
from rideshare.core.payouts.service import PayoutService  # noqa: E402
from rideshare.core.reviews.service import ReviewService  # noqa: E402
from rideshare.core.rides.service import RideService  # noqa: E402
from tests.fakes import (  # noqa: E402
    GATEWAY_KEY_ID,
    GATEWAY_SECRET,
    GATEWAY_URL,
    FakeBookingRepository,
    FakeDatabase,
    FakePaymentRepository,
    FakeRedis,
    FakeReviewRepository,
    FakeRideRepository,
    FakeUserRepository,
    InMemoryStore,
    RecordingEventBus,
)

# =============================================================================
# ФИКСТУРЫ КОНФИГУРАЦИИ
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Корневая директория проекта."""
    return Path(__file__).parent.parent


@pytest.fixture(scope="session")
def config_path(project_root: Path) -> Path:
    """Путь к файлу конфигурации."""
    return project_root / "config" / "config.json"


@pytest.fixture
def mock_config() -> dict[str, Any]:
    """Мок конфигурации для тестов."""
    return {
        "_comment_system": "Системные настройки",
        "PROJECT_NAME": "rideshare_test",
        "VERSION": "1.0.0-test",
        "DEBUG": True,
        "API_PREFIX": "/api/test",
        "LOG_LEVEL": "DEBUG",
        "LOG_TO_FILE": False,
        "LOG_FORMAT": "colored",
        "DB_HOST": "db.local",
        "DB_PORT": 5433,
        "DB_NAME": "rideshare_test",
        "DB_USER": "tester",
        "DB_MIN_POOL_SIZE": 2,
        "DB_MAX_POOL_SIZE": 5,
        "REDIS_HOST": "localhost",
        "REDIS_PORT": 6379,
        "REDIS_DB": 1,
        "REDIS_NAMESPACE": "rideshare_test",
        "WALLET_TTL": 15,
        "RABBITMQ_EXCHANGE": "rideshare.test",
        "BASE_FARE": 40.0,
        "RATE_PER_KM": 4.5,
        "MIN_ROUTE_DISTANCE_KM": 5.0,
        "CURRENCY": "INR",
        "PAYMENT_ORDER_TTL_MINUTES": 15,
        "RECONCILIATION_INTERVAL": 30,
        "RECONCILIATION_BATCH_SIZE": 50,
    }


@pytest.fixture
def temp_config_file(tmp_path: Path, mock_config: dict[str, Any]) -> Path:
    """Временный файл конфигурации."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    config_file = config_dir / "config.json"
    config_file.write_text(json.dumps(mock_config, ensure_ascii=False), encoding="utf-8")
    return config_file


# =============================================================================
# МОКИ ИНФРАСТРУКТУРЫ
# =============================================================================

@pytest.fixture
def mock_connection() -> AsyncMock:
    """Мок соединения asyncpg."""
    conn = AsyncMock()
    conn.execute = AsyncMock(return_value="UPDATE 1")
    conn.fetch = AsyncMock(return_value=[])
    conn.fetchrow = AsyncMock(return_value=None)
    conn.fetchval = AsyncMock(return_value=None)
    return conn


@pytest.fixture
def mock_db(mock_connection: AsyncMock) -> MagicMock:
    """Мок DatabaseManager с транзакцией, отдающей mock_connection."""
    db = MagicMock()
    db.execute = AsyncMock(return_value="UPDATE 1")
    db.fetch = AsyncMock(return_value=[])
    db.fetchrow = AsyncMock(return_value=None)
    db.fetchval = AsyncMock(return_value=None)
    db.health_check = AsyncMock(return_value=True)

    @asynccontextmanager
    async def transaction(isolation: str = "read_committed"):
        yield mock_connection

    db.transaction = transaction
    return db


@pytest.fixture
def mock_redis() -> MagicMock:
    """Мок RedisClient."""
    redis = MagicMock()
    redis.is_connected = True
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock(return_value=True)
    redis.delete = AsyncMock(return_value=1)
    redis.get_model = AsyncMock(return_value=None)
    redis.set_model = AsyncMock(return_value=True)
    redis.health_check = AsyncMock(return_value=True)
    return redis


@pytest.fixture
def mock_event_bus() -> AsyncMock:
    """Мок EventBus."""
    event_bus = AsyncMock()
    event_bus.publish = AsyncMock(return_value=True)
    event_bus.health_check = AsyncMock(return_value=True)
    event_bus.is_connected = True
    return event_bus


# =============================================================================
# IN-MEMORY ОКРУЖЕНИЕ ДЛЯ СЕРВИСОВ
# =============================================================================

def _gateway_handler() -> Any:
    counter = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        counter["n"] += 1
        body = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "id": f"order_{counter['n']:04d}",
                "amount": body["amount"],
                "currency": body["currency"],
                "receipt": body["receipt"],
                "status": "created",
                "notes": body["notes"],
            },
        )

    return handler


@pytest.fixture
def gateway_http() -> httpx.AsyncClient:
    """httpx клиент, отвечающий как платёжный шлюз."""
    return httpx.AsyncClient(transport=httpx.MockTransport(_gateway_handler()))


@pytest.fixture
def gateway(gateway_http: httpx.AsyncClient) -> PaymentGatewayClient:
    return PaymentGatewayClient(
        key_id=GATEWAY_KEY_ID,
        key_secret=GATEWAY_SECRET,
        base_url=GATEWAY_URL,
        currency="INR",
        http_client=gateway_http,
    )


@pytest.fixture
def fare_calculator() -> FareCalculator:
    """Калькулятор без внешнего API (только оценка по названиям)."""
    return FareCalculator(base_fare=50.0, rate_per_km=5.0, min_distance_km=10.0, api_key="")


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def world(store: InMemoryStore, gateway: PaymentGatewayClient, fare_calculator: FareCalculator) -> SimpleNamespace:
    """Все сервисы поверх одного in-memory хранилища."""
    db = FakeDatabase(store)
    users = FakeUserRepository(db)
    rides = FakeRideRepository(db)
    bookings = FakeBookingRepository(db)
    payments = FakePaymentRepository(db)
    reviews = FakeReviewRepository(db)
    bus = RecordingEventBus()
    redis = FakeRedis()
    notifications = NotificationService(bus, users)

    return SimpleNamespace(
        store=store,
        db=db,
        bus=bus,
        redis=redis,
        gateway=gateway,
        repos=SimpleNamespace(users=users, rides=rides, bookings=bookings, payments=payments, reviews=reviews),
        notifications=notifications,
        rides=RideService(db, rides, bookings, payments, users, fare_calculator, notifications),
        bookings=BookingService(db, bookings, rides, payments, users, fare_calculator, notifications),
        payments=PaymentService(db, payments, bookings, gateway, notifications),
        payouts=PayoutService(db, payments, bookings, users, redis, notifications, wallet_ttl=60),
        reviews=ReviewService(db, reviews, bookings, users),
    )


@pytest.fixture
def driver(store: InMemoryStore):
    """Одобренный водитель."""
    return store.add_user("Ravi", role=UserRole.DRIVER, is_approved=True)


@pytest.fixture
def passenger(store: InMemoryStore):
    return store.add_user("Asha")


@pytest.fixture
def ride(store: InMemoryStore, driver):
    """Поездка Pune -> Mumbai: 150 км, 4 места, 800.00 за маршрут."""
    return store.add_ride(driver.id)
