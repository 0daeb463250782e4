# rideshare/infra/event_bus.py
"""
Публикация доменных событий в RabbitMQ.

Exchange типа topic, routing key совпадает с типом события. Потребители
(почтовый транспорт, аналитика) живут вне сервиса и объявляют свои очереди
сами. Публикация best-effort: ошибка брокера логируется и возвращается
как False, бизнес-операция при этом уже зафиксирована.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

import aio_pika
from aio_pika import DeliveryMode, ExchangeType, Message
from aio_pika.abc import AbstractChannel, AbstractExchange, AbstractRobustConnection

from rideshare.common.constants import TypeMsg
from rideshare.common.logger import get_logger, log_error, log_info, log_warning

logger = get_logger("event_bus")


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class DomainEvent:
    """Событие, произошедшее после фиксации транзакции."""

    event_id: str = field(default_factory=lambda: str(uuid4()))
    event_type: str = ""
    timestamp: str = field(default_factory=_utc_now_iso)
    payload: dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> str:
        # default=str: даты и Decimal в payload
        return json.dumps(asdict(self), ensure_ascii=False, default=str)

    @classmethod
    def from_json(cls, data: str | bytes) -> DomainEvent:
        parsed = json.loads(data)
        return cls(
            event_id=parsed.get("event_id") or str(uuid4()),
            event_type=parsed.get("event_type", ""),
            timestamp=parsed.get("timestamp", ""),
            payload=parsed.get("payload") or {},
        )


class EventTypes:
    # Письмо пользователю: payload {to, subject, body}
    NOTIFICATION_EMAIL = "notification.email"

    RIDE_CANCELLED = "ride.cancelled"
    RIDE_RESCHEDULED = "ride.rescheduled"
    RIDE_COMPLETED = "ride.completed"

    BOOKING_CREATED = "booking.created"
    BOOKING_CONFIRMED = "booking.confirmed"
    BOOKING_CANCELLED = "booking.cancelled"
    BOOKING_EXPIRED = "booking.expired"
    BOOKING_DECLINED = "booking.declined"

    PAYMENT_SUCCEEDED = "payment.succeeded"
    PAYMENT_FAILED = "payment.failed"
    PAYOUT_COMPLETED = "payout.completed"


class EventBus:
    """
    Издатель событий поверх connect_robust.
    aio_pika сам восстанавливает соединение и канал после обрыва.
    """

    _instance: EventBus | None = None

    def __new__(cls) -> EventBus:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        if getattr(self, "_initialized", False):
            return
        self._initialized = True
        self._connection: AbstractRobustConnection | None = None
        self._channel: AbstractChannel | None = None
        self._exchange: AbstractExchange | None = None
        self._exchange_name = "rideshare.events"

    @property
    def is_connected(self) -> bool:
        return self._connection is not None and not self._connection.is_closed

    async def connect(
        self,
        url: str,
        exchange_name: str | None = None,
    ) -> None:
        if self.is_connected:
            return
        if exchange_name:
            self._exchange_name = exchange_name

        self._connection = await aio_pika.connect_robust(url)
        # publisher confirms: publish() ждёт подтверждения брокера
        self._channel = await self._connection.channel(publisher_confirms=True)
        self._exchange = await self._channel.declare_exchange(
            self._exchange_name,
            ExchangeType.TOPIC,
            durable=True,
        )
        await log_info(f"RabbitMQ: exchange {self._exchange_name} готов", type_msg=TypeMsg.INFO)

    async def disconnect(self) -> None:
        connection = self._connection
        self._connection = self._channel = self._exchange = None
        if connection is not None:
            await connection.close()
            await log_info("RabbitMQ: соединение закрыто", type_msg=TypeMsg.INFO)

    async def publish(self, event: DomainEvent) -> bool:
        """
        Returns:
            True если брокер принял сообщение
        """
        if not self.is_connected or self._exchange is None:
            await log_warning(f"RabbitMQ недоступен, событие {event.event_type} не отправлено")
            return False

        message = Message(
            body=event.to_json().encode(),
            content_type="application/json",
            message_id=event.event_id,
            timestamp=datetime.now(timezone.utc),
            delivery_mode=DeliveryMode.PERSISTENT,
        )
        try:
            await self._exchange.publish(message, routing_key=event.event_type)
        except Exception as e:
            await log_error(f"RabbitMQ: ошибка публикации {event.event_type} ({event.event_id}): {e}")
            return False

        await log_info(f"Событие {event.event_type} ({event.event_id})", type_msg=TypeMsg.DEBUG)
        return True

    async def health_check(self) -> bool:
        return self.is_connected


_event_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus


async def init_event_bus() -> None:
    from rideshare.config import settings

    cfg = settings.rabbitmq
    await get_event_bus().connect(
        url=cfg.url,
        exchange_name=cfg.RABBITMQ_EXCHANGE,
    )


async def close_event_bus() -> None:
    await get_event_bus().disconnect()
