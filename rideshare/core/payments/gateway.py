# rideshare/core/payments/gateway.py
"""
Клиент платёжного шлюза (Razorpay-совместимый REST API).

Создание заказа выполняется по HTTP с таймаутом и никогда внутри
транзакции БД. Подпись callback проверяется локально:
HMAC-SHA256(secret, "<order_id>|<payment_id>") в hex.
"""

from __future__ import annotations

import hashlib
import hmac
from typing import Any

import httpx

from rideshare.common.constants import TypeMsg
from rideshare.common.exceptions import PaymentGatewayError
from rideshare.common.logger import log_error, log_info
from rideshare.core.payments.models import GatewayOrder


def compute_signature(secret: str, order_id: str, payment_id: str) -> str:
    """Подпись callback для пары (order_id, payment_id)."""
    message = f"{order_id}|{payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


class PaymentGatewayClient:
    """
    Клиент платёжного шлюза.

    Реализует:
    - Создание заказа (POST /orders, basic auth key_id:key_secret)
    - Проверку подписи callback за постоянное время
    """

    ORDERS_PATH = "/orders"

    def __init__(
        self,
        key_id: str | None = None,
        key_secret: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        currency: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Args:
            key_id: Публичный ключ (из конфига если None)
            key_secret: Секрет для basic auth и подписи
            base_url: Базовый URL API шлюза
            timeout: Таймаут HTTP запросов (секунды)
            currency: Валюта заказов
            http_client: Готовый httpx клиент (тесты, общий пул)
        """
        from rideshare.config import settings

        cfg = settings.payment_gateway
        self._key_id = key_id if key_id is not None else cfg.RAZORPAY_KEY_ID
        self._key_secret = key_secret if key_secret is not None else cfg.RAZORPAY_KEY_SECRET
        self._base_url = (base_url or cfg.RAZORPAY_BASE_URL).rstrip("/")
        self._timeout = timeout if timeout is not None else cfg.PAYMENT_REQUEST_TIMEOUT
        self.currency = currency or cfg.CURRENCY
        self._client = http_client

    @property
    def key_id(self) -> str:
        return self._key_id

    async def create_order(
        self,
        amount_minor: int,
        receipt: str,
        notes: dict[str, Any] | None = None,
        currency: str | None = None,
    ) -> GatewayOrder:
        """
        Создаёт заказ во внешнем шлюзе.

        Args:
            amount_minor: Сумма в минимальных единицах валюты
            receipt: Идентификатор квитанции (receipt_<booking_id>)
            notes: Произвольные метаданные заказа
            currency: Валюта (по умолчанию из конфига)

        Raises:
            PaymentGatewayError: шлюз не настроен, недоступен или отклонил запрос
        """
        if not self._key_id or not self._key_secret:
            raise PaymentGatewayError("Платёжный шлюз не настроен")

        payload = {
            "amount": amount_minor,
            "currency": currency or self.currency,
            "receipt": receipt,
            "notes": notes or {},
        }

        try:
            if self._client is not None:
                response = await self._post_order(self._client, payload)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await self._post_order(client, payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            await log_error(
                f"Шлюз отклонил создание заказа {receipt}: {e.response.status_code} {e.response.text}"
            )
            raise PaymentGatewayError() from e
        except (httpx.HTTPError, ValueError) as e:
            await log_error(f"Ошибка связи с платёжным шлюзом ({receipt}): {e}")
            raise PaymentGatewayError() from e

        order = GatewayOrder.model_validate(data)
        await log_info(
            f"Создан платёжный заказ {order.id} ({receipt}, {order.amount} {order.currency})",
            type_msg=TypeMsg.INFO,
        )
        return order

    async def _post_order(self, client: httpx.AsyncClient, payload: dict[str, Any]) -> httpx.Response:
        return await client.post(
            f"{self._base_url}{self.ORDERS_PATH}",
            json=payload,
            auth=(self._key_id, self._key_secret),
            timeout=self._timeout,
        )

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        """Сравнивает подпись callback с ожидаемой за постоянное время."""
        if not self._key_secret:
            return False
        expected = compute_signature(self._key_secret, order_id, payment_id)
        # на str compare_digest падает с TypeError для не-ASCII символов
        return hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8", "surrogatepass"))
