# rideshare/core/fares/service.py
"""
Калькулятор стоимости поездки.

Расстояние берётся из LocationIQ (геокодирование + маршрут), при любой
ошибке внешнего сервиса используется детерминированная оценка по CRC32
названий точек. Стоимость: базовый тариф + ставка за км.
"""

from __future__ import annotations

import zlib
from typing import Optional

import httpx

from rideshare.common.constants import TypeMsg
from rideshare.common.logger import log_info, log_warning
from rideshare.common.money import round_money


class RouteLookupError(Exception):
    """Внешний сервис не смог построить маршрут."""


class FareCalculator:
    """
    Расчёт расстояния и стоимости.

    Реализует:
    - fare(distance) = base + rate * distance (base при distance <= 0)
    - distance(source, destination) с fallback на CRC32-оценку
    - proportional_fare для частичного участка маршрута
    """

    SEARCH_PATH = "/search.php"
    DIRECTIONS_PATH = "/directions/driving"

    def __init__(
        self,
        base_fare: float | None = None,
        rate_per_km: float | None = None,
        min_distance_km: float | None = None,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Args:
            base_fare: Базовый тариф (из конфига если None)
            rate_per_km: Ставка за километр (из конфига если None)
            min_distance_km: Минимальное расстояние маршрута
            api_key: Ключ LocationIQ; пустой ключ включает только fallback
            base_url: Базовый URL LocationIQ
            timeout: Таймаут HTTP запросов (секунды)
            http_client: Готовый httpx клиент (тесты, общий пул)
        """
        from rideshare.config import settings

        self.base_fare = base_fare if base_fare is not None else settings.fares.BASE_FARE
        self.rate_per_km = rate_per_km if rate_per_km is not None else settings.fares.RATE_PER_KM
        self.min_distance_km = (
            min_distance_km if min_distance_km is not None else settings.fares.MIN_ROUTE_DISTANCE_KM
        )
        self._api_key = api_key if api_key is not None else settings.geocoding.LOCATIONIQ_API_KEY
        self._base_url = (base_url or settings.geocoding.LOCATIONIQ_BASE_URL).rstrip("/")
        self._timeout = timeout if timeout is not None else settings.geocoding.GEOCODING_REQUEST_TIMEOUT
        self._client = http_client

    # =========================================================================
    # СТОИМОСТЬ
    # =========================================================================

    def fare(
        self,
        distance_km: float,
        base_fare: float | None = None,
        rate_per_km: float | None = None,
    ) -> float:
        """
        Стоимость поездки на заданное расстояние.

        Args:
            distance_km: Расстояние в км
            base_fare: Базовый тариф поездки (по умолчанию из конфига)
            rate_per_km: Ставка за км (по умолчанию из конфига)

        Returns:
            Стоимость, округлённая до 2 знаков
        """
        base = self.base_fare if base_fare is None else base_fare
        rate = self.rate_per_km if rate_per_km is None else rate_per_km

        if distance_km <= 0:
            return round_money(base)
        return round_money(base + rate * distance_km)

    @staticmethod
    def proportional_fare(total_fare: float, total_distance: float, passenger_distance: float) -> float:
        """Доля стоимости поездки пропорционально пройденному пассажиром расстоянию."""
        if total_distance <= 0 or passenger_distance <= 0:
            return total_fare
        return round_money(total_fare * passenger_distance / total_distance)

    # =========================================================================
    # РАССТОЯНИЕ
    # =========================================================================

    async def distance(self, source: str, destination: str) -> float:
        """
        Расстояние между двумя точками в км.
        Никогда не меньше минимального расстояния маршрута.
        """
        km: Optional[float] = None

        if self._api_key:
            try:
                km = await self._route_distance(source, destination)
            except (httpx.HTTPError, RouteLookupError, KeyError, IndexError, ValueError) as e:
                await log_warning(f"LocationIQ недоступен ({source} -> {destination}): {e}. Используем оценку")

        if km is None:
            km = self.fallback_distance(source, destination)

        return round(max(km, self.min_distance_km), 2)

    def fallback_distance(self, source: str, destination: str) -> float:
        """Детерминированная оценка расстояния по названиям точек."""
        src_hash = zlib.crc32(source.strip().lower().encode("utf-8"))
        dst_hash = zlib.crc32(destination.strip().lower().encode("utf-8"))
        return float(max(abs(src_hash % 500 - dst_hash % 500), self.min_distance_km))

    async def _route_distance(self, source: str, destination: str) -> float:
        if self._client is not None:
            return await self._query_route(self._client, source, destination)

        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await self._query_route(client, source, destination)

    async def _query_route(self, client: httpx.AsyncClient, source: str, destination: str) -> float:
        src_lat, src_lon = await self._geocode(client, source)
        dst_lat, dst_lon = await self._geocode(client, destination)

        response = await client.get(
            f"{self._base_url}{self.DIRECTIONS_PATH}/{src_lon},{src_lat};{dst_lon},{dst_lat}",
            params={"key": self._api_key, "overview": "false"},
            timeout=self._timeout,
        )
        response.raise_for_status()

        routes = response.json().get("routes") or []
        if not routes:
            raise RouteLookupError(f"маршрут не найден: {source} -> {destination}")

        km = float(routes[0]["distance"]) / 1000.0
        await log_info(f"Маршрут {source} -> {destination}: {km:.2f} км", type_msg=TypeMsg.DEBUG)
        return km

    async def _geocode(self, client: httpx.AsyncClient, place: str) -> tuple[float, float]:
        response = await client.get(
            f"{self._base_url}{self.SEARCH_PATH}",
            params={"key": self._api_key, "q": place, "format": "json", "limit": 1},
            timeout=self._timeout,
        )
        response.raise_for_status()

        results = response.json()
        if not results:
            raise RouteLookupError(f"адрес не найден: {place}")
        return float(results[0]["lat"]), float(results[0]["lon"])
