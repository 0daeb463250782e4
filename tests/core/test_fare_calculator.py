# tests/core/test_fare_calculator.py
"""
Тесты калькулятора стоимости.
"""

from __future__ import annotations

import httpx
import pytest

from rideshare.core.fares.service import FareCalculator


def _locationiq(routes_distance_m: float | None = 152_400.0, geocode_status: int = 200):
    """MockTransport, имитирующий LocationIQ."""
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path.endswith("/search.php"):
            if geocode_status != 200:
                return httpx.Response(geocode_status, json={"error": "rate limited"})
            lat = "18.52" if request.url.params["q"] == "Pune" else "19.07"
            return httpx.Response(200, json=[{"lat": lat, "lon": "73.85"}])
        routes = [] if routes_distance_m is None else [{"distance": routes_distance_m}]
        return httpx.Response(200, json={"routes": routes})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler)), seen


class TestFare:
    """Тесты формулы стоимости."""

    def test_base_plus_rate(self) -> None:
        calc = FareCalculator(base_fare=50.0, rate_per_km=5.0, api_key="")
        assert calc.fare(150) == 800.0
        assert calc.fare(12.5) == 112.5

    def test_zero_distance_is_base_fare(self) -> None:
        """При нулевом или отрицательном расстоянии стоимость равна базовому тарифу."""
        calc = FareCalculator(base_fare=50.0, rate_per_km=5.0, api_key="")
        assert calc.fare(0) == 50.0
        assert calc.fare(-3) == 50.0

    def test_ride_specific_tariff(self) -> None:
        calc = FareCalculator(base_fare=50.0, rate_per_km=5.0, api_key="")
        assert calc.fare(10, base_fare=100.0, rate_per_km=2.0) == 120.0

    def test_defaults_from_config(self) -> None:
        calc = FareCalculator(api_key="")
        assert calc.base_fare == 50.0
        assert calc.rate_per_km == 5.0

    @pytest.mark.parametrize(
        "total, distance, part, expected",
        [
            (800.0, 150.0, 75.0, 400.0),
            (800.0, 150.0, 150.0, 800.0),
            (100.0, 3.0, 1.0, 33.33),
            (800.0, 0.0, 10.0, 800.0),
            (200.0, 100.0, 25.0, 50.0),
            (200.0, 0.0, 25.0, 200.0),
            (200.0, 100.0, 0.0, 200.0),
            (200.0, 100.0, -5.0, 200.0),
        ],
    )
    def test_proportional_fare(self, total: float, distance: float, part: float, expected: float) -> None:
        """Доля стоимости пропорциональна расстоянию пассажира."""
        assert FareCalculator.proportional_fare(total, distance, part) == expected

    def test_ten_km_ride_fare(self) -> None:
        """Поездка на 10 км: 50 + 5 * 10 = 100 за место, 200 за два места."""
        calc = FareCalculator(base_fare=50.0, rate_per_km=5.0, api_key="")
        fare = calc.fare(10.0)

        assert fare == 100.0
        assert FareCalculator.proportional_fare(fare, 10.0, 10.0) * 2 == 200.0


class TestDistance:
    """Тесты расчёта расстояния."""

    @pytest.mark.asyncio
    async def test_fallback_is_deterministic(self) -> None:
        """Без ключа используется оценка по CRC32, одинаковая для одинаковых входов."""
        calc = FareCalculator(min_distance_km=10.0, api_key="")

        first = await calc.distance("Pune", "Mumbai")
        second = await calc.distance(" pune ", "MUMBAI")

        assert first == second
        assert first >= 10.0
        assert first == calc.fallback_distance("Pune", "Mumbai")

    @pytest.mark.asyncio
    async def test_route_distance_from_api(self) -> None:
        """Расстояние маршрута берётся из directions API в км."""
        client, seen = _locationiq(152_400.0)
        calc = FareCalculator(min_distance_km=10.0, api_key="key", base_url="https://liq.test/v1", http_client=client)

        assert await calc.distance("Pune", "Mumbai") == 152.4
        assert len(seen) == 3
        assert "/directions/driving/73.85,18.52;73.85,19.07" in seen[2].url.path

    @pytest.mark.asyncio
    async def test_min_distance_applied(self) -> None:
        client, _ = _locationiq(1_200.0)
        calc = FareCalculator(min_distance_km=10.0, api_key="key", base_url="https://liq.test/v1", http_client=client)

        assert await calc.distance("Pune", "Mumbai") == 10.0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("routes, status", [(None, 200), (152_400.0, 429)])
    async def test_api_failure_falls_back(self, routes: float | None, status: int) -> None:
        """Ошибка API (нет маршрута, HTTP ошибка) приводит к оценке по названиям."""
        client, _ = _locationiq(routes, geocode_status=status)
        calc = FareCalculator(min_distance_km=10.0, api_key="key", base_url="https://liq.test/v1", http_client=client)

        assert await calc.distance("Pune", "Mumbai") == calc.fallback_distance("Pune", "Mumbai")
