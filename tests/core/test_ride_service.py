# tests/core/test_ride_service.py
"""
Тесты сервиса поездок (каталог).
"""

from __future__ import annotations

from datetime import date, time
from types import SimpleNamespace

import pytest

from rideshare.common.constants import BookingStatus, PaymentStatus, RideStatus, UserRole
from rideshare.common.exceptions import (
    AlreadyTerminalError,
    DriverNotFoundError,
    ForbiddenError,
    InvalidRequestError,
    InvalidStateError,
    NotApprovedError,
    RideNotFoundError,
)
from rideshare.core.bookings.models import BookingCreateRequest
from rideshare.core.payments.models import PaymentOrderRequest
from rideshare.core.rides.models import RideCreateRequest, RideSearchFilter, RideUpdate
from rideshare.infra.event_bus import EventTypes

RIDE_DATE = date(2030, 1, 15)


def _request(**overrides) -> RideCreateRequest:
    data = {
        "source": "Pune",
        "destination": "Mumbai",
        "ride_date": RIDE_DATE,
        "ride_time": time(9, 30),
        "seats": 4,
    }
    data.update(overrides)
    return RideCreateRequest(**data)


class TestPostRide:
    """Тесты публикации поездки."""

    @pytest.mark.asyncio
    async def test_post_ride_computes_fare(self, world: SimpleNamespace, driver, fare_calculator) -> None:
        """Стоимость маршрута = базовый тариф + ставка * расстояние."""
        ride = await world.rides.post_ride(driver.id, _request(vehicle_model="Innova"))

        distance = fare_calculator.fallback_distance("Pune", "Mumbai")
        assert ride.status == RideStatus.SCHEDULED
        assert ride.available_seats == ride.total_seats == 4
        assert ride.total_distance == distance
        assert ride.estimated_fare == fare_calculator.fare(distance)
        assert ride.vehicle_model == "Innova"

    @pytest.mark.asyncio
    async def test_custom_base_fare(self, world: SimpleNamespace, driver, fare_calculator) -> None:
        ride = await world.rides.post_ride(driver.id, _request(base_fare=200.0))

        assert ride.base_fare == 200.0
        assert ride.estimated_fare == fare_calculator.fare(ride.total_distance, base_fare=200.0)

    @pytest.mark.asyncio
    async def test_unapproved_driver(self, world: SimpleNamespace, store) -> None:
        """Неодобренный водитель не может публиковать поездки."""
        rookie = store.add_user("Rookie", role=UserRole.DRIVER, is_approved=False)
        with pytest.raises(NotApprovedError):
            await world.rides.post_ride(rookie.id, _request())

    @pytest.mark.asyncio
    async def test_passenger_cannot_post(self, world: SimpleNamespace, passenger) -> None:
        with pytest.raises(DriverNotFoundError):
            await world.rides.post_ride(passenger.id, _request())


class TestSearchRides:
    """Тесты поиска."""

    @pytest.fixture
    def catalog(self, store, driver):
        store.users[driver.id].driver_rating = 4.6
        other = store.add_user("Kiran", role=UserRole.DRIVER, is_approved=True)
        store.users[other.id].driver_rating = 3.9
        return {
            "cheap": store.add_ride(other.id, total_distance=20.0),
            "regular": store.add_ride(driver.id),
            "full": store.add_ride(driver.id, seats=1),
            "other_day": store.add_ride(driver.id, ride_date=date(2030, 1, 16)),
            "cancelled": store.add_ride(driver.id, status=RideStatus.CANCELLED),
        }

    @pytest.mark.asyncio
    async def test_only_bookable_rides_on_date(self, world: SimpleNamespace, store, catalog) -> None:
        """Находятся только запланированные поездки со свободными местами на дату."""
        store.rides[catalog["full"].id].available_seats = 0

        found = await world.rides.search_rides(RideSearchFilter(ride_date=RIDE_DATE))

        assert {r.id for r in found} == {catalog["cheap"].id, catalog["regular"].id}

    @pytest.mark.asyncio
    async def test_price_and_rating_filters(self, world: SimpleNamespace, catalog) -> None:
        by_price = await world.rides.search_rides(RideSearchFilter(ride_date=RIDE_DATE, max_price=200.0))
        assert [r.id for r in by_price] == [catalog["cheap"].id]

        by_min_price = await world.rides.search_rides(RideSearchFilter(ride_date=RIDE_DATE, min_price=500.0))
        assert {r.id for r in by_min_price} == {catalog["regular"].id, catalog["full"].id}

        by_rating = await world.rides.search_rides(RideSearchFilter(ride_date=RIDE_DATE, min_rating=4.5))
        assert catalog["cheap"].id not in {r.id for r in by_rating}

    @pytest.mark.asyncio
    async def test_source_substring(self, world: SimpleNamespace, catalog) -> None:
        found = await world.rides.search_rides(RideSearchFilter(ride_date=RIDE_DATE, source="pun"))
        assert len(found) == 3
        assert await world.rides.search_rides(RideSearchFilter(ride_date=RIDE_DATE, destination="Goa")) == []


class TestCancelRide:
    """Тесты отмены поездки."""

    @pytest.mark.asyncio
    async def test_cascades_to_bookings_and_payments(self, world: SimpleNamespace, store, driver, ride) -> None:
        """Отмена поездки отменяет бронирования, закрывает платежи и освобождает места."""
        riders = [store.add_user(f"P{i}") for i in range(2)]
        first = await world.bookings.create_booking(riders[0].id, BookingCreateRequest(ride_id=ride.id, seats=2))
        second = await world.bookings.create_booking(riders[1].id, BookingCreateRequest(ride_id=ride.id, seats=1))
        await world.payments.create_order(riders[0].id, PaymentOrderRequest(booking_id=first.id))

        cancelled = await world.rides.cancel_ride(driver.id, ride.id)

        assert cancelled.status == RideStatus.CANCELLED
        assert cancelled.available_seats == cancelled.total_seats
        for booking_id in (first.id, second.id):
            assert store.bookings[booking_id].status == BookingStatus.CANCELLED
        assert all(p.status == PaymentStatus.FAILED for p in store.payments.values())

        event = world.bus.of_type(EventTypes.RIDE_CANCELLED)[0]
        assert sorted(event.payload["booking_ids"]) == sorted([first.id, second.id])
        assert world.bus.emails_to(riders[0].email)[-1]["subject"] == "Поездка отменена"

    @pytest.mark.asyncio
    async def test_second_cancel_is_terminal(self, world: SimpleNamespace, driver, ride) -> None:
        await world.rides.cancel_ride(driver.id, ride.id)
        with pytest.raises(AlreadyTerminalError):
            await world.rides.cancel_ride(driver.id, ride.id)

    @pytest.mark.asyncio
    async def test_foreign_ride(self, world: SimpleNamespace, passenger, ride) -> None:
        with pytest.raises(ForbiddenError):
            await world.rides.cancel_ride(passenger.id, ride.id)

    @pytest.mark.asyncio
    async def test_missing_ride(self, world: SimpleNamespace, driver) -> None:
        with pytest.raises(RideNotFoundError):
            await world.rides.cancel_ride(driver.id, 404)


class TestUpdateRide:
    """Тесты изменения поездки."""

    @pytest.mark.asyncio
    async def test_reschedule_notifies_passengers(self, world: SimpleNamespace, driver, passenger, ride) -> None:
        """Перенос даты уведомляет пассажиров с активными бронированиями."""
        await world.bookings.create_booking(passenger.id, BookingCreateRequest(ride_id=ride.id))

        updated = await world.rides.update_ride(
            driver.id, ride.id, RideUpdate(ride_date=date(2030, 1, 20), reason="погода")
        )

        assert updated.ride_date == date(2030, 1, 20)
        email = world.bus.emails_to(passenger.email)[-1]
        assert email["subject"] == "Поездка перенесена"
        assert "погода" in email["body"]
        assert world.bus.of_type(EventTypes.RIDE_RESCHEDULED)[0].payload["ride_date"] == "2030-01-20"

    @pytest.mark.asyncio
    async def test_notes_change_is_silent(self, world: SimpleNamespace, driver, passenger, ride) -> None:
        await world.bookings.create_booking(passenger.id, BookingCreateRequest(ride_id=ride.id))
        emails_before = len(world.bus.emails_to(passenger.email))

        updated = await world.rides.update_ride(driver.id, ride.id, RideUpdate(notes="Багаж до 10 кг"))

        assert updated.notes == "Багаж до 10 кг"
        assert len(world.bus.emails_to(passenger.email)) == emails_before
        assert world.bus.of_type(EventTypes.RIDE_RESCHEDULED) == []

    @pytest.mark.asyncio
    async def test_empty_update(self, world: SimpleNamespace, driver, ride) -> None:
        with pytest.raises(InvalidRequestError):
            await world.rides.update_ride(driver.id, ride.id, RideUpdate(reason="просто так"))

    @pytest.mark.asyncio
    async def test_only_scheduled(self, world: SimpleNamespace, driver, ride) -> None:
        await world.rides.start_ride(driver.id, ride.id)
        with pytest.raises(InvalidStateError):
            await world.rides.update_ride(driver.id, ride.id, RideUpdate(notes="x"))


class TestRideLifecycle:
    """Тесты старта и завершения."""

    @pytest.mark.asyncio
    async def test_complete_settles_bookings(self, world: SimpleNamespace, store, driver, ride) -> None:
        """Оплаченные бронирования завершаются, неоплаченные отменяются с возвратом мест."""
        paid_rider, unpaid_rider = store.add_user("Paid"), store.add_user("Unpaid")
        paid = await world.bookings.create_booking(paid_rider.id, BookingCreateRequest(ride_id=ride.id, seats=2))
        unpaid = await world.bookings.create_booking(unpaid_rider.id, BookingCreateRequest(ride_id=ride.id))
        await world.bookings.confirm_booking(driver.id, paid.id)

        await world.rides.start_ride(driver.id, ride.id)
        completed = await world.rides.complete_ride(driver.id, ride.id)

        assert completed.status == RideStatus.COMPLETED
        assert store.bookings[paid.id].status == BookingStatus.COMPLETED
        assert store.bookings[unpaid.id].status == BookingStatus.CANCELLED
        assert completed.available_seats == 2
        assert store.users[driver.id].total_rides == 1
        assert world.bus.of_type(EventTypes.RIDE_COMPLETED)[0].payload["completed_booking_ids"] == [paid.id]
        assert world.bus.emails_to(paid_rider.email)[-1]["subject"] == "Поездка завершена"

    @pytest.mark.asyncio
    async def test_cannot_start_twice(self, world: SimpleNamespace, driver, ride) -> None:
        started = await world.rides.start_ride(driver.id, ride.id)
        assert started.status == RideStatus.ONGOING
        with pytest.raises(InvalidStateError):
            await world.rides.start_ride(driver.id, ride.id)

    @pytest.mark.asyncio
    async def test_completed_ride_cannot_be_cancelled(self, world: SimpleNamespace, driver, ride) -> None:
        await world.rides.complete_ride(driver.id, ride.id)
        with pytest.raises(AlreadyTerminalError):
            await world.rides.cancel_ride(driver.id, ride.id)

    @pytest.mark.asyncio
    async def test_rides_by_driver_hides_cancelled(self, world: SimpleNamespace, store, driver, ride) -> None:
        store.add_ride(driver.id, status=RideStatus.CANCELLED)
        assert [r.id for r in await world.rides.get_rides_by_driver(driver.id)] == [ride.id]
