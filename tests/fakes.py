# tests/fakes.py
"""
In-memory хранилище и репозитории для тестов сервисов.

FakeDatabase.transaction() сериализует транзакции общей блокировкой
(аналог блокировок строк) и откатывает хранилище при исключении.
Методы репозиториев повторяют сигнатуры настоящих репозиториев.
"""

from __future__ import annotations

import asyncio
import copy
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Any, AsyncGenerator, Optional

from rideshare.common.constants import (
    BookingStatus,
    DriverPaymentStatus,
    PaymentStatus,
    PaymentType,
    RideStatus,
    UserRole,
)
from rideshare.common.exceptions import DuplicateReviewError, RideNotFoundError
from rideshare.common.money import round_money
from rideshare.core.bookings.models import Booking
from rideshare.core.payments.models import Payment
from rideshare.core.reviews.models import Review
from rideshare.core.rides.models import Ride
from rideshare.core.users.models import User

_ACTIVE = (BookingStatus.PENDING, BookingStatus.CONFIRMED)
_UPDATABLE = ("ride_date", "ride_time", "vehicle_model", "notes")

GATEWAY_KEY_ID = "rzp_test_key"
GATEWAY_SECRET = "rzp_test_secret"
GATEWAY_URL = "https://gateway.test/v1"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class InMemoryStore:
    users: dict[int, User] = field(default_factory=dict)
    rides: dict[int, Ride] = field(default_factory=dict)
    bookings: dict[int, Booking] = field(default_factory=dict)
    payments: dict[int, Payment] = field(default_factory=dict)
    reviews: dict[int, Review] = field(default_factory=dict)
    next_id: int = 1

    def new_id(self) -> int:
        value = self.next_id
        self.next_id += 1
        return value

    def add_user(
        self,
        name: str,
        role: UserRole = UserRole.PASSENGER,
        is_approved: bool = False,
        wallet_balance: float = 0.0,
    ) -> User:
        user = User(
            id=self.new_id(),
            name=name,
            email=f"{name.lower()}@example.com",
            role=role,
            is_approved=is_approved,
            wallet_balance=wallet_balance,
        )
        self.users[user.id] = user
        return user

    def add_ride(
        self,
        driver_id: int,
        source: str = "Pune",
        destination: str = "Mumbai",
        seats: int = 4,
        total_distance: float = 150.0,
        base_fare: float = 50.0,
        rate_per_km: float = 5.0,
        ride_date: date = date(2030, 1, 15),
        ride_time: time = time(9, 30),
        status: RideStatus = RideStatus.SCHEDULED,
    ) -> Ride:
        ride = Ride(
            id=self.new_id(),
            driver_id=driver_id,
            source=source,
            destination=destination,
            ride_date=ride_date,
            ride_time=ride_time,
            available_seats=seats,
            total_seats=seats,
            base_fare=base_fare,
            rate_per_km=rate_per_km,
            total_distance=total_distance,
            estimated_fare=round_money(base_fare + rate_per_km * total_distance),
            status=status,
        )
        self.rides[ride.id] = ride
        return ride

    def seats_held(self, ride_id: int) -> int:
        return sum(
            b.number_of_seats for b in self.bookings.values()
            if b.ride_id == ride_id and b.status in _ACTIVE
        )


class FakeDatabase:
    """Заменитель DatabaseManager: транзакции над InMemoryStore."""

    def __init__(self, store: InMemoryStore) -> None:
        self.store = store
        self._lock = asyncio.Lock()
        self.transactions = 0
        self.rollbacks = 0

    @asynccontextmanager
    async def transaction(self, isolation: str = "read_committed") -> AsyncGenerator[object, None]:
        async with self._lock:
            snapshot = copy.deepcopy(self.store.__dict__)
            self.transactions += 1
            try:
                yield object()
            except BaseException:
                self.store.__dict__.update(snapshot)
                self.rollbacks += 1
                raise


# =============================================================================
# РЕПОЗИТОРИИ
# =============================================================================

class _FakeRepo:
    def __init__(self, db: FakeDatabase) -> None:
        self._db = db

    @property
    def store(self) -> InMemoryStore:
        return self._db.store


class FakeUserRepository(_FakeRepo):
    async def get_by_id(self, user_id: int, conn: Any = None, for_update: bool = False) -> Optional[User]:
        user = self.store.users.get(user_id)
        return user.model_copy() if user else None

    async def credit_wallet(self, user_id: int, amount: float, conn: Any = None) -> float:
        user = self.store.users[user_id]
        user.wallet_balance = round_money(user.wallet_balance + amount)
        return user.wallet_balance

    async def update_driver_rating(self, driver_id: int, rating: float, conn: Any = None) -> None:
        self.store.users[driver_id].driver_rating = rating

    async def increment_total_rides(self, driver_id: int, conn: Any = None) -> None:
        self.store.users[driver_id].total_rides += 1


class FakeRideRepository(_FakeRepo):
    async def get_by_id(self, ride_id: int, conn: Any = None) -> Optional[Ride]:
        ride = self.store.rides.get(ride_id)
        return ride.model_copy() if ride else None

    async def get_for_update(self, ride_id: int, conn: Any) -> Optional[Ride]:
        return await self.get_by_id(ride_id)

    async def search(self, ride_date: date, source: str | None = None, destination: str | None = None) -> list[Ride]:
        result = []
        for ride in self.store.rides.values():
            if ride.ride_date != ride_date or ride.status != RideStatus.SCHEDULED or ride.available_seats <= 0:
                continue
            if source and source.lower() not in ride.source.lower():
                continue
            if destination and destination.lower() not in ride.destination.lower():
                continue
            driver = self.store.users.get(ride.driver_id)
            result.append(ride.model_copy(update={"driver_rating": driver.driver_rating if driver else None}))
        return sorted(result, key=lambda r: (r.ride_date, r.ride_time), reverse=True)

    async def list_by_driver(self, driver_id: int) -> list[Ride]:
        return [
            r.model_copy() for r in self.store.rides.values()
            if r.driver_id == driver_id and r.status != RideStatus.CANCELLED
        ]

    async def create(
        self,
        driver_id: int,
        source: str,
        destination: str,
        ride_date: date,
        ride_time: Any,
        seats: int,
        base_fare: float,
        rate_per_km: float,
        total_distance: float,
        estimated_fare: float,
        vehicle_model: str | None = None,
        notes: str | None = None,
        conn: Any = None,
    ) -> Ride:
        ride = Ride(
            id=self.store.new_id(),
            driver_id=driver_id,
            source=source,
            destination=destination,
            ride_date=ride_date,
            ride_time=ride_time,
            available_seats=seats,
            total_seats=seats,
            base_fare=base_fare,
            rate_per_km=rate_per_km,
            total_distance=total_distance,
            estimated_fare=estimated_fare,
            vehicle_model=vehicle_model,
            notes=notes,
        )
        self.store.rides[ride.id] = ride
        return ride.model_copy()

    async def reserve_seats(self, ride_id: int, seats: int, conn: Any) -> Optional[int]:
        await asyncio.sleep(0)
        ride = self.store.rides.get(ride_id)
        if ride is None or ride.status != RideStatus.SCHEDULED or ride.available_seats < seats:
            return None
        ride.available_seats -= seats
        return ride.available_seats

    async def release_seats(self, ride_id: int, seats: int, conn: Any) -> Optional[int]:
        ride = self.store.rides[ride_id]
        ride.available_seats = min(ride.total_seats, ride.available_seats + seats)
        return ride.available_seats

    async def update_status(self, ride_id: int, status: RideStatus, conn: Any = None) -> None:
        self.store.rides[ride_id].status = status

    async def cancel(self, ride_id: int, conn: Any) -> None:
        ride = self.store.rides[ride_id]
        ride.status = RideStatus.CANCELLED
        ride.available_seats = ride.total_seats

    async def apply_update(self, ride_id: int, changes: dict[str, Any], conn: Any) -> Ride:
        ride = self.store.rides.get(ride_id)
        if ride is None:
            raise RideNotFoundError(ride_id)
        for key, value in changes.items():
            if key in _UPDATABLE:
                setattr(ride, key, value)
        return ride.model_copy()


class FakeBookingRepository(_FakeRepo):
    def _joined(self, booking: Booking) -> Booking:
        ride = self.store.rides[booking.ride_id]
        return booking.model_copy(
            update={"driver_id": ride.driver_id, "ride_date": ride.ride_date, "ride_time": ride.ride_time}
        )

    def _select(self, predicate) -> list[Booking]:
        return [self._joined(b) for b in self.store.bookings.values() if predicate(b)]

    async def get_by_id(self, booking_id: int, conn: Any = None) -> Optional[Booking]:
        booking = self.store.bookings.get(booking_id)
        return self._joined(booking) if booking else None

    async def get_for_update(self, booking_id: int, conn: Any) -> Optional[Booking]:
        return await self.get_by_id(booking_id)

    async def list_by_passenger(self, passenger_id: int) -> list[Booking]:
        return self._select(lambda b: b.passenger_id == passenger_id)

    async def list_by_ride(self, ride_id: int, conn: Any = None) -> list[Booking]:
        return self._select(lambda b: b.ride_id == ride_id)

    async def list_by_driver(self, driver_id: int) -> list[Booking]:
        return self._select(lambda b: self.store.rides[b.ride_id].driver_id == driver_id)

    async def list_active_by_ride(self, ride_id: int, conn: Any = None) -> list[Booking]:
        return self._select(lambda b: b.ride_id == ride_id and b.status in _ACTIVE)

    async def exists_active(self, ride_id: int, passenger_id: int, conn: Any = None) -> bool:
        return any(
            b.ride_id == ride_id and b.passenger_id == passenger_id and b.status in _ACTIVE
            for b in self.store.bookings.values()
        )

    async def list_stale_pending(self, created_before: datetime, limit: int = 100) -> list[Booking]:
        stale = self._select(lambda b: b.status == BookingStatus.PENDING and b.created_at < created_before)
        return sorted(stale, key=lambda b: b.created_at)[:limit]

    async def create(
        self,
        ride_id: int,
        passenger_id: int,
        pickup_location: str,
        dropoff_location: str,
        distance_covered: float,
        fare_amount: float,
        number_of_seats: int,
        conn: Any,
    ) -> Booking:
        booking = Booking(
            id=self.store.new_id(),
            ride_id=ride_id,
            passenger_id=passenger_id,
            pickup_location=pickup_location,
            dropoff_location=dropoff_location,
            distance_covered=distance_covered,
            fare_amount=fare_amount,
            number_of_seats=number_of_seats,
            status=BookingStatus.PENDING,
        )
        self.store.bookings[booking.id] = booking
        return booking.model_copy()

    async def update_status(self, booking_id: int, status: BookingStatus, conn: Any = None) -> None:
        booking = self.store.bookings[booking_id]
        booking.status = status
        booking.updated_at = _now()

    async def _bulk(self, ride_id: int, from_statuses: tuple, to_status: BookingStatus) -> list[Booking]:
        changed = []
        for booking in self.store.bookings.values():
            if booking.ride_id == ride_id and booking.status in from_statuses:
                booking.status = to_status
                changed.append(booking.model_copy())
        return changed

    async def cancel_active_by_ride(self, ride_id: int, conn: Any) -> list[Booking]:
        return await self._bulk(ride_id, _ACTIVE, BookingStatus.CANCELLED)

    async def cancel_pending_by_ride(self, ride_id: int, conn: Any) -> list[Booking]:
        return await self._bulk(ride_id, (BookingStatus.PENDING,), BookingStatus.CANCELLED)

    async def complete_confirmed_by_ride(self, ride_id: int, conn: Any) -> list[Booking]:
        return await self._bulk(ride_id, (BookingStatus.CONFIRMED,), BookingStatus.COMPLETED)


class FakePaymentRepository(_FakeRepo):
    async def get_by_order_id(self, order_id: str, conn: Any = None, for_update: bool = False) -> Optional[Payment]:
        for payment in self.store.payments.values():
            if payment.gateway_order_id == order_id:
                return payment.model_copy()
        return None

    async def get_booking_payment(
        self, booking_id: int, conn: Any = None, for_update: bool = False
    ) -> Optional[Payment]:
        candidates = [
            p for p in self.store.payments.values()
            if p.booking_id == booking_id and p.payment_type == PaymentType.BOOKING
        ]
        if not candidates:
            return None
        candidates.sort(key=lambda p: (p.status == PaymentStatus.SUCCESS, p.id), reverse=True)
        return candidates[0].model_copy()

    async def list_by_passenger(self, passenger_id: int) -> list[Payment]:
        return [p.model_copy() for p in self.store.payments.values() if p.passenger_id == passenger_id]

    async def list_by_driver(self, driver_id: int) -> list[Payment]:
        return [
            p.model_copy() for p in self.store.payments.values()
            if p.driver_id == driver_id and p.status == PaymentStatus.SUCCESS
        ]

    async def driver_earnings(self, driver_id: int) -> tuple[float, float]:
        successful = await self.list_by_driver(driver_id)
        transferred = sum(p.amount for p in successful if p.driver_payment_status == DriverPaymentStatus.COMPLETED)
        pending = sum(p.amount for p in successful if p.driver_payment_status == DriverPaymentStatus.PENDING)
        return transferred, pending

    async def create(
        self,
        booking_id: int,
        passenger_id: int,
        driver_id: int,
        gateway_order_id: str,
        amount: float,
        currency: str,
        conn: Any = None,
    ) -> Payment:
        payment = Payment(
            id=self.store.new_id(),
            booking_id=booking_id,
            passenger_id=passenger_id,
            driver_id=driver_id,
            gateway_order_id=gateway_order_id,
            amount=amount,
            currency=currency,
        )
        self.store.payments[payment.id] = payment
        return payment.model_copy()

    async def mark_success(self, payment_id: int, gateway_payment_id: str, signature: str, conn: Any) -> Payment:
        payment = self.store.payments[payment_id]
        payment.status = PaymentStatus.SUCCESS
        payment.gateway_payment_id = gateway_payment_id
        payment.gateway_signature = signature
        return payment.model_copy()

    async def mark_failed(self, payment_id: int, conn: Any = None) -> bool:
        payment = self.store.payments[payment_id]
        if payment.status != PaymentStatus.PENDING:
            return False
        payment.status = PaymentStatus.FAILED
        return True

    async def fail_pending_by_booking(self, booking_id: int, conn: Any) -> int:
        count = 0
        for payment in self.store.payments.values():
            if payment.booking_id == booking_id and payment.status == PaymentStatus.PENDING:
                payment.status = PaymentStatus.FAILED
                count += 1
        return count

    async def mark_driver_paid(self, payment_id: int, conn: Any) -> bool:
        await asyncio.sleep(0)
        payment = self.store.payments[payment_id]
        if payment.status != PaymentStatus.SUCCESS or payment.driver_payment_status == DriverPaymentStatus.COMPLETED:
            return False
        payment.driver_payment_status = DriverPaymentStatus.COMPLETED
        payment.driver_payment_date = _now()
        return True


class FakeReviewRepository(_FakeRepo):
    async def create(
        self,
        booking_id: int,
        reviewer_id: int,
        reviewed_id: int,
        rating: int,
        comment: str | None,
        conn: Any = None,
    ) -> Review:
        if any(r.booking_id == booking_id for r in self.store.reviews.values()):
            raise DuplicateReviewError()
        review = Review(
            id=self.store.new_id(),
            booking_id=booking_id,
            reviewer_id=reviewer_id,
            reviewed_id=reviewed_id,
            rating=rating,
            comment=comment,
        )
        self.store.reviews[review.id] = review
        return review.model_copy()

    async def exists_for_booking(self, booking_id: int, conn: Any = None) -> bool:
        return any(r.booking_id == booking_id for r in self.store.reviews.values())

    async def average_for_driver(self, driver_id: int, conn: Any = None) -> float:
        ratings = [r.rating for r in self.store.reviews.values() if r.reviewed_id == driver_id]
        return sum(ratings) / len(ratings) if ratings else 0.0

    async def list_by_driver(self, driver_id: int) -> list[Review]:
        return [r.model_copy() for r in self.store.reviews.values() if r.reviewed_id == driver_id]


class RecordingEventBus:
    """Шина событий, запоминающая опубликованные события."""

    def __init__(self) -> None:
        self.events: list = []
        self.is_connected = True

    async def publish(self, event) -> bool:
        self.events.append(event)
        return True

    def of_type(self, event_type: str) -> list:
        return [e for e in self.events if e.event_type == event_type]

    def emails_to(self, address: str) -> list[dict]:
        return [
            e.payload for e in self.events
            if e.event_type == "notification.email" and e.payload.get("to") == address
        ]


class FakeRedis:
    """In-memory заменитель RedisClient (строки и pydantic модели)."""

    def __init__(self, connected: bool = True) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}
        self.is_connected = connected

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def set(self, key: str, value: str, ttl: int | None = None) -> bool:
        self.data[key] = value
        self.ttls[key] = ttl
        return True

    async def delete(self, *keys: str) -> int:
        return sum(1 for key in keys if self.data.pop(key, None) is not None)

    async def get_model(self, key: str, model_class):
        raw = self.data.get(key)
        return model_class.model_validate_json(raw) if raw is not None else None

    async def set_model(self, key: str, model, ttl: int | None = None) -> bool:
        return await self.set(key, model.model_dump_json(), ttl=ttl)

    async def health_check(self) -> bool:
        return self.is_connected
