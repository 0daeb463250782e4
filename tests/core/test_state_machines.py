# tests/core/test_state_machines.py
"""
Тесты машин состояний поездки и бронирования.
"""

from __future__ import annotations

import pytest

from rideshare.common.constants import BookingStatus, RideStatus
from rideshare.common.exceptions import AlreadyTerminalError, InvalidStateError
from rideshare.core.bookings.state_machine import BookingStateMachine
from rideshare.core.rides.state_machine import RideStateMachine


class TestRideStateMachine:
    """Тесты переходов поездки."""

    @pytest.mark.parametrize(
        "current, new",
        [
            (RideStatus.SCHEDULED, RideStatus.ONGOING),
            (RideStatus.SCHEDULED, RideStatus.COMPLETED),
            (RideStatus.SCHEDULED, RideStatus.CANCELLED),
            (RideStatus.ONGOING, RideStatus.COMPLETED),
            (RideStatus.ONGOING, RideStatus.CANCELLED),
        ],
    )
    def test_allowed(self, current: RideStatus, new: RideStatus) -> None:
        assert RideStateMachine.can_transition(current, new) is True
        RideStateMachine.ensure_transition(current, new)

    def test_terminal_statuses(self) -> None:
        """Из COMPLETED и CANCELLED переходов нет."""
        for status in (RideStatus.COMPLETED, RideStatus.CANCELLED):
            assert RideStateMachine.is_terminal(status)
            with pytest.raises(AlreadyTerminalError):
                RideStateMachine.ensure_transition(status, RideStatus.CANCELLED)

    def test_backwards_transition(self) -> None:
        with pytest.raises(InvalidStateError) as exc_info:
            RideStateMachine.ensure_transition(RideStatus.ONGOING, RideStatus.SCHEDULED)
        assert exc_info.value.current_status == "ONGOING"
        assert not isinstance(exc_info.value, AlreadyTerminalError)

    def test_unknown_status(self) -> None:
        assert RideStateMachine.can_transition("FLYING", RideStatus.CANCELLED) is False


class TestBookingStateMachine:
    """Тесты переходов бронирования."""

    @pytest.mark.parametrize(
        "current, new, allowed",
        [
            (BookingStatus.PENDING, BookingStatus.CONFIRMED, True),
            (BookingStatus.PENDING, BookingStatus.CANCELLED, True),
            (BookingStatus.PENDING, BookingStatus.COMPLETED, False),
            (BookingStatus.CONFIRMED, BookingStatus.COMPLETED, True),
            (BookingStatus.CONFIRMED, BookingStatus.CANCELLED, True),
            (BookingStatus.CONFIRMED, BookingStatus.PENDING, False),
            (BookingStatus.CANCELLED, BookingStatus.CONFIRMED, False),
            (BookingStatus.COMPLETED, BookingStatus.CANCELLED, False),
        ],
    )
    def test_transitions(self, current: BookingStatus, new: BookingStatus, allowed: bool) -> None:
        assert BookingStateMachine.can_transition(current, new) is allowed

    def test_cancelled_is_terminal(self) -> None:
        """Повторная отмена сообщает о терминальном статусе."""
        with pytest.raises(AlreadyTerminalError) as exc_info:
            BookingStateMachine.ensure_transition(BookingStatus.CANCELLED, BookingStatus.CANCELLED)
        assert exc_info.value.current_status == "CANCELLED"

    def test_string_statuses_accepted(self) -> None:
        """Статусы из БД приходят строками."""
        assert BookingStateMachine.can_transition("PENDING", "CONFIRMED") is True
