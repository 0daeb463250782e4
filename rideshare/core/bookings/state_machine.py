# rideshare/core/bookings/state_machine.py
"""
Допустимые переходы статусов бронирования.
"""

from __future__ import annotations

from rideshare.common.constants import BookingStatus
from rideshare.common.exceptions import AlreadyTerminalError, InvalidStateError


class BookingStateMachine:
    ALLOWED_TRANSITIONS = {
        BookingStatus.PENDING: [BookingStatus.CONFIRMED, BookingStatus.CANCELLED],
        BookingStatus.CONFIRMED: [BookingStatus.COMPLETED, BookingStatus.CANCELLED],
        BookingStatus.CANCELLED: [],
        BookingStatus.COMPLETED: [],
    }

    @staticmethod
    def can_transition(current_status: str, new_status: str) -> bool:
        try:
            curr = BookingStatus(current_status)
            new = BookingStatus(new_status)
            return new in BookingStateMachine.ALLOWED_TRANSITIONS.get(curr, [])
        except ValueError:
            return False

    @staticmethod
    def is_terminal(status: str) -> bool:
        return not BookingStateMachine.ALLOWED_TRANSITIONS.get(BookingStatus(status))

    @staticmethod
    def ensure_transition(current_status: str, new_status: str) -> None:
        if BookingStateMachine.can_transition(current_status, new_status):
            return
        current = BookingStatus(current_status).value
        if BookingStateMachine.is_terminal(current_status):
            raise AlreadyTerminalError("Бронирование", current)
        raise InvalidStateError(
            f"Переход бронирования {current} -> {BookingStatus(new_status).value} недопустим",
            current_status=current,
        )
