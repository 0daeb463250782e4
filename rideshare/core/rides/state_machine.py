# rideshare/core/rides/state_machine.py
"""
Допустимые переходы статусов поездки.
"""

from __future__ import annotations

from rideshare.common.constants import RideStatus
from rideshare.common.exceptions import AlreadyTerminalError, InvalidStateError


class RideStateMachine:
    ALLOWED_TRANSITIONS = {
        RideStatus.SCHEDULED: [RideStatus.ONGOING, RideStatus.COMPLETED, RideStatus.CANCELLED],
        RideStatus.ONGOING: [RideStatus.COMPLETED, RideStatus.CANCELLED],
        RideStatus.COMPLETED: [],
        RideStatus.CANCELLED: [],
    }

    @staticmethod
    def can_transition(current_status: str, new_status: str) -> bool:
        try:
            curr = RideStatus(current_status)
            new = RideStatus(new_status)
            return new in RideStateMachine.ALLOWED_TRANSITIONS.get(curr, [])
        except ValueError:
            return False

    @staticmethod
    def is_terminal(status: str) -> bool:
        return not RideStateMachine.ALLOWED_TRANSITIONS.get(RideStatus(status))

    @staticmethod
    def ensure_transition(current_status: str, new_status: str) -> None:
        """Бросает доменное исключение, если переход запрещён."""
        if RideStateMachine.can_transition(current_status, new_status):
            return
        if RideStateMachine.is_terminal(current_status):
            raise AlreadyTerminalError("Поездка", RideStatus(current_status).value)
        raise InvalidStateError(
            f"Переход поездки {RideStatus(current_status).value} -> {RideStatus(new_status).value} недопустим",
            current_status=RideStatus(current_status).value,
        )
