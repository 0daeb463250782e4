# rideshare/common/exceptions.py
"""
Доменные исключения.

Каждое исключение несёт сообщение, безопасное для показа клиенту.
HTTP-слой отображает базовые классы на коды ответа (см. services/api/app.py).
"""

from __future__ import annotations

from typing import Any


class DomainError(Exception):
    """Базовое доменное исключение."""

    default_message: str = "Ошибка обработки запроса"

    def __init__(self, message: str | None = None, **context: Any) -> None:
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)


# =============================================================================
# NOT FOUND
# =============================================================================

class NotFoundError(DomainError):
    """Сущность не найдена."""
    default_message = "Запись не найдена"


class RideNotFoundError(NotFoundError):
    def __init__(self, ride_id: int) -> None:
        super().__init__(f"Поездка не найдена: {ride_id}", ride_id=ride_id)


class BookingNotFoundError(NotFoundError):
    def __init__(self, booking_id: int) -> None:
        super().__init__(f"Бронирование не найдено: {booking_id}", booking_id=booking_id)


class PassengerNotFoundError(NotFoundError):
    def __init__(self, passenger_id: int) -> None:
        super().__init__(f"Пассажир не найден: {passenger_id}", passenger_id=passenger_id)


class DriverNotFoundError(NotFoundError):
    def __init__(self, driver_id: int) -> None:
        super().__init__(f"Водитель не найден: {driver_id}", driver_id=driver_id)


class PaymentRecordNotFoundError(NotFoundError):
    def __init__(self, reference: str | int) -> None:
        super().__init__(f"Платёж не найден: {reference}", reference=reference)


# =============================================================================
# FORBIDDEN
# =============================================================================

class ForbiddenError(DomainError):
    """Действие над чужим ресурсом."""
    default_message = "Это не ваш ресурс"


class NotApprovedError(ForbiddenError):
    """Аккаунт водителя ещё не одобрен."""
    default_message = "Аккаунт водителя ещё не одобрен"


# =============================================================================
# INVALID STATE
# =============================================================================

class InvalidStateError(DomainError):
    """Операция недопустима в текущем статусе."""

    def __init__(self, message: str | None = None, *, current_status: str | None = None) -> None:
        if message is None and current_status is not None:
            message = f"Операция недопустима в статусе {current_status}"
        super().__init__(message, current_status=current_status)
        self.current_status = current_status


class AlreadyTerminalError(InvalidStateError):
    """Сущность уже в терминальном статусе."""

    def __init__(self, entity: str, current_status: str) -> None:
        super().__init__(
            f"{entity} уже в терминальном статусе {current_status}",
            current_status=current_status,
        )


class InvalidBookingStateError(InvalidStateError):
    def __init__(self, current_status: str) -> None:
        super().__init__(
            f"Оплата возможна только для бронирований в статусе PENDING. Текущий статус: {current_status}",
            current_status=current_status,
        )


class BookingNotCompletedError(InvalidStateError):
    def __init__(self, current_status: str) -> None:
        super().__init__(
            f"Поездка должна быть завершена перед выплатой водителю. Текущий статус: {current_status}",
            current_status=current_status,
        )


class NotEligibleError(InvalidStateError):
    def __init__(self, current_status: str) -> None:
        super().__init__(
            f"Отзыв можно оставить только после завершения поездки. Текущий статус: {current_status}",
            current_status=current_status,
        )


# =============================================================================
# ПРОЧИЕ КЛИЕНТСКИЕ ОШИБКИ
# =============================================================================

class InsufficientSeatsError(DomainError):
    """Недостаточно свободных мест."""

    def __init__(self, requested: int, remaining: int) -> None:
        super().__init__(
            f"Недостаточно свободных мест. Осталось мест: {remaining}",
            requested=requested,
            remaining=remaining,
        )
        self.requested = requested
        self.remaining = remaining


class SignatureMismatchError(DomainError):
    """Подпись платежа не прошла проверку."""
    default_message = "Неверная подпись платежа"


class ConflictError(DomainError):
    """Повторная операция (идемпотентность)."""
    default_message = "Операция уже выполнена"


class AlreadyTransferredError(ConflictError):
    default_message = "Средства уже переведены водителю"


class DuplicateReviewError(ConflictError):
    default_message = "Отзыв на это бронирование уже оставлен"


class DuplicateBookingError(ConflictError):
    default_message = "Вы уже забронировали эту поездку"


class InvalidRequestError(DomainError):
    """Некорректные входные данные."""
    default_message = "Некорректный запрос"


# =============================================================================
# ВНЕШНИЕ СИСТЕМЫ
# =============================================================================

class PaymentGatewayError(DomainError):
    """Платёжный шлюз недоступен или вернул ошибку."""
    default_message = "Платёжный шлюз временно недоступен"
