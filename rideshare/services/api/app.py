# rideshare/services/api/app.py
"""
FastAPI приложение rideshare.

Endpoints (префикс /api/v1):
- /rides     - публикация, поиск, изменение, старт, завершение, отмена
- /bookings  - бронирование, подтверждение, отмена, списки
- /payments  - заказ в шлюзе, callback, история, кошелёк, выплата водителю
- /reviews   - отзывы и рейтинг водителей
- /health    - проверка здоровья
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from rideshare.common.exceptions import (
    ConflictError,
    DomainError,
    ForbiddenError,
    InsufficientSeatsError,
    InvalidRequestError,
    InvalidStateError,
    NotFoundError,
    PaymentGatewayError,
    SignatureMismatchError,
)
from rideshare.common.logger import log_error, log_warning
from rideshare.services.api.dependencies import cleanup_dependencies, init_dependencies
from rideshare.services.api.routes import routers


# === RESPONSE MODELS ===

class ErrorResponse(BaseModel):
    """Стандартный ответ с ошибкой."""
    error_code: str
    message: str
    details: dict[str, Any] | None = None


class HealthStatus(BaseModel):
    """Статус здоровья сервиса."""
    service: str
    status: str = "healthy"  # healthy, degraded
    version: str | None = None
    dependencies: dict[str, str] = Field(default_factory=dict)


# Порядок важен: подклассы проверяются раньше базовых классов
_STATUS_BY_ERROR: tuple[tuple[type[DomainError], int], ...] = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (InsufficientSeatsError, status.HTTP_409_CONFLICT),
    (InvalidStateError, status.HTTP_409_CONFLICT),
    (ConflictError, status.HTTP_409_CONFLICT),
    (SignatureMismatchError, status.HTTP_400_BAD_REQUEST),
    (InvalidRequestError, status.HTTP_400_BAD_REQUEST),
    (PaymentGatewayError, status.HTTP_502_BAD_GATEWAY),
)


def status_for(exc: DomainError) -> int:
    for error_class, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_class):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


# === LIFESPAN ===

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Жизненный цикл приложения."""
    from rideshare.infra.database import close_db, get_db, init_db
    from rideshare.infra.event_bus import close_event_bus, get_event_bus, init_event_bus
    from rideshare.infra.redis_client import close_redis, get_redis, init_redis

    # Startup
    await init_db()
    await init_redis()
    await init_event_bus()

    await init_dependencies(get_db(), get_redis(), get_event_bus())

    yield

    # Shutdown
    await cleanup_dependencies()
    await close_event_bus()
    await close_redis()
    await close_db()


# === APP ===

def create_app(use_lifespan: bool = True) -> FastAPI:
    """
    Создаёт приложение.

    Args:
        use_lifespan: Подключать ли инфраструктуру при старте (False в тестах)
    """
    from rideshare.config import settings

    application = FastAPI(
        title=settings.system.PROJECT_NAME,
        description="Публикация поездок, бронирование мест, оплата и выплаты водителям.",
        version=settings.system.VERSION,
        lifespan=lifespan if use_lifespan else None,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    for router in routers:
        application.include_router(router, prefix=settings.api.API_PREFIX)

    @application.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
        code = status_for(exc)
        body = ErrorResponse(error_code=type(exc).__name__, message=exc.message)

        if isinstance(exc, InsufficientSeatsError):
            body.details = {"remaining": exc.remaining}
        elif isinstance(exc, InvalidStateError) and exc.current_status is not None:
            body.details = {"current_status": exc.current_status}

        if code >= 500:
            await log_error(f"{request.method} {request.url.path}: {exc.message}", exc_info=exc)
        else:
            await log_warning(f"{request.method} {request.url.path} -> {code}: {exc.message}")
        return JSONResponse(status_code=code, content=body.model_dump(exclude_none=True))

    @application.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        await log_error(f"Необработанная ошибка {request.method} {request.url.path}: {exc}", exc_info=exc)
        body = ErrorResponse(error_code="InternalError", message="Внутренняя ошибка сервера")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=body.model_dump(exclude_none=True),
        )

    @application.get("/health", response_model=HealthStatus, tags=["Health"])
    async def health_check() -> HealthStatus:
        """Проверка здоровья сервиса и его зависимостей."""
        from rideshare.infra.database import get_db
        from rideshare.infra.event_bus import get_event_bus
        from rideshare.infra.redis_client import get_redis

        checks = {
            "postgres": await get_db().health_check(),
            "redis": await get_redis().health_check(),
            "rabbitmq": await get_event_bus().health_check(),
        }
        return HealthStatus(
            service="rideshare_api",
            status="healthy" if all(checks.values()) else "degraded",
            version=settings.system.VERSION,
            dependencies={name: "healthy" if ok else "unhealthy" for name, ok in checks.items()},
        )

    return application


app = create_app()
