#!/usr/bin/env python3
# main.py
"""
Точка входа rideshare.

    python main.py [api|worker|all]

api поднимает FastAPI под uvicorn, worker запускает сверку неоплаченных
бронирований, all делает и то и другое в одном процессе на общей
инфраструктуре. Без аргумента режим берётся из COMPONENT_MODE.
"""

from __future__ import annotations

import asyncio
import signal
import sys
from contextlib import asynccontextmanager
from typing import AsyncIterator, Coroutine

from rideshare.common.constants import TypeMsg
from rideshare.common.logger import log_error, log_info, setup_logging
from rideshare.config import settings
from rideshare.infra.database import close_db, get_db, init_db
from rideshare.infra.event_bus import close_event_bus, get_event_bus, init_event_bus
from rideshare.infra.redis_client import close_redis, get_redis, init_redis

MODES = {
    "api": "HTTP API (FastAPI + uvicorn)",
    "worker": "сверка неоплаченных бронирований",
    "all": "API и воркеры в одном процессе",
}


@asynccontextmanager
async def shared_infrastructure() -> AsyncIterator[None]:
    """PostgreSQL, Redis и RabbitMQ на время работы режима all."""
    await init_db()
    await init_redis()
    await init_event_bus()
    await log_info("Инфраструктура поднята", type_msg=TypeMsg.INFO)
    try:
        yield
    finally:
        # закрытие в обратном порядке; ошибка одного не мешает остальным
        for close in (close_event_bus, close_redis, close_db):
            try:
                await close()
            except Exception as e:
                await log_error(f"{close.__name__}: {e}")


async def serve_api(use_lifespan: bool) -> None:
    import uvicorn

    from rideshare.services.api.app import create_app

    cfg = settings.api
    server = uvicorn.Server(
        uvicorn.Config(
            create_app(use_lifespan=use_lifespan),
            host=cfg.API_HOST,
            port=cfg.API_PORT,
            log_level="debug" if settings.system.DEBUG else "info",
        )
    )
    await log_info(f"HTTP API: {cfg.API_HOST}:{cfg.API_PORT}{cfg.API_PREFIX}", type_msg=TypeMsg.INFO)
    try:
        await server.serve()
    except asyncio.CancelledError:
        await server.shutdown()


def _cancel_on_signal(tasks: list[asyncio.Task]) -> None:
    """SIGINT/SIGTERM отменяют запущенные задачи."""

    def cancel_all(sig: int) -> None:
        print(f"\nСигнал {sig}, останавливаемся...")
        for task in tasks:
            task.cancel()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, cancel_all, sig)
        except NotImplementedError:
            # Windows
            signal.signal(sig, lambda s, _frame: cancel_all(s))


async def _run(components: list[Coroutine]) -> None:
    tasks = [asyncio.create_task(c) for c in components]
    _cancel_on_signal(tasks)
    try:
        await asyncio.gather(*tasks)
    except asyncio.CancelledError:
        await log_info("Остановка по сигналу", type_msg=TypeMsg.INFO)
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


async def main(mode: str | None = None) -> None:
    setup_logging()

    mode = mode or settings.system.COMPONENT_MODE
    if mode not in MODES:
        await log_error(f"Неизвестный режим '{mode}', допустимы: {', '.join(MODES)}")
        return

    from rideshare.worker.runner import run_workers

    await log_info(f"rideshare v{settings.system.VERSION}, режим {mode}", type_msg=TypeMsg.INFO)
    try:
        if mode == "api":
            await _run([serve_api(use_lifespan=True)])
        elif mode == "worker":
            await _run([run_workers(init_infra=True)])
        else:
            from rideshare.services.api.dependencies import init_dependencies

            async with shared_infrastructure():
                await init_dependencies(get_db(), get_redis(), get_event_bus())
                await _run([serve_api(use_lifespan=False), run_workers(init_infra=False)])
    except Exception as e:
        await log_error(f"Критическая ошибка: {e}", exc_info=True)
        raise
    finally:
        await log_info("rideshare остановлен", type_msg=TypeMsg.INFO)


def _usage() -> str:
    lines = ["Использование: python main.py [mode]", "", "Режимы:"]
    lines += [f"    {name:<8} {description}" for name, description in MODES.items()]
    lines += ["", "Без аргумента используется COMPONENT_MODE из config/config.json."]
    return "\n".join(lines)


if __name__ == "__main__":
    arg = sys.argv[1].lower() if len(sys.argv) > 1 else None
    if arg in ("-h", "--help"):
        print(_usage())
        sys.exit(0)
    if arg is not None and arg not in MODES:
        print(f"Неизвестный режим '{arg}'\n\n{_usage()}")
        sys.exit(1)

    try:
        asyncio.run(main(arg))
    except KeyboardInterrupt:
        pass
