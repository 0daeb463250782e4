# rideshare/worker/base.py
"""
Базовый класс для периодических воркеров.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import List, Optional

from rideshare.common.constants import TypeMsg
from rideshare.common.logger import log_error, log_info


class BaseWorker(ABC):
    """
    Базовый класс для воркеров.
    Выполняет run_once() каждые interval секунд до остановки.
    """

    def __init__(self, interval: float) -> None:
        """
        Args:
            interval: Пауза между проходами (секунды)
        """
        self.interval = interval
        self._running = False
        self._tasks: List[asyncio.Task] = []

    @property
    @abstractmethod
    def name(self) -> str:
        """Имя воркера."""

    @abstractmethod
    async def run_once(self) -> int:
        """
        Один проход обработки.

        Returns:
            Количество обработанных записей
        """

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Запускает воркер."""
        if self._running:
            return

        self._running = True
        self._tasks.append(asyncio.create_task(self._loop(), name=f"worker:{self.name}"))
        await log_info(f"Воркер {self.name} запущен (интервал {self.interval} с)", type_msg=TypeMsg.INFO)

    async def stop(self) -> None:
        """Останавливает воркер."""
        if not self._running:
            return

        self._running = False

        # Отменяем все задачи
        for task in self._tasks:
            task.cancel()

        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        self._tasks.clear()
        await log_info(f"Воркер {self.name} остановлен", type_msg=TypeMsg.INFO)

    async def _loop(self) -> None:
        while self._running:
            await self._run_safely()
            await asyncio.sleep(self.interval)

    async def _run_safely(self) -> Optional[int]:
        """Проход, ошибка которого не останавливает воркер."""
        try:
            processed = await self.run_once()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await log_error(f"Ошибка в воркере {self.name}: {e}", exc_info=True)
            return None

        if processed:
            await log_info(f"Воркер {self.name}: обработано {processed}", type_msg=TypeMsg.DEBUG)
        return processed
