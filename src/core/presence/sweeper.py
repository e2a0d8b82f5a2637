# src/core/presence/sweeper.py
"""
Фоновая очистка устаревших записей реестра.
"""

from __future__ import annotations

import asyncio

from src.common.constants import TypeMsg
from src.common.logger import log_error, log_info
from src.core.presence.coordinator import BroadcastCoordinator, LOGGER_NAME


class StaleEntrySweeper:
    """
    Периодически удаляет записи клиентов, которые давно не присылали локацию.

    Соединение при этом остаётся открытым: клиент продолжает получать снимки
    и вернётся в список со следующим отчётом.
    """

    def __init__(
        self,
        coordinator: BroadcastCoordinator,
        max_age: float,
        interval: float,
    ) -> None:
        """
        Args:
            coordinator: Координатор, через который удаляются записи и идёт рассылка
            max_age: Возраст отчёта в секундах, после которого запись устаревает
            interval: Период проверки в секундах
        """
        self._coordinator = coordinator
        self._max_age = max_age
        self._interval = interval
        self._task: asyncio.Task | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        """Запущена ли очистка."""
        return self._running

    async def start(self) -> None:
        """Запустить очистку."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._loop())
        await log_info(
            f"Очистка устаревших записей: старше {self._max_age}s, каждые {self._interval}s",
            logger_name=LOGGER_NAME,
        )

    async def stop(self) -> None:
        """Остановить очистку."""
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def sweep_once(self) -> int:
        """Один проход очистки. Возвращает количество удалённых записей."""
        expired = self._coordinator.expire_stale(self._max_age)
        if expired:
            await log_info(
                f"Удалено устаревших записей: {expired}",
                type_msg=TypeMsg.DEBUG,
                logger_name=LOGGER_NAME,
            )
        return expired

    async def _loop(self) -> None:
        """Цикл очистки."""
        while self._running:
            try:
                await asyncio.sleep(self._interval)
                await self.sweep_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                # Ошибка прохода не останавливает сервис
                await log_error(f"Ошибка очистки реестра: {e}", logger_name=LOGGER_NAME, exc_info=True)
