# tests/core/test_stale_sweeper.py
"""
Тесты для фоновой очистки устаревших записей.
"""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest

from src.core.presence.coordinator import BroadcastCoordinator
from src.core.presence.registry import ConnectionRegistry
from src.core.presence.sweeper import StaleEntrySweeper
from src.shared.models.location import Location


class TestSweepOnce:
    """Тесты для sweep_once."""

    @pytest.mark.asyncio
    async def test_removes_stale_entries(self, transport) -> None:
        """Проход удаляет только устаревшие записи."""
        now = [0.0]
        registry = ConnectionRegistry(clock=lambda: now[0])
        coordinator = BroadcastCoordinator(registry, transport)
        for cid in ("old", "fresh"):
            transport.attach(cid)
            await coordinator.on_connect(cid)

        registry.upsert("old", Location(latitude=1, longitude=1))
        now[0] = 50.0
        registry.upsert("fresh", Location(latitude=2, longitude=2))
        now[0] = 70.0

        sweeper = StaleEntrySweeper(coordinator, max_age=60, interval=1)

        assert await sweeper.sweep_once() == 1
        assert registry.snapshot().ids() == {"fresh"}
        assert transport.last_users("fresh").keys() == {"fresh"}

    @pytest.mark.asyncio
    async def test_nothing_stale(self, coordinator: BroadcastCoordinator) -> None:
        """Пустой реестр: ничего не удаляется."""
        sweeper = StaleEntrySweeper(coordinator, max_age=60, interval=1)

        assert await sweeper.sweep_once() == 0


class TestLifecycle:
    """Тесты запуска и остановки."""

    @pytest.mark.asyncio
    async def test_start_stop(self, coordinator: BroadcastCoordinator) -> None:
        """start запускает задачу, stop её отменяет."""
        sweeper = StaleEntrySweeper(coordinator, max_age=60, interval=10)

        await sweeper.start()
        assert sweeper.is_running is True

        await sweeper.stop()
        assert sweeper.is_running is False

    @pytest.mark.asyncio
    async def test_start_twice_is_noop(self, coordinator: BroadcastCoordinator) -> None:
        """Повторный start не создаёт вторую задачу."""
        sweeper = StaleEntrySweeper(coordinator, max_age=60, interval=10)

        await sweeper.start()
        task = sweeper._task
        await sweeper.start()

        assert sweeper._task is task
        await sweeper.stop()

    @pytest.mark.asyncio
    async def test_stop_without_start(self, coordinator: BroadcastCoordinator) -> None:
        """stop без start безопасен."""
        sweeper = StaleEntrySweeper(coordinator, max_age=60, interval=10)

        await sweeper.stop()

        assert sweeper.is_running is False

    @pytest.mark.asyncio
    async def test_loop_runs_periodically(self) -> None:
        """Цикл вызывает очистку каждые interval секунд."""
        coordinator = MagicMock(spec=BroadcastCoordinator)
        coordinator.expire_stale.return_value = 0
        sweeper = StaleEntrySweeper(coordinator, max_age=60, interval=0.01)

        await sweeper.start()
        await asyncio.sleep(0.1)
        await sweeper.stop()

        assert coordinator.expire_stale.call_count >= 2
        coordinator.expire_stale.assert_called_with(60)

    @pytest.mark.asyncio
    async def test_loop_survives_errors(self) -> None:
        """Ошибка одного прохода не останавливает цикл."""
        coordinator = MagicMock(spec=BroadcastCoordinator)
        coordinator.expire_stale.side_effect = [RuntimeError("boom")] + [0] * 1000
        sweeper = StaleEntrySweeper(coordinator, max_age=60, interval=0.01)

        await sweeper.start()
        await asyncio.sleep(0.1)
        await sweeper.stop()

        assert coordinator.expire_stale.call_count >= 2
