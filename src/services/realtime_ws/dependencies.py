# src/services/realtime_ws/dependencies.py
"""
Зависимости для Realtime WebSocket Gateway.

Реестр, менеджер соединений и координатор создаются один раз при старте
приложения, хранятся в app.state и передаются явно.
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import HTTPException, status
from starlette.requests import HTTPConnection

from src.common.logger import log_info
from src.common.constants import TypeMsg
from src.config.loader import Settings
from src.core.presence import BroadcastCoordinator, ConnectionRegistry, StaleEntrySweeper
from src.services.realtime_ws.connection_manager import ConnectionManager


@dataclass
class PresenceRuntime:
    """Объекты сервиса присутствия, живущие всё время работы процесса."""
    registry: ConnectionRegistry
    manager: ConnectionManager
    coordinator: BroadcastCoordinator
    sweeper: StaleEntrySweeper | None = None


def build_runtime(settings: Settings) -> PresenceRuntime:
    """Собрать runtime из настроек."""
    presence = settings.presence

    registry = ConnectionRegistry()
    manager = ConnectionManager(
        queue_size=presence.SEND_QUEUE_SIZE,
        send_timeout=presence.SEND_TIMEOUT_SECONDS,
        slow_client_policy=presence.SLOW_CLIENT_POLICY,
    )
    coordinator = BroadcastCoordinator(
        registry,
        manager,
        reject_malformed=presence.REJECT_MALFORMED,
    )

    sweeper = None
    if presence.STALE_AFTER_SECONDS > 0:
        sweeper = StaleEntrySweeper(
            coordinator,
            max_age=presence.STALE_AFTER_SECONDS,
            interval=presence.STALE_SWEEP_INTERVAL_SECONDS,
        )

    return PresenceRuntime(
        registry=registry,
        manager=manager,
        coordinator=coordinator,
        sweeper=sweeper,
    )


async def init_runtime(settings: Settings) -> PresenceRuntime:
    """Создать и запустить runtime."""
    runtime = build_runtime(settings)
    if runtime.sweeper:
        await runtime.sweeper.start()

    await log_info("Реестр присутствия инициализирован", type_msg=TypeMsg.DEBUG)
    return runtime


async def close_runtime(runtime: PresenceRuntime) -> None:
    """Остановить фоновые задачи, закрыть соединения и очистить реестр."""
    if runtime.sweeper:
        await runtime.sweeper.stop()

    await runtime.manager.close_all()
    runtime.registry.clear()

    await log_info("Реестр присутствия закрыт", type_msg=TypeMsg.DEBUG)


def get_runtime(connection: HTTPConnection) -> PresenceRuntime:
    """FastAPI-зависимость: runtime текущего приложения (HTTP и WebSocket)."""
    runtime = getattr(connection.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Сервис присутствия не инициализирован",
        )
    return runtime
