# src/services/realtime_ws/app.py
"""
FastAPI приложение для Realtime WebSocket Gateway.

WebSocket endpoints:
- /ws — отчёты о локации от клиента и рассылка снимков всем

REST endpoints:
- GET /health — проверка здоровья
- GET /stats — статистика соединений и рассылок
- GET /api/v1/users — текущий снимок
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import Depends, FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from src.common.constants import TypeMsg
from src.common.logger import log_error, log_info, setup_logging
from src.config.loader import Settings
from src.core.presence import build_snapshot_message
from src.services.realtime_ws.dependencies import (
    PresenceRuntime,
    close_runtime,
    get_runtime,
    init_runtime,
)
from src.shared.models.common import ErrorResponse, HealthStatus, StatsResponse
from src.shared.models.location import UsersResponse


SERVICE_NAME = "realtime_ws_gateway"


def create_app(app_settings: Settings | None = None) -> FastAPI:
    """
    Создать приложение.

    Args:
        app_settings: Настройки (по умолчанию — глобальные из config.json)
    """
    if app_settings is None:
        from src.config import settings as app_settings

    started_at = time.monotonic()

    # === LIFESPAN ===

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Жизненный цикл приложения."""
        setup_logging()
        await log_info("Realtime WS Gateway запускается...", type_msg=TypeMsg.INFO)

        app.state.runtime = await init_runtime(app_settings)

        yield

        await close_runtime(app.state.runtime)
        app.state.runtime = None
        await log_info("Realtime WS Gateway остановлен", type_msg=TypeMsg.INFO)

    # === APP ===

    app = FastAPI(
        title="Realtime Presence Gateway",
        description="WebSocket сервис: клиенты присылают координаты и видят всех подключённых.",
        version=app_settings.system.VERSION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.presence.ALLOWED_ORIGINS,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    # === HEALTH CHECK ===

    @app.get("/health", response_model=HealthStatus, tags=["Health"])
    async def health_check() -> HealthStatus:
        """Проверка здоровья сервиса."""
        return HealthStatus(
            status="healthy",
            service=SERVICE_NAME,
            version=app_settings.system.VERSION,
            uptime_seconds=round(time.monotonic() - started_at, 3),
        )

    # === STATS ===

    @app.get(
        "/stats",
        response_model=StatsResponse,
        tags=["Stats"],
        responses={503: {"model": ErrorResponse, "description": "Сервис не инициализирован"}},
    )
    async def get_stats(runtime: PresenceRuntime = Depends(get_runtime)) -> StatsResponse:
        """Получить статистику соединений."""
        return StatsResponse(
            **runtime.manager.get_stats(),
            **runtime.coordinator.get_stats(),
        )

    # === SNAPSHOT ===

    @app.get(
        "/api/v1/users",
        response_model=UsersResponse,
        tags=["Presence"],
        responses={503: {"model": ErrorResponse, "description": "Сервис не инициализирован"}},
    )
    async def get_users(runtime: PresenceRuntime = Depends(get_runtime)) -> UsersResponse:
        """Текущий снимок: все подключённые клиенты с известной локацией."""
        message = build_snapshot_message(runtime.registry.snapshot())
        return UsersResponse(version=message["version"], users=message["users"])

    # === WEBSOCKET ===

    @app.websocket("/ws")
    async def websocket_presence(websocket: WebSocket) -> None:
        """
        WebSocket клиента.

        Исходящие сообщения:
        - {"type": "welcome", "id": "..."}
        - {"type": "updateUsers", "version": n, "users": [...]}
        - {"type": "pong"}
        - {"type": "error", "code": "...", "detail": "..."}

        Входящие сообщения:
        - {"latitude": 50.45, "longitude": 30.52, "accuracy": 12.0}
        - {"action": "location", "latitude": 50.45, "longitude": 30.52}
        - {"event": "updateLocation", "data": {"latitude": 50.45, "longitude": 30.52}}
        - {"action": "ping"}
        """
        runtime = get_runtime(websocket)
        manager = runtime.manager
        coordinator = runtime.coordinator

        session = await manager.connect(websocket)
        try:
            await coordinator.on_connect(session.connection_id)
            await manager.serve(session, coordinator.on_message)
        except Exception as e:
            await log_error(
                f"Ошибка соединения {session.connection_id}: {e}",
                logger_name="realtime_ws",
                exc_info=True,
            )
        finally:
            # Ровно одно удаление из реестра на сессию, в том числе при аварийном разрыве
            await coordinator.on_disconnect(session.connection_id)
            await manager.disconnect(session.connection_id)

    return app


app = create_app()
