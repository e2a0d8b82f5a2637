#!/usr/bin/env python3
# main.py
"""
Главная точка входа geo_presence.
Поднимает WebSocket шлюз присутствия и останавливает его по SIGINT/SIGTERM.
"""

from __future__ import annotations

import asyncio

import uvicorn

from src.config import settings
from src.common.logger import setup_logging, log_info
from src.common.constants import TypeMsg
from src.services.realtime_ws.app import create_app


async def run_realtime_ws_gateway() -> None:
    """Запускает шлюз присутствия на адресе из настроек."""
    host = settings.deployment.REALTIME_WS_HOST
    port = settings.deployment.REALTIME_WS_PORT

    config = uvicorn.Config(
        create_app(settings),
        host=host,
        port=port,
        log_level="debug" if settings.system.DEBUG else "info",
    )
    # uvicorn сам перехватывает SIGINT/SIGTERM и проходит lifespan shutdown
    server = uvicorn.Server(config)

    await log_info(f"Шлюз присутствия слушает ws://{host}:{port}/ws", type_msg=TypeMsg.INFO)
    await server.serve()


async def main() -> None:
    setup_logging()

    await log_info(
        f"{settings.system.PROJECT_NAME} v{settings.system.VERSION} ({settings.system.ENVIRONMENT})",
        type_msg=TypeMsg.INFO,
    )

    await run_realtime_ws_gateway()

    await log_info("Шлюз присутствия остановлен", type_msg=TypeMsg.INFO)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
