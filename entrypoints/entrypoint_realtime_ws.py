#!/usr/bin/env python3
"""
Entrypoint шлюза присутствия для Docker.

Запуск:
    python entrypoints/entrypoint_realtime_ws.py

Адрес берётся из config.json; PORT и REALTIME_WS_HOST в окружении имеют приоритет.
"""

import sys
from pathlib import Path

# Корень проекта в sys.path для запуска скриптом
project_root = Path(__file__).parent.parent.resolve()
sys.path.insert(0, str(project_root))

import uvicorn

from src.config import settings


def main() -> None:
    # Фабрика: приложение создаётся в рабочем процессе uvicorn, в том числе при reload
    uvicorn.run(
        "src.services.realtime_ws.app:create_app",
        factory=True,
        host=settings.deployment.REALTIME_WS_HOST,
        port=settings.deployment.REALTIME_WS_PORT,
        reload=settings.system.DEBUG,
        log_level=settings.system.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
