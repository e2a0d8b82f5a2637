# tests/conftest.py
"""
Общие фикстуры и настройки для тестов.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from src.config.loader import Settings
from src.core.presence.coordinator import BroadcastCoordinator
from src.core.presence.registry import ConnectionRegistry
from src.core.presence.transport import Transport
from src.shared.models.location import ConnectionId


# =============================================================================
# ФИКСТУРЫ КОНФИГУРАЦИИ
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Корневая директория проекта."""
    return Path(__file__).parent.parent


@pytest.fixture
def mock_config() -> dict[str, Any]:
    """Мок конфигурации для тестов."""
    return {
        "_comment_system": "комментарий",
        "PROJECT_NAME": "geo_presence_test",
        "VERSION": "1.0.0-test",
        "DEBUG": True,
        "LOG_LEVEL": "DEBUG",
        "ENVIRONMENT": "test",
        "REALTIME_WS_HOST": "127.0.0.1",
        "REALTIME_WS_PORT": 3100,
        "LOG_TO_FILE": False,
        "LOG_FILE_PATH": "logs/test.log",
        "LOG_FORMAT": "json",
        "LOG_MAX_BYTES": 1024,
        "LOG_BACKUP_COUNT": 2,
        "SEND_QUEUE_SIZE": 4,
        "SEND_TIMEOUT_SECONDS": 1.5,
        "SLOW_CLIENT_POLICY": "disconnect",
        "REJECT_MALFORMED": False,
        "STALE_AFTER_SECONDS": 120,
        "STALE_SWEEP_INTERVAL_SECONDS": 10,
        "ALLOWED_ORIGINS": ["http://localhost:8080"],
    }


@pytest.fixture
def temp_config_file(tmp_path: Path, mock_config: dict[str, Any]) -> Path:
    """Создаёт временный файл конфигурации."""
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps(mock_config, ensure_ascii=False, indent=2))
    return config_file


@pytest.fixture
def test_settings() -> Settings:
    """Настройки по умолчанию без файла конфигурации."""
    return Settings()


# =============================================================================
# ФИКСТУРЫ ПРИСУТСТВИЯ
# =============================================================================

class RecordingTransport(Transport):
    """Транспорт, который запоминает сообщения вместо отправки."""

    def __init__(self) -> None:
        self.outbox: dict[ConnectionId, list[dict[str, Any]]] = {}
        self.failing: set[ConnectionId] = set()

    def attach(self, connection_id: ConnectionId) -> None:
        self.outbox.setdefault(connection_id, [])

    def detach(self, connection_id: ConnectionId) -> None:
        self.outbox.pop(connection_id, None)

    def send(self, connection_id: ConnectionId, message: dict[str, Any]) -> bool:
        if connection_id not in self.outbox or connection_id in self.failing:
            return False
        self.outbox[connection_id].append(message)
        return True

    def broadcast(self, message: dict[str, Any]) -> int:
        return sum(1 for connection_id in list(self.outbox) if self.send(connection_id, message))

    def connection_ids(self) -> list[ConnectionId]:
        return list(self.outbox)

    def messages(self, connection_id: ConnectionId, type_: str | None = None) -> list[dict[str, Any]]:
        """Сообщения клиента, опционально отфильтрованные по типу."""
        items = self.outbox.get(connection_id, [])
        if type_ is None:
            return list(items)
        return [m for m in items if m.get("type") == type_]

    def last_users(self, connection_id: ConnectionId) -> dict[str, dict[str, Any]]:
        """Последний полученный клиентом список пользователей по id."""
        snapshots = self.messages(connection_id, "updateUsers")
        assert snapshots, f"{connection_id} не получил ни одного снимка"
        return {user["id"]: user for user in snapshots[-1]["users"]}


@pytest.fixture
def registry() -> ConnectionRegistry:
    """Пустой реестр."""
    return ConnectionRegistry()


@pytest.fixture
def transport() -> RecordingTransport:
    """Записывающий транспорт."""
    return RecordingTransport()


@pytest.fixture
def coordinator(registry: ConnectionRegistry, transport: RecordingTransport) -> BroadcastCoordinator:
    """Координатор поверх реестра и записывающего транспорта."""
    return BroadcastCoordinator(registry, transport)
