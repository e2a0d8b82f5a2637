# src/core/presence/transport.py
"""
Контракт транспорта, от которого зависит координатор рассылки.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from src.shared.models.location import ConnectionId


class Transport(ABC):
    """
    Двунаправленный канал сообщений, по одному на клиента.

    Реализация сама назначает ConnectionId при подключении и сообщает
    координатору о событиях connect/message/disconnect.
    Отправка не блокирует вызывающего: сообщение ставится в очередь соединения.
    """

    @abstractmethod
    def send(self, connection_id: ConnectionId, message: dict[str, Any]) -> bool:
        """
        Поставить сообщение в очередь одного соединения.

        Returns:
            False если соединение уже закрыто
        """

    @abstractmethod
    def broadcast(self, message: dict[str, Any]) -> int:
        """
        Поставить сообщение в очереди всех открытых соединений.
        Ошибка одного соединения не мешает остальным.

        Returns:
            Количество соединений, получивших сообщение в очередь
        """

    @abstractmethod
    def connection_ids(self) -> list[ConnectionId]:
        """Идентификаторы открытых соединений."""
