# src/core/presence/registry.py
"""
Реестр соединений: последняя известная локация каждого открытого соединения.
"""

from __future__ import annotations

import threading
import time
from typing import Callable

from src.shared.models.location import ConnectionId, Location, Snapshot, UserEntry


class ConnectionRegistry:
    """
    Реестр присутствия.

    Инварианты:
    - не более одной записи на ConnectionId;
    - запись существует только пока соединение открыто и прислало хотя бы один отчёт;
    - отчёт для закрытого или неизвестного соединения отклоняется (без "призрачных" записей).

    Все операции защищены одной блокировкой, которая держится только на время
    изменения или копирования. Порядок записей в снимке не определён.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._lock = threading.Lock()
        self._clock = clock

        # connection_id -> UserEntry
        self._entries: dict[ConnectionId, UserEntry] = {}
        # Открытые соединения (включая ещё не приславшие локацию)
        self._open: set[ConnectionId] = set()

        self._version: int = 0
        self._dirty: bool = False

    # === ЖИЗНЕННЫЙ ЦИКЛ СОЕДИНЕНИЯ ===

    def open(self, connection_id: ConnectionId) -> None:
        """Отметить соединение открытым. Запись не создаётся до первого отчёта."""
        with self._lock:
            self._open.add(connection_id)

    def is_open(self, connection_id: ConnectionId) -> bool:
        """Открыто ли соединение."""
        with self._lock:
            return connection_id in self._open

    # === ИЗМЕНЕНИЯ ===

    def upsert(self, connection_id: ConnectionId, location: Location) -> bool:
        """
        Вставить или заменить запись (last-write-wins, без слияния).

        Returns:
            True если отчёт принят, False если соединение не открыто
        """
        with self._lock:
            if connection_id not in self._open:
                return False

            self._entries[connection_id] = UserEntry(
                id=connection_id,
                location=location,
                updated_at=self._clock(),
            )
            self._version += 1
            self._dirty = True
            return True

    def remove(self, connection_id: ConnectionId) -> bool:
        """
        Удалить запись и закрыть соединение.
        Повторный вызов — no-op.

        Returns:
            True если запись была удалена
        """
        with self._lock:
            self._open.discard(connection_id)
            if self._entries.pop(connection_id, None) is None:
                return False

            self._version += 1
            self._dirty = True
            return True

    def expire(self, connection_id: ConnectionId, max_age: float, now: float | None = None) -> bool:
        """
        Удалить устаревшую запись, оставив соединение открытым.
        Следующий отчёт создаст запись заново.

        Проверка возраста повторяется под блокировкой: свежий отчёт,
        пришедший после stale_ids(), запись не теряет.
        """
        with self._lock:
            entry = self._entries.get(connection_id)
            if entry is None:
                return False

            current = self._clock() if now is None else now
            if current - entry.updated_at <= max_age:
                return False

            del self._entries[connection_id]
            self._version += 1
            self._dirty = True
            return True

    def clear(self) -> None:
        """Сбросить всё состояние (остановка сервиса)."""
        with self._lock:
            self._entries.clear()
            self._open.clear()
            self._version += 1
            self._dirty = False

    # === ЧТЕНИЕ ===

    def snapshot(self) -> Snapshot:
        """Неизменяемая копия всех записей вместе с номером версии."""
        with self._lock:
            return Snapshot(version=self._version, users=tuple(self._entries.values()))

    def take_dirty(self) -> bool:
        """Вернуть и сбросить флаг "нужна рассылка"."""
        with self._lock:
            dirty = self._dirty
            self._dirty = False
            return dirty

    def get(self, connection_id: ConnectionId) -> UserEntry | None:
        """Запись соединения или None."""
        with self._lock:
            return self._entries.get(connection_id)

    def stale_ids(self, max_age: float, now: float | None = None) -> list[ConnectionId]:
        """Соединения, чей последний отчёт старше max_age секунд."""
        with self._lock:
            current = self._clock() if now is None else now
            return [
                connection_id
                for connection_id, entry in self._entries.items()
                if current - entry.updated_at > max_age
            ]

    @property
    def version(self) -> int:
        """Счётчик изменений реестра."""
        with self._lock:
            return self._version

    @property
    def open_count(self) -> int:
        """Количество открытых соединений."""
        with self._lock:
            return len(self._open)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, connection_id: object) -> bool:
        with self._lock:
            return connection_id in self._entries
