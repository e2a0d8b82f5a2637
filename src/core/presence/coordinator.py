# src/core/presence/coordinator.py
"""
Координатор рассылки: реагирует на события соединений и рассылает полный снимок.
"""

from __future__ import annotations

from typing import Any

from src.common.constants import ClientAction, ErrorCode, OutboundType
from src.common.logger import log_debug, log_info, log_warning
from src.core.presence.registry import ConnectionRegistry
from src.core.presence.transport import Transport
from src.shared.models.location import ConnectionId, Snapshot, parse_location


LOGGER_NAME = "presence"

_LOCATION_ACTIONS = {None, ClientAction.LOCATION.value, ClientAction.UPDATE_LOCATION.value}


def build_snapshot_message(snapshot: Snapshot) -> dict[str, Any]:
    """Исходящее сообщение updateUsers из снимка."""
    return {
        "type": OutboundType.UPDATE_USERS.value,
        "version": snapshot.version,
        "users": [entry.to_wire() for entry in snapshot.users],
    }


def build_error_message(code: ErrorCode, detail: str) -> dict[str, Any]:
    """Исходящее сообщение об ошибке для одного клиента."""
    return {"type": OutboundType.ERROR.value, "code": code.value, "detail": detail}


class BroadcastCoordinator:
    """
    Связывает реестр и транспорт.

    - новое соединение сразу получает свой id и текущий снимок;
    - каждое изменение реестра (upsert/remove) рассылается всем полным снимком;
    - снимок берётся и ставится в очереди всех соединений без передачи
      управления циклу событий, поэтому рассылки приходят всем в одном порядке.

    Доставка fire-and-forget: подтверждений и повторов нет,
    пропущенная рассылка перекрывается следующей.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        transport: Transport,
        *,
        reject_malformed: bool = True,
    ) -> None:
        self._registry = registry
        self._transport = transport
        self._reject_malformed = reject_malformed

        # Статистика
        self._reports_accepted = 0
        self._reports_rejected = 0
        self._stale_reports = 0
        self._broadcasts = 0

    @property
    def registry(self) -> ConnectionRegistry:
        """Реестр, которым управляет координатор."""
        return self._registry

    # === СОБЫТИЯ ТРАНСПОРТА ===

    async def on_connect(self, connection_id: ConnectionId) -> None:
        """Соединение открыто: сообщаем клиенту его id и текущий снимок."""
        self._registry.open(connection_id)

        self._transport.send(connection_id, {
            "type": OutboundType.WELCOME.value,
            "id": connection_id,
        })
        self._transport.send(connection_id, build_snapshot_message(self._registry.snapshot()))

        await log_info(
            f"Клиент подключён: {connection_id}",
            logger_name=LOGGER_NAME,
            extra={"connection_id": connection_id},
        )

    async def on_message(self, connection_id: ConnectionId, payload: Any) -> None:
        """
        Входящее сообщение клиента.

        Распознаются отчёт о локации и ping. Идентификатор берётся
        только от транспорта, поле "id" в сообщении игнорируется.
        """
        action = None
        if isinstance(payload, dict):
            action = payload.get("action", payload.get("event"))

        # Действие приходит от клиента как есть: список или объект тоже возможны
        if action is not None and not isinstance(action, str):
            action = repr(action)

        if action == ClientAction.PING.value:
            self._transport.send(connection_id, {"type": OutboundType.PONG.value})
            return

        if action not in _LOCATION_ACTIONS:
            self._transport.send(
                connection_id,
                build_error_message(ErrorCode.UNKNOWN_ACTION, f"Неизвестное действие: {action}"),
            )
            await log_debug(
                f"Неизвестное действие от {connection_id}: {action}",
                logger_name=LOGGER_NAME,
            )
            return

        location = parse_location(payload, strict=self._reject_malformed)
        if location is None:
            self._reports_rejected += 1
            self._transport.send(
                connection_id,
                build_error_message(ErrorCode.INVALID_LOCATION, "Ожидаются числовые latitude и longitude"),
            )
            await log_warning(
                f"Некорректный отчёт о локации от {connection_id}",
                logger_name=LOGGER_NAME,
                extra={"connection_id": connection_id, "payload": payload},
            )
            return

        if not self._registry.upsert(connection_id, location):
            # Отчёт пришёл после отключения
            self._stale_reports += 1
            await log_debug(
                f"Отчёт от закрытого соединения отклонён: {connection_id}",
                logger_name=LOGGER_NAME,
            )
            return

        self._reports_accepted += 1
        self.flush()

    async def on_disconnect(self, connection_id: ConnectionId) -> None:
        """Соединение закрыто: удаляем запись и рассылаем снимок. Повторный вызов безопасен."""
        removed = self._registry.remove(connection_id)
        self.flush()

        await log_info(
            f"Клиент отключён: {connection_id}",
            logger_name=LOGGER_NAME,
            extra={"connection_id": connection_id, "had_location": removed},
        )

    # === РАССЫЛКА ===

    def flush(self) -> int:
        """Разослать снимок, если реестр изменился с прошлой рассылки."""
        if not self._registry.take_dirty():
            return 0
        return self.broadcast_snapshot()

    def broadcast_snapshot(self) -> int:
        """
        Снять снимок и поставить его в очереди всех соединений.

        Returns:
            Количество соединений, получивших снимок в очередь
        """
        message = build_snapshot_message(self._registry.snapshot())
        sent = self._transport.broadcast(message)
        self._broadcasts += 1
        return sent

    def expire_stale(self, max_age: float) -> int:
        """
        Удалить записи без отчётов дольше max_age секунд и разослать снимок.

        Returns:
            Количество удалённых записей
        """
        expired = [
            connection_id
            for connection_id in self._registry.stale_ids(max_age)
            if self._registry.expire(connection_id, max_age)
        ]
        if expired:
            self.flush()
        return len(expired)

    def get_stats(self) -> dict[str, Any]:
        """Получить статистику."""
        return {
            "users_with_location": len(self._registry),
            "open_sessions": self._registry.open_count,
            "registry_version": self._registry.version,
            "reports_accepted": self._reports_accepted,
            "reports_rejected": self._reports_rejected,
            "stale_reports": self._stale_reports,
            "broadcasts": self._broadcasts,
        }
