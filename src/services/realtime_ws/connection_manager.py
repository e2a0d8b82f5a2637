# src/services/realtime_ws/connection_manager.py
"""
Менеджер WebSocket соединений.
Реализует транспорт для координатора: у каждого соединения своя очередь отправки и writer-задача.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable
from uuid import uuid4

from fastapi import WebSocket, WebSocketDisconnect

from src.common.constants import ConnectionState, OutboundType, SlowClientPolicy
from src.common.logger import log_debug, log_warning
from src.core.presence.transport import Transport
from src.shared.models.location import ConnectionId


LOGGER_NAME = "realtime_ws"

MessageHandler = Callable[[ConnectionId, Any], Awaitable[None]]


def decode_frame(message: dict[str, Any]) -> Any:
    """
    JSON из текстового или бинарного кадра.
    Для кадра, который не является JSON, возвращает None: координатор ответит клиенту ошибкой.
    """
    raw = message.get("text")
    if raw is None:
        raw = message.get("bytes")
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        # JSONDecodeError и UnicodeDecodeError
        return None


@dataclass
class ClientSession:
    """Информация о соединении."""
    websocket: WebSocket
    connection_id: ConnectionId
    queue: asyncio.Queue
    state: ConnectionState = ConnectionState.CONNECTING
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    messages_sent: int = 0
    messages_dropped: int = 0


class ConnectionManager(Transport):
    """
    Менеджер WebSocket соединений.

    Поддерживает:
    - Подключение/отключение клиентов с выдачей ConnectionId
    - Постановку сообщений в очередь одного клиента или всех
    - Независимую отправку: медленный клиент не задерживает остальных

    При переполнении очереди клиента действует политика:
    - drop_oldest — выбрасывается самое старое сообщение (новый снимок его перекрывает)
    - disconnect — отстающий клиент отключается
    """

    def __init__(
        self,
        queue_size: int = 16,
        send_timeout: float = 5.0,
        slow_client_policy: SlowClientPolicy = SlowClientPolicy.DROP_OLDEST,
    ) -> None:
        self._queue_size = queue_size
        self._send_timeout = send_timeout
        self._slow_client_policy = SlowClientPolicy(slow_client_policy)

        # connection_id -> ClientSession
        self._sessions: dict[ConnectionId, ClientSession] = {}

        # Для статистики
        self._total_connections: int = 0
        self._total_messages_sent: int = 0
        self._total_messages_dropped: int = 0

    @property
    def active_connections(self) -> int:
        """Количество активных соединений."""
        return len(self._sessions)

    def get_session(self, connection_id: ConnectionId) -> ClientSession | None:
        """Сессия соединения или None."""
        return self._sessions.get(connection_id)

    # === ПОДКЛЮЧЕНИЕ ===

    async def connect(self, websocket: WebSocket) -> ClientSession:
        """
        Принять WebSocket и зарегистрировать соединение.

        Сессия регистрируется сразу после handshake, до первого await
        вызывающего кода, поэтому все последующие рассылки попадут в её очередь.
        """
        await websocket.accept()

        session = ClientSession(
            websocket=websocket,
            connection_id=uuid4().hex,
            queue=asyncio.Queue(maxsize=self._queue_size),
            state=ConnectionState.OPEN,
        )
        self._sessions[session.connection_id] = session
        self._total_connections += 1
        return session

    async def serve(self, session: ClientSession, on_message: MessageHandler) -> None:
        """
        Обслуживать соединение до его закрытия.

        Чтение и отправка идут в двух задачах; завершение любой из них
        (отключение клиента, ошибка или таймаут отправки) закрывает соединение.
        """
        reader = asyncio.create_task(self._reader(session, on_message))
        writer = asyncio.create_task(self._writer(session))

        try:
            done, pending = await asyncio.wait(
                {reader, writer},
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for task in (reader, writer):
                if not task.done():
                    task.cancel()
            await asyncio.gather(reader, writer, return_exceptions=True)

        for task in done:
            if not task.cancelled() and task.exception() is not None:
                await log_warning(
                    f"Соединение {session.connection_id} закрыто с ошибкой: {task.exception()!r}",
                    logger_name=LOGGER_NAME,
                )

    async def disconnect(self, connection_id: ConnectionId) -> bool:
        """
        Отключить клиента.

        Returns:
            True если соединение было зарегистрировано
        """
        session = self._sessions.pop(connection_id, None)
        if session is None:
            return False

        session.state = ConnectionState.CLOSED
        await self._close_websocket(session)
        return True

    async def close_all(self) -> None:
        """Закрыть все соединения (остановка сервиса)."""
        for connection_id in list(self._sessions):
            await self.disconnect(connection_id)

    # === ТРАНСПОРТ ===

    def send(self, connection_id: ConnectionId, message: dict[str, Any]) -> bool:
        """
        Поставить сообщение в очередь конкретного клиента.

        Returns:
            True если сообщение поставлено, False если клиент не подключен
        """
        session = self._sessions.get(connection_id)
        if session is None or session.state is not ConnectionState.OPEN:
            return False
        return self._enqueue(session, message)

    def broadcast(self, message: dict[str, Any]) -> int:
        """Поставить сообщение в очереди всех подключенных клиентов."""
        sent_count = 0
        for session in list(self._sessions.values()):
            if session.state is not ConnectionState.OPEN:
                continue
            try:
                if self._enqueue(session, message):
                    sent_count += 1
            except Exception:
                # Сбой одного клиента не прерывает рассылку остальным
                self._mark_lagging(session)
        return sent_count

    def connection_ids(self) -> list[ConnectionId]:
        """Идентификаторы открытых соединений."""
        return [
            connection_id
            for connection_id, session in self._sessions.items()
            if session.state is ConnectionState.OPEN
        ]

    def get_stats(self) -> dict[str, Any]:
        """Получить статистику."""
        return {
            "active_connections": len(self._sessions),
            "total_connections_ever": self._total_connections,
            "total_messages_sent": self._total_messages_sent,
            "total_messages_dropped": self._total_messages_dropped,
        }

    # === ВНУТРЕННЕЕ ===

    def _enqueue(self, session: ClientSession, message: dict[str, Any]) -> bool:
        """Неблокирующая постановка в очередь с учётом политики переполнения."""
        try:
            session.queue.put_nowait(message)
            return True
        except asyncio.QueueFull:
            pass

        session.messages_dropped += 1
        self._total_messages_dropped += 1

        if self._slow_client_policy is SlowClientPolicy.DROP_OLDEST:
            self._drop_oldest(session)
            session.queue.put_nowait(message)
            return True

        self._mark_lagging(session)
        return False

    @staticmethod
    def _drop_oldest(session: ClientSession) -> None:
        """
        Освободить одно место в очереди.

        Выбрасывается самый старый updateUsers: его перекрывает более новый снимок.
        welcome, pong и error теряются, только если снимков в очереди нет.
        """
        pending = [session.queue.get_nowait() for _ in range(session.queue.qsize())]
        victim = next(
            (
                i for i, item in enumerate(pending)
                if isinstance(item, dict) and item.get("type") == OutboundType.UPDATE_USERS.value
            ),
            0,
        )
        del pending[victim]
        for item in pending:
            session.queue.put_nowait(item)

    def _mark_lagging(self, session: ClientSession) -> None:
        """
        Пометить соединение закрытым.
        Writer увидит маркер None и завершится, после чего serve() закроет соединение.
        """
        if session.state is not ConnectionState.OPEN:
            return
        session.state = ConnectionState.CLOSED

        while not session.queue.empty():
            session.queue.get_nowait()
        session.queue.put_nowait(None)

    async def _reader(self, session: ClientSession, on_message: MessageHandler) -> None:
        """Читать входящие сообщения клиента."""
        websocket = session.websocket
        while True:
            try:
                message = await websocket.receive()
            except WebSocketDisconnect:
                return
            if message["type"] == "websocket.disconnect":
                return
            await on_message(session.connection_id, decode_frame(message))

    async def _writer(self, session: ClientSession) -> None:
        """Отправлять сообщения из очереди клиента по порядку."""
        while True:
            message = await session.queue.get()
            if message is None:
                await log_debug(
                    f"Клиент {session.connection_id} не успевает получать сообщения, отключаем",
                    logger_name=LOGGER_NAME,
                )
                return

            await asyncio.wait_for(
                session.websocket.send_json(message),
                timeout=self._send_timeout,
            )
            session.messages_sent += 1
            self._total_messages_sent += 1

    async def _close_websocket(self, session: ClientSession) -> None:
        """Закрыть WebSocket, игнорируя уже разорванное соединение."""
        try:
            await session.websocket.close()
        except Exception:
            pass
