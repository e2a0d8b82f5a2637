# src/common/constants.py
"""
Общие константы и перечисления.
"""

from enum import Enum


class TypeMsg(str, Enum):
    """Типы сообщений для логирования."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ConnectionState(str, Enum):
    """Состояния соединения клиента."""
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class OutboundType(str, Enum):
    """Типы исходящих WebSocket сообщений."""
    WELCOME = "welcome"
    UPDATE_USERS = "updateUsers"
    PONG = "pong"
    ERROR = "error"


class ClientAction(str, Enum):
    """Действия, которые клиент может прислать."""
    LOCATION = "location"
    UPDATE_LOCATION = "updateLocation"
    PING = "ping"


class ErrorCode(str, Enum):
    """Коды ошибок, отправляемые клиенту."""
    INVALID_LOCATION = "invalid_location"
    UNKNOWN_ACTION = "unknown_action"


class SlowClientPolicy(str, Enum):
    """Поведение при переполнении очереди отправки клиента."""
    DROP_OLDEST = "drop_oldest"
    DISCONNECT = "disconnect"
