# src/common/logger.py
"""
Модуль структурированного логирования.

- JSON формат для продакшена, цветной текст для разработки
- Ротация файла логов и отдельный error.log
- connection_id из extra выносится в запись, чтобы логи одного клиента легко фильтровались
"""

from __future__ import annotations

import inspect
import json
import logging
import os
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from src.common.constants import TypeMsg


DEFAULT_LOGGER_NAME = "geo_presence"

_LEVELS: dict[TypeMsg, int] = {
    TypeMsg.DEBUG: logging.DEBUG,
    TypeMsg.INFO: logging.INFO,
    TypeMsg.WARNING: logging.WARNING,
    TypeMsg.ERROR: logging.ERROR,
    TypeMsg.CRITICAL: logging.CRITICAL,
}

# Файловые хендлеры общие для всех логгеров процесса
_FILE_HANDLERS: dict[str, logging.Handler] = {}

_loggers: dict[str, logging.Logger] = {}
_LOGGING_INITIALIZED: bool = False


@dataclass(frozen=True)
class LogConfig:
    """Параметры логирования, извлечённые из настроек."""
    level: str = "DEBUG"
    fmt: str = "colored"
    to_file: bool = False
    file_path: str = "logs/app.log"
    max_bytes: int = 10485760
    backup_count: int = 5


def _resolve_config() -> LogConfig:
    """
    Читает секцию logging из настроек.
    Значения по умолчанию берутся только когда модуль настроек ещё не импортируем
    (ранний или циклический импорт); ошибки валидации конфигурации пробрасываются.
    """
    try:
        from src.config import settings
    except ImportError:
        return LogConfig()

    section = settings.logging
    return LogConfig(
        level=section.LOG_LEVEL,
        fmt=section.LOG_FORMAT,
        to_file=section.LOG_TO_FILE,
        file_path=section.LOG_FILE_PATH,
        max_bytes=section.LOG_MAX_BYTES,
        backup_count=section.LOG_BACKUP_COUNT,
    )


# =============================================================================
# ФОРМАТТЕРЫ
# =============================================================================

class JsonFormatter(logging.Formatter):
    """Одна JSON строка на запись."""

    def format(self, record: logging.LogRecord) -> str:
        extra = dict(getattr(record, "extra_data", None) or {})

        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        service = os.getenv("SERVICE_NAME")
        if service:
            payload["service"] = service

        connection_id = extra.pop("connection_id", None)
        if connection_id is not None:
            payload["connection_id"] = connection_id

        if extra:
            payload["extra"] = extra

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


class ColoredFormatter(logging.Formatter):
    """Цветной вывод для консоли разработчика."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"
    GRAY = "\033[90m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.GRAY)
        extra = getattr(record, "extra_data", None) or {}

        parts = [
            datetime.now().strftime("%H:%M:%S.%f")[:-3],
            f"{color}{record.levelname:<7}{self.RESET}",
            f"{self.GRAY}{record.name}{self.RESET}",
        ]

        connection_id = extra.get("connection_id")
        if connection_id:
            # Короткий префикс id достаточен для чтения глазами
            parts.append(f"<{str(connection_id)[:8]}>")

        parts.append(record.getMessage())

        caller = extra.get("caller_function")
        if caller:
            parts.append(
                f"{self.GRAY}({extra.get('caller_module')}.{caller}() "
                f"{extra.get('caller_file')}:{extra.get('caller_line')}){self.RESET}"
            )

        line = " ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


# =============================================================================
# ЛОГГЕР
# =============================================================================

def _file_handler(key: str, path: Path, config: LogConfig, formatter: logging.Formatter) -> logging.Handler:
    """Ротируемый файловый хендлер, один на путь."""
    handler = _FILE_HANDLERS.get(key)
    if handler is None:
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            filename=str(path),
            maxBytes=config.max_bytes,
            backupCount=config.backup_count,
            encoding="utf-8",
        )
        handler.setFormatter(formatter)
        _FILE_HANDLERS[key] = handler
    return handler


def _attach_file_handlers(logger: logging.Logger, config: LogConfig, formatter: logging.Formatter) -> None:
    """Основной лог и error.log рядом с ним."""
    log_path = Path(config.file_path)

    # SERVICE_NAME разделяет логи нескольких инстансов в одной директории
    stem = log_path.stem
    service = os.getenv("SERVICE_NAME")
    if service:
        stem = f"{stem}_{service}"

    logger.addHandler(_file_handler("main", log_path.with_name(f"{stem}.log"), config, formatter))

    error_handler = _file_handler("error", log_path.with_name("error.log"), config, formatter)
    error_handler.setLevel(logging.ERROR)
    logger.addHandler(error_handler)


def get_logger(name: str = DEFAULT_LOGGER_NAME) -> logging.Logger:
    """
    Возвращает настроенный логгер.
    Повторный вызов с тем же именем возвращает тот же объект без новых хендлеров.
    """
    if name in _loggers:
        return _loggers[name]

    config = _resolve_config()

    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, str(config.level).upper(), logging.DEBUG))
    logger.propagate = False

    if not logger.handlers:
        formatter: logging.Formatter = JsonFormatter() if config.fmt == "json" else ColoredFormatter()

        console = logging.StreamHandler(sys.stdout)
        console.setFormatter(formatter)
        logger.addHandler(console)

        if config.to_file:
            _attach_file_handlers(logger, config, formatter)

    _loggers[name] = logger
    return logger


def setup_logging() -> None:
    """Инициализирует логирование процесса. Повторные вызовы ничего не делают."""
    global _LOGGING_INITIALIZED

    if _LOGGING_INITIALIZED:
        return
    _LOGGING_INITIALIZED = True

    get_logger(DEFAULT_LOGGER_NAME)

    # Access-лог uvicorn дублирует события соединений
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# =============================================================================
# ВСПОМОГАТЕЛЬНЫЕ ФУНКЦИИ ЛОГИРОВАНИЯ
# =============================================================================

def _get_caller_info(skip: int = 1) -> dict[str, Any]:
    """
    Описание кода, вызвавшего логирование.

    Args:
        skip: Сколько кадров над вызывающим _get_caller_info пропустить
    """
    frame = inspect.currentframe()
    try:
        target = frame.f_back if frame is not None else None
        for _ in range(skip):
            if target is None:
                break
            target = target.f_back
        if target is None:
            return {}

        module = inspect.getmodule(target)
        return {
            "caller_function": target.f_code.co_name,
            "caller_module": module.__name__ if module else "unknown",
            "caller_file": Path(target.f_code.co_filename).name,
            "caller_line": target.f_lineno,
        }
    except Exception:
        return {}
    finally:
        del frame


def _emit(
    level: int,
    message: str,
    logger_name: str,
    extra: dict[str, Any] | None,
    skip: int,
    exc_info: bool = False,
) -> None:
    logger = get_logger(logger_name)
    if not logger.isEnabledFor(level):
        return
    # +1: кадр самого _emit
    extra_data = {**_get_caller_info(skip + 1), **(extra or {})}
    logger.log(level, message, extra={"extra_data": extra_data}, exc_info=exc_info)


async def log_info(
    message: str,
    *,
    type_msg: TypeMsg = TypeMsg.INFO,
    logger_name: str = DEFAULT_LOGGER_NAME,
    extra: dict[str, Any] | None = None,
) -> None:
    """
    Асинхронное логирование.

    Args:
        message: Текст сообщения
        type_msg: Уровень
        logger_name: Имя логгера (presence, realtime_ws, ...)
        extra: Дополнительные поля; connection_id выносится в запись отдельно
    """
    _emit(_LEVELS.get(type_msg, logging.INFO), message, logger_name, extra, skip=1)


async def log_debug(
    message: str,
    logger_name: str = DEFAULT_LOGGER_NAME,
    extra: dict[str, Any] | None = None,
) -> None:
    """Логирование DEBUG уровня."""
    _emit(logging.DEBUG, message, logger_name, extra, skip=1)


async def log_warning(
    message: str,
    logger_name: str = DEFAULT_LOGGER_NAME,
    extra: dict[str, Any] | None = None,
) -> None:
    """Логирование WARNING уровня."""
    _emit(logging.WARNING, message, logger_name, extra, skip=1)


async def log_error(
    message: str,
    logger_name: str = DEFAULT_LOGGER_NAME,
    extra: dict[str, Any] | None = None,
    exc_info: bool = False,
) -> None:
    """Логирование ERROR уровня, с трейсбеком при exc_info=True."""
    _emit(logging.ERROR, message, logger_name, extra, skip=1, exc_info=exc_info)
