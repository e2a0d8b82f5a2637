# src/config/loader.py
"""
Загрузчик конфигурации проекта.
Единственный источник истины — config/config.json.
Значения окружения (host, port, origins) переопределяются из переменных окружения.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.common.constants import SlowClientPolicy


# =============================================================================
# ОПРЕДЕЛЕНИЕ ПУТЕЙ
# =============================================================================

def get_project_root() -> Path:
    """Возвращает корневую директорию проекта."""
    return Path(__file__).parent.parent.parent


def get_config_path() -> Path:
    """Возвращает путь к файлу конфигурации."""
    return get_project_root() / "config" / "config.json"


def load_config_json(path: Path | None = None) -> dict[str, Any]:
    """Загружает config.json и возвращает словарь."""
    config_path = path or get_config_path()
    if not config_path.exists():
        raise FileNotFoundError(f"Файл конфигурации не найден: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        return json.load(f)


# =============================================================================
# PYDANTIC МОДЕЛИ КОНФИГУРАЦИИ
# =============================================================================

class SystemSettings(BaseModel):
    """Системные настройки."""
    PROJECT_NAME: str = "geo_presence"
    VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"


class DeploymentSettings(BaseModel):
    """Настройки развертывания."""
    REALTIME_WS_HOST: str = "0.0.0.0"
    REALTIME_WS_PORT: int = 3000


class LoggingSettings(BaseModel):
    """Настройки логирования."""
    LOG_LEVEL: str = "INFO"
    LOG_TO_FILE: bool = False
    LOG_FILE_PATH: str = "logs/app.log"
    LOG_FORMAT: str = "colored"
    LOG_MAX_BYTES: int = 10485760
    LOG_BACKUP_COUNT: int = 5

    @field_validator("LOG_FORMAT")
    @classmethod
    def check_format(cls, v: str) -> str:
        """Допустимы только json и colored."""
        if v not in ("json", "colored"):
            raise ValueError(f"Неизвестный формат логов: {v}")
        return v


class PresenceSettings(BaseModel):
    """Настройки сервиса присутствия и рассылки локаций."""
    SEND_QUEUE_SIZE: int = Field(default=16, ge=1)
    SEND_TIMEOUT_SECONDS: float = Field(default=5.0, gt=0)
    SLOW_CLIENT_POLICY: SlowClientPolicy = SlowClientPolicy.DROP_OLDEST
    REJECT_MALFORMED: bool = True
    # 0 — очистка устаревших записей отключена
    STALE_AFTER_SECONDS: float = Field(default=0.0, ge=0)
    STALE_SWEEP_INTERVAL_SECONDS: float = Field(default=30.0, gt=0)
    ALLOWED_ORIGINS: list[str] = Field(default_factory=lambda: ["*"])

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def split_origins(cls, v: str | list[str]) -> list[str]:
        """Принимает список или строку через запятую (из окружения)."""
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v


# =============================================================================
# ГЛАВНЫЙ КЛАСС НАСТРОЕК
# =============================================================================

class Settings(BaseSettings):
    """
    Главный класс настроек приложения.
    Агрегирует все секции конфигурации.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    system: SystemSettings = Field(default_factory=SystemSettings)
    deployment: DeploymentSettings = Field(default_factory=DeploymentSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    presence: PresenceSettings = Field(default_factory=PresenceSettings)

    @classmethod
    def from_config_json(cls, path: Path | None = None) -> "Settings":
        """
        Создаёт объект Settings из config.json.
        Параметры окружения переопределяются из переменных окружения.
        """
        config_data = load_config_json(path)

        # Ключи _comment_* — комментарии внутри JSON
        data = {k: v for k, v in config_data.items() if not k.startswith("_comment_")}

        return cls(
            system=SystemSettings(
                PROJECT_NAME=data.get("PROJECT_NAME", "geo_presence"),
                VERSION=data.get("VERSION", "1.0.0"),
                DEBUG=data.get("DEBUG", False),
                LOG_LEVEL=data.get("LOG_LEVEL", "INFO"),
                ENVIRONMENT=os.getenv("ENVIRONMENT", data.get("ENVIRONMENT", "development")),
            ),
            deployment=DeploymentSettings(
                REALTIME_WS_HOST=os.getenv("REALTIME_WS_HOST", data.get("REALTIME_WS_HOST", "0.0.0.0")),
                REALTIME_WS_PORT=int(os.getenv("PORT", data.get("REALTIME_WS_PORT", 3000))),
            ),
            logging=LoggingSettings(
                LOG_LEVEL=data.get("LOG_LEVEL", "INFO"),
                LOG_TO_FILE=data.get("LOG_TO_FILE", False),
                LOG_FILE_PATH=data.get("LOG_FILE_PATH", "logs/app.log"),
                LOG_FORMAT=data.get("LOG_FORMAT", "colored"),
                LOG_MAX_BYTES=data.get("LOG_MAX_BYTES", 10485760),
                LOG_BACKUP_COUNT=data.get("LOG_BACKUP_COUNT", 5),
            ),
            presence=PresenceSettings(
                SEND_QUEUE_SIZE=data.get("SEND_QUEUE_SIZE", 16),
                SEND_TIMEOUT_SECONDS=data.get("SEND_TIMEOUT_SECONDS", 5.0),
                SLOW_CLIENT_POLICY=data.get("SLOW_CLIENT_POLICY", SlowClientPolicy.DROP_OLDEST),
                REJECT_MALFORMED=data.get("REJECT_MALFORMED", True),
                STALE_AFTER_SECONDS=data.get("STALE_AFTER_SECONDS", 0.0),
                STALE_SWEEP_INTERVAL_SECONDS=data.get("STALE_SWEEP_INTERVAL_SECONDS", 30.0),
                ALLOWED_ORIGINS=os.getenv("ALLOWED_ORIGINS", data.get("ALLOWED_ORIGINS", ["*"])),
            ),
        )


@lru_cache()
def get_settings() -> Settings:
    """
    Возвращает синглтон настроек приложения.
    Использует кэширование для производительности.
    """
    from dotenv import load_dotenv

    env_path = get_project_root() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    return Settings.from_config_json()


# Экспорт синглтона для удобного импорта
settings = get_settings()
