# src/shared/models/common.py
"""
Общие модели ответов сервиса.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Стандартный ответ с ошибкой."""

    error_code: str
    message: str
    details: dict[str, Any] | None = None


class HealthStatus(BaseModel):
    """Статус здоровья сервиса."""

    service: str
    status: str = "healthy"  # healthy, degraded, unhealthy
    version: str | None = None
    uptime_seconds: float | None = None
    dependencies: dict[str, str] = Field(default_factory=dict)


class StatsResponse(BaseModel):
    """Статистика соединений и рассылок."""

    active_connections: int
    open_sessions: int
    users_with_location: int
    total_connections_ever: int
    total_messages_sent: int
    total_messages_dropped: int
    reports_accepted: int
    reports_rejected: int
    stale_reports: int
    broadcasts: int
    registry_version: int
