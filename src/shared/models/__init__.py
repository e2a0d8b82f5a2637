# src/shared/models/__init__.py
"""
Pydantic-модели сервиса присутствия.
"""

from src.shared.models.location import (
    ConnectionId,
    Location,
    UserEntry,
    Snapshot,
    UsersResponse,
    parse_location,
)
from src.shared.models.common import (
    ErrorResponse,
    HealthStatus,
    StatsResponse,
)

__all__ = [
    # Location
    "ConnectionId",
    "Location",
    "UserEntry",
    "Snapshot",
    "UsersResponse",
    "parse_location",
    # Common
    "ErrorResponse",
    "HealthStatus",
    "StatsResponse",
]
