# src/shared/models/location.py
"""
Модели присутствия: координаты клиента, запись реестра и снимок.
"""

from __future__ import annotations

import math
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


ConnectionId = str


class Location(BaseModel):
    """
    Координаты, присланные клиентом.

    Диапазон широты/долготы не проверяется: значение сохраняется как есть.
    """
    model_config = ConfigDict(frozen=True, extra="ignore")

    latitude: float
    longitude: float
    accuracy: float | None = None

    @field_validator("latitude", "longitude", "accuracy", mode="before")
    @classmethod
    def reject_bool(cls, v: Any) -> Any:
        """bool является подклассом int, но числом здесь не считается."""
        if isinstance(v, bool):
            raise ValueError("значение не может быть bool")
        return v

    @field_validator("latitude", "longitude", "accuracy")
    @classmethod
    def finite_only(cls, v: float | None) -> float | None:
        """NaN и бесконечность не сериализуются в JSON и сломали бы снимок для всех клиентов."""
        if v is not None and not math.isfinite(v):
            raise ValueError("значение должно быть конечным числом")
        return v


class UserEntry(BaseModel):
    """Запись реестра: последняя локация одного соединения."""
    model_config = ConfigDict(frozen=True)

    id: ConnectionId
    location: Location
    # Монотонное время последнего отчёта, наружу не отдаётся
    updated_at: float = Field(default=0.0, exclude=True)

    def to_wire(self) -> dict[str, Any]:
        """Плоская запись для клиента."""
        return {
            "id": self.id,
            "latitude": self.location.latitude,
            "longitude": self.location.longitude,
            "accuracy": self.location.accuracy,
        }


class Snapshot(BaseModel):
    """Неизменяемая копия всех записей реестра на момент version."""
    model_config = ConfigDict(frozen=True)

    version: int = 0
    users: tuple[UserEntry, ...] = ()

    def ids(self) -> set[ConnectionId]:
        """Множество идентификаторов в снимке."""
        return {entry.id for entry in self.users}

    def get(self, connection_id: ConnectionId) -> UserEntry | None:
        """Запись по идентификатору или None."""
        for entry in self.users:
            if entry.id == connection_id:
                return entry
        return None

    def __len__(self) -> int:
        return len(self.users)


class UsersResponse(BaseModel):
    """Ответ REST /api/v1/users."""
    version: int
    users: list[dict[str, Any]]


def parse_location(payload: Any, *, strict: bool = True) -> Location | None:
    """
    Извлекает Location из входящего сообщения клиента.

    Поддерживаемые формы:
    - {"latitude": .., "longitude": .., "accuracy": ..}
    - {"action": "location", "latitude": .., ...}
    - {"event": "updateLocation", "data": {...}}

    strict=True принимает только числа; strict=False дополнительно приводит
    числовые строки ("50.45"). Поле "id" от клиента игнорируется.

    Returns:
        Location или None для некорректного отчёта
    """
    if not isinstance(payload, dict):
        return None

    data = payload.get("data") if isinstance(payload.get("data"), dict) else payload

    try:
        return Location.model_validate(data, strict=strict)
    except ValidationError:
        return None
