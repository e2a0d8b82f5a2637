# src/core/presence/__init__.py
"""
Присутствие и рассылка локаций.
Реестр соединений, координатор рассылки и контракт транспорта.
"""

from src.core.presence.registry import ConnectionRegistry
from src.core.presence.coordinator import BroadcastCoordinator, build_snapshot_message
from src.core.presence.sweeper import StaleEntrySweeper
from src.core.presence.transport import Transport

__all__ = [
    "ConnectionRegistry",
    "BroadcastCoordinator",
    "build_snapshot_message",
    "StaleEntrySweeper",
    "Transport",
]
