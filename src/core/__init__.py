# src/core/__init__.py
"""
Доменный слой (Core Domain).
Состояние присутствия и рассылка, независимые от конкретного транспорта.
"""

from src.core.presence import BroadcastCoordinator, ConnectionRegistry, Transport

__all__ = [
    "BroadcastCoordinator",
    "ConnectionRegistry",
    "Transport",
]
