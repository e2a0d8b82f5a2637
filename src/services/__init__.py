# src/services/__init__.py
"""
Сервисы приложения.

Сервисы:
- realtime_ws: WebSocket шлюз присутствия (приём локаций, рассылка снимков)
"""

__all__: list[str] = []
