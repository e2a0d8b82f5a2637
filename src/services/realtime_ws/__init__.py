# src/services/realtime_ws/__init__.py
"""
Realtime WebSocket Gateway — сервис присутствия.

Обеспечивает:
- WebSocket соединения для клиентов
- Приём отчётов о локации
- Рассылку полного списка локаций всем подключённым
"""
