# src/shared/__init__.py
"""
Общий код сервисов.

Модули:
- models: Pydantic-модели локаций, снимков и ответов API
"""

__all__: list[str] = []
