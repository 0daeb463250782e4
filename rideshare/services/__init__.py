# rideshare/services/__init__.py
"""
Внешние интерфейсы приложения.

Сервисы:
- api: HTTP API (FastAPI) для пассажиров, водителей и callback платёжного шлюза
"""

__all__: list[str] = []
