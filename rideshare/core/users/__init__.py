# rideshare/core/users/__init__.py
"""
Пользователи: чтение профиля, кошелёк и счётчики водителя.
"""

from rideshare.core.users.models import User
from rideshare.core.users.repository import UserRepository

__all__ = ["User", "UserRepository"]
