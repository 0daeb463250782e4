# rideshare/core/reviews/__init__.py
"""
Отзывы и рейтинг водителей.
"""

from rideshare.core.reviews.models import Review, ReviewCreateRequest
from rideshare.core.reviews.repository import ReviewRepository

__all__ = ["Review", "ReviewCreateRequest", "ReviewRepository"]
