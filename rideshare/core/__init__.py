# rideshare/core/__init__.py
"""
Доменный слой: поездки, бронирования, платежи, выплаты и отзывы.
"""
