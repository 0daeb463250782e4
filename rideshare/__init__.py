# rideshare/__init__.py
"""
Ядро сервиса совместных поездок: поездки, места, оплаты и выплаты водителям.
"""
