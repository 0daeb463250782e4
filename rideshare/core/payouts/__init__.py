# rideshare/core/payouts/__init__.py
"""
Выплаты водителям и кошелёк.
"""

from rideshare.core.payouts.models import PayoutResult, WalletReport

__all__ = ["PayoutResult", "WalletReport"]
