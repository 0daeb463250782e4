# rideshare/worker/__init__.py
"""
Фоновые воркеры.
"""

from rideshare.worker.base import BaseWorker
from rideshare.worker.reconciliation import PendingBookingReconciler

__all__ = ["BaseWorker", "PendingBookingReconciler"]
