# rideshare/core/payments/__init__.py
"""
Платежи пассажиров и адаптер платёжного шлюза.
"""

from rideshare.core.payments.gateway import PaymentGatewayClient, compute_signature
from rideshare.core.payments.models import (
    GatewayOrder,
    Payment,
    PaymentFailRequest,
    PaymentOrderRequest,
    PaymentOrderResponse,
    PaymentVerifyRequest,
)
from rideshare.core.payments.repository import PaymentRepository

__all__ = [
    "PaymentGatewayClient",
    "compute_signature",
    "GatewayOrder",
    "Payment",
    "PaymentFailRequest",
    "PaymentOrderRequest",
    "PaymentOrderResponse",
    "PaymentVerifyRequest",
    "PaymentRepository",
]
