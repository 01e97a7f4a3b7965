# Services package - Consolidated imports only

from .orders import OrderIngressService, OrderAccepted

__all__ = [
    "OrderIngressService",
    "OrderAccepted",
]
