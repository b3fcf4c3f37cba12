from .order import Order, OrderStatus, GATEWAY_STATUS_PAID
from .visitor import Visit, Visitor, VisitorStats, TRACKED_HEADERS

__all__ = [
    "Order",
    "OrderStatus",
    "GATEWAY_STATUS_PAID",
    "Visit",
    "Visitor",
    "VisitorStats",
    "TRACKED_HEADERS",
]
