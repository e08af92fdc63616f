"""Idempotent order creation (single-key claim / complete)."""

from runboard.modules.orders.repository import (
    InMemoryOrderRepository,
    Order,
    OrderRepository,
)
from runboard.modules.orders.service import OrderResult, OrderService

__all__ = [
    "Order",
    "OrderRepository",
    "InMemoryOrderRepository",
    "OrderService",
    "OrderResult",
]
