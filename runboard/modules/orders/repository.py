"""
Order persistence behind an injected repository.

`OrderRepository` is the seam; `InMemoryOrderRepository` is the default,
per-instance implementation used by the demo surface and by tests.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Protocol, runtime_checkable


@dataclass(frozen=True)
class Order:
    order_id: str
    item_name: str
    amount: int

    def to_dict(self) -> Dict[str, Any]:
        return {"orderId": self.order_id, "itemName": self.item_name, "amount": self.amount}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Order":
        return cls(
            order_id=str(data["orderId"]),
            item_name=str(data["itemName"]),
            amount=int(data["amount"]),
        )


@runtime_checkable
class OrderRepository(Protocol):
    async def create(self, item_name: str, amount: int) -> Order:
        ...


class InMemoryOrderRepository:
    """Dict-backed repository; each instance owns its own orders."""

    def __init__(self) -> None:
        self._orders: Dict[str, Order] = {}
        self._lock = asyncio.Lock()

    async def create(self, item_name: str, amount: int) -> Order:
        order = Order(order_id=str(uuid.uuid4()), item_name=item_name, amount=amount)
        async with self._lock:
            self._orders[order.order_id] = order
        return order

    def __len__(self) -> int:
        return len(self._orders)
