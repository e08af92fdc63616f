"""
OrderService: order creation guarded by a single-key idempotent claim.

Flow for `create_order(claim_key, item_name, amount)`:

    try_claim(claim_key)
      first            -> repository.create -> complete(JSON order) -> duplicated=False
      completed value  -> stored order                              -> duplicated=True
      still PENDING    -> request echo, no order id                 -> duplicated=True, in_flight=True

A failure while creating the order propagates; the reservation is left to
expire so the key becomes claimable again after the TTL.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from logging import Logger
from typing import Any, Dict, Optional

from runboard.core.config import ConfigManager
from runboard.core.logging.logger import LogContext, get_logger
from runboard.modules.idempotency.guard import IdempotencyGuard
from runboard.modules.orders.repository import (
    InMemoryOrderRepository,
    Order,
    OrderRepository,
)
from runboard.modules.shared.base_service import BaseService
from runboard.modules.shared.exceptions import ValidationError
from runboard.modules.shared.validators import require_text


@dataclass(frozen=True)
class OrderResult:
    duplicated: bool
    idempotency_key: str
    order_id: Optional[str]
    item_name: str
    amount: int
    in_flight: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "duplicated": self.duplicated,
            "idempotencyKey": self.idempotency_key,
            "orderId": self.order_id,
            "itemName": self.item_name,
            "amount": self.amount,
            "inFlight": self.in_flight,
        }


class OrderService(BaseService):
    """
    Idempotent order creation.

    Args:
        guard: Claim / complete reservations
        repository: Where orders are created (in-memory by default)
    """

    def __init__(
        self,
        guard: Optional[IdempotencyGuard] = None,
        repository: Optional[OrderRepository] = None,
        config_manager: type[ConfigManager] = ConfigManager,
        logger: Optional[Logger] = None,
    ) -> None:
        super().__init__(config_manager, logger or get_logger(__name__))
        self.guard = guard or IdempotencyGuard(config_manager=config_manager)
        self.repository = repository if repository is not None else InMemoryOrderRepository()

    async def create_order(self, claim_key: str, item_name: str, amount: int) -> OrderResult:
        """
        Create an order once per `claim_key`.

        Raises
        ------
        ValidationError
            Blank claim key or item name, or amount < 1.
        """
        claim_key = require_text(claim_key, "claim_key")
        item_name = require_text(item_name, "item_name")
        if isinstance(amount, bool) or not isinstance(amount, int) or amount < 1:
            raise ValidationError("amount", f"amount must be an integer >= 1, got {amount!r}")

        async with LogContext(component="orders", operation="create_order", claim_key=claim_key):
            claim = await self.guard.try_claim(claim_key)

            if claim.first:
                order = await self.repository.create(item_name, amount)
                completed = await self.guard.complete(claim_key, json.dumps(order.to_dict()))
                self.log.info(
                    "Order created",
                    extra={"order_id": order.order_id, "reservation_completed": completed},
                )
                return OrderResult(
                    duplicated=False,
                    idempotency_key=claim_key,
                    order_id=order.order_id,
                    item_name=order.item_name,
                    amount=order.amount,
                )

            if claim.in_flight:
                self.log.info("Order request is in flight under another caller")
                return OrderResult(
                    duplicated=True,
                    idempotency_key=claim_key,
                    order_id=None,
                    item_name=item_name,
                    amount=amount,
                    in_flight=True,
                )

            stored = self._decode(claim.existing_value)
            if stored is None:
                # Value is not an order document; surface it as the order id
                return OrderResult(
                    duplicated=True,
                    idempotency_key=claim_key,
                    order_id=claim.existing_value,
                    item_name=item_name,
                    amount=amount,
                )

            self.log.info("Returning stored order", extra={"order_id": stored.order_id})
            return OrderResult(
                duplicated=True,
                idempotency_key=claim_key,
                order_id=stored.order_id,
                item_name=stored.item_name,
                amount=stored.amount,
            )

    def _decode(self, value: Optional[str]) -> Optional[Order]:
        if value is None:
            return None
        try:
            return Order.from_dict(json.loads(value))
        except (ValueError, KeyError, TypeError) as exc:
            self.log.warning(
                "Stored reservation value is not an order document",
                extra={"error": str(exc)},
            )
            return None
