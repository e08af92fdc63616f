"""Single-key idempotent claim / complete reservations."""

from runboard.modules.idempotency.guard import ClaimResult, IdempotencyGuard

__all__ = ["IdempotencyGuard", "ClaimResult"]
